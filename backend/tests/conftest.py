import pytest

from tracker.core.settings import Settings
from tracker.services.context import Tracker
from tracker.services.remote import RemoteSync
from tracker.services.store import FlatStore, IndexedStore
from tracker.services.sync_queue import OperationQueue


class FakeGateway:
    """In-memory remote that records every call.

    ``online = False`` makes every call fail like a dropped connection;
    ``fail_when(method, *args)`` injects failures for specific calls.
    """

    WRITES = ("create_row", "update_row", "delete_row")

    def __init__(self):
        self.online = True
        self.collections: dict[str, list[dict]] = {}
        self.calls: list[tuple] = []
        self.fail_when = None

    def _call(self, method, *args):
        self.calls.append((method, *args))
        if not self.online:
            raise ConnectionError("network unreachable")
        if self.fail_when is not None and self.fail_when(method, *args):
            raise RuntimeError(f"injected {method} failure")

    def list_collections(self):
        self._call("list_collections")
        return [{"name": name} for name in self.collections]

    def create_collection(self, name):
        self._call("create_collection", name)
        self.collections.setdefault(name, [])

    def get_rows(self, name):
        self._call("get_rows", name)
        return [dict(r) for r in self.collections.get(name, [])]

    def create_row(self, name, fields):
        self._call("create_row", name, fields)
        rows = self.collections.setdefault(name, [])
        rows.append(dict(fields))
        return {"rowIndex": len(rows) - 1}

    def update_row(self, name, row_index, fields):
        self._call("update_row", name, row_index, fields)
        self.collections[name][row_index] = dict(fields)

    def delete_row(self, name, row_index):
        self._call("delete_row", name, row_index)
        del self.collections[name][row_index]

    def health_check(self):
        self.calls.append(("health_check",))
        return self.online

    def writes(self):
        return [c for c in self.calls if c[0] in self.WRITES]


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        STORE_BACKEND="flat",
        FLAT_STORE_PATH=str(tmp_path / "tracker.json"),
        REMOTE_URL=None,
        SYNC_INTERVAL_SECONDS=0,
    )


@pytest.fixture()
def indexed_store():
    store = IndexedStore.connect("sqlite+pysqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture()
def flat_store(tmp_path):
    return FlatStore(tmp_path / "tracker.json")


@pytest.fixture(params=["indexed", "flat"])
def store(request, tmp_path):
    if request.param == "flat":
        yield FlatStore(tmp_path / "tracker.json")
        return
    store = IndexedStore.connect("sqlite+pysqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def remote(gateway):
    return RemoteSync(gateway)


@pytest.fixture()
def queue(tmp_path, remote):
    return OperationQueue(FlatStore(tmp_path / "queue.json"), remote)


@pytest.fixture()
def tracker(store, queue, remote, settings):
    return Tracker(store, queue, remote, settings)
