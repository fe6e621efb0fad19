import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tracker.api.v1.courses import router as courses_router
from tracker.api.v1.health import router as health_router
from tracker.api.v1.rounds import router as rounds_router
from tracker.api.v1.sync import router as sync_router
from tracker.core.settings import settings
from tracker.services.context import build_tracker
from tracker.services.worker import SyncWorker

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logging.basicConfig(level=settings.LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests install their own tracker on app.state before startup.
    tracker = getattr(app.state, "tracker", None)
    owned = tracker is None
    if owned:
        tracker = build_tracker(settings)
        app.state.tracker = tracker

    worker = None
    if owned and tracker.remote is not None and settings.SYNC_INTERVAL_SECONDS > 0:
        worker = SyncWorker(tracker, settings.SYNC_INTERVAL_SECONDS)
        worker.start()

    snapshot = tracker.incomplete_round()
    if snapshot is not None:
        logger.info(
            "Unfinished round %s at %s can be resumed",
            snapshot.round_id,
            snapshot.course.course_name,
        )

    try:
        yield
    finally:
        if worker is not None:
            worker.stop()
        if owned:
            tracker.close()
            del app.state.tracker


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Local dev: allow Vite dev server to call the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    health_router,
    prefix=settings.API_V1_STR,
    tags=["Health"],
)
app.include_router(
    courses_router,
    prefix=settings.API_V1_STR,
    tags=["Courses"],
)
app.include_router(
    rounds_router,
    prefix=settings.API_V1_STR,
    tags=["Rounds"],
)
app.include_router(
    sync_router,
    prefix=settings.API_V1_STR,
    tags=["Sync"],
)
