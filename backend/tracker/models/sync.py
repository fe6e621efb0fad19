from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base
from tracker.db.types import UTCDateTime


class PendingOperationRow(Base):
    __tablename__ = "pending_operations"

    operation_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[Any] = mapped_column(JSON, nullable=False)
    enqueued_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class RoundSnapshotRow(Base):
    __tablename__ = "round_snapshots"

    round_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    state: Mapped[str] = mapped_column(String(16), nullable=False)
    is_new_course: Mapped[bool] = mapped_column(Boolean, nullable=False)
    current_index: Mapped[int] = mapped_column(Integer, nullable=False)
    round_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    course: Mapped[Any] = mapped_column(JSON, nullable=False)
    holes: Mapped[Any] = mapped_column(JSON, nullable=False)
    scores: Mapped[Any] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
