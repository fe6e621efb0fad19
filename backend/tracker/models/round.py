from datetime import datetime

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base
from tracker.db.types import UTCDateTime


class RoundRow(Base):
    __tablename__ = "rounds"

    round_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    round_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    total_score: Mapped[int | None] = mapped_column(Integer)
    total_par: Mapped[int | None] = mapped_column(Integer)


class ScoreRow(Base):
    __tablename__ = "scores"

    score_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    round_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    hole_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    hole_number: Mapped[int] = mapped_column(Integer, nullable=False)
    throws: Mapped[int] = mapped_column(Integer, nullable=False)
    approaches: Mapped[int | None] = mapped_column(Integer)
    putts: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
