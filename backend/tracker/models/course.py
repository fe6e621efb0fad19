from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tracker.db.base import Base
from tracker.db.types import UTCDateTime


class CourseRow(Base):
    __tablename__ = "courses"

    course_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    course_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    hole_count: Mapped[int] = mapped_column(Integer, nullable=False)
    created_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_played: Mapped[datetime | None] = mapped_column(UTCDateTime)


class HoleRow(Base):
    __tablename__ = "holes"

    # No FK to courses: holes pulled from the remote may arrive before their course.
    hole_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    hole_number: Mapped[int] = mapped_column(Integer, nullable=False)
    par: Mapped[int] = mapped_column(Integer, nullable=False)
    distance: Mapped[int | None] = mapped_column(Integer, nullable=True)
