"""Event ORM — the event template that occurrences are derived from.

Invariants:
    - id is a string primary key (uuid4 text by default)
    - recurring_pattern 'none' ⇒ single occurrence, never an instance date
    - assigned_attendance_groups empty ⇒ whole team may self-check-in
    - check_in_methods lists the enabled methods (token | geolocation | override)
    - Deleting an event cascades to its attendance rows (DB-level ON DELETE CASCADE)

Design Decisions:
    - JSON columns for group ids, methods and recurring days: read whole, never
      queried by element, same on PostgreSQL and SQLite
    - Occurrences are computed, not stored (core/occurrence.py)
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    CheckConstraint, Date, DateTime, Float, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rollcall.db.base import Base

ALL_METHODS = ["token", "geolocation", "override"]


class Event(Base):
    """Event template — owns its attendance records."""
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_events_end_after_start"),
        CheckConstraint(
            "recurring_pattern IN "
            "('none', 'daily', 'weekly', 'biweekly', 'monthly', 'custom_weekly')",
            name="ck_events_recurring_pattern",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4()),
    )
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    end_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_radius: Mapped[float | None] = mapped_column(Float, nullable=True)
    recurring_pattern: Mapped[str] = mapped_column(
        String(20), nullable=False, default="none",
    )
    recurring_days: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    recurring_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    assigned_attendance_groups: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    check_in_methods: Mapped[list] = mapped_column(
        JSON, nullable=False, default=lambda: list(ALL_METHODS),
    )
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    attendance: Mapped[list["AttendanceRecord"]] = relationship(
        "AttendanceRecord", back_populates="event",
        cascade="all, delete-orphan", passive_deletes=True,
    )
