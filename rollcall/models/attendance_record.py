"""AttendanceRecord ORM — one participant's presence at one occurrence.

Invariants:
    - At most one live (not soft-deleted) row per (event, instance_date, participant),
      enforced by two partial unique indexes: one for undated rows, one for dated
    - device_fingerprint is NULL iff check_in_method = 'override'
    - checked_out_at, when set, is not before checked_in_at
    - Rows are soft-deleted (is_deleted, deleted_by, deleted_at); the only hard
      delete is the legacy occurrence repair

Design Decisions:
    - Two partial indexes instead of one unique constraint: NULL instance_date
      never collides under a plain UNIQUE, so undated rows need their own index
    - postgresql_where and sqlite_where both declared so tests on SQLite enforce
      the same uniqueness the production store does
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, Float, ForeignKey, Index,
    Integer, String, Text, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rollcall.db.base import Base

_LIVE_UNDATED = text("instance_date IS NULL AND NOT is_deleted")
_LIVE_DATED = text("instance_date IS NOT NULL AND NOT is_deleted")


class AttendanceRecord(Base):
    """Check-in record, table event_attendance."""
    __tablename__ = "event_attendance"
    __table_args__ = (
        Index(
            "uq_event_attendance_live_undated",
            "event_id", "participant_id",
            unique=True,
            postgresql_where=_LIVE_UNDATED,
            sqlite_where=_LIVE_UNDATED,
        ),
        Index(
            "uq_event_attendance_live_dated",
            "event_id", "participant_id", "instance_date",
            unique=True,
            postgresql_where=_LIVE_DATED,
            sqlite_where=_LIVE_DATED,
        ),
        Index("ix_event_attendance_participant", "participant_id", "checked_in_at"),
        CheckConstraint(
            "check_in_method IN ('token', 'geolocation', 'override')",
            name="ck_event_attendance_method",
        ),
        CheckConstraint(
            "(check_in_method = 'override' AND device_fingerprint IS NULL) OR "
            "(check_in_method <> 'override' AND device_fingerprint IS NOT NULL)",
            name="ck_event_attendance_device_fingerprint",
        ),
        CheckConstraint(
            "checked_out_at IS NULL OR checked_out_at >= checked_in_at",
            name="ck_event_attendance_checkout_after_checkin",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4()),
    )
    event_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("events.id", ondelete="CASCADE"), nullable=False,
    )
    instance_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    participant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    team_id: Mapped[str] = mapped_column(String(64), nullable=False)
    check_in_method: Mapped[str] = mapped_column(String(20), nullable=False)
    checked_in_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="present",
    )
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    late_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    late_category: Mapped[str] = mapped_column(
        String(20), nullable=False, default="on_time",
    )
    check_in_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    distance_from_event: Mapped[float | None] = mapped_column(Float, nullable=True)
    device_fingerprint: Mapped[str | None] = mapped_column(
        String(128), nullable=True,
    )
    is_flagged: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    flag_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    checked_out_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    deleted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    event: Mapped["Event"] = relationship("Event", back_populates="attendance")
