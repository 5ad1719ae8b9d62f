"""AttendanceGroup ORM — named subsets of a team that events can be restricted to.

Invariants:
    - (group_id, participant_id) is the membership primary key: no duplicates
    - Deleting a group cascades to its memberships
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rollcall.db.base import Base


class AttendanceGroup(Base):
    __tablename__ = "attendance_groups"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4()),
    )
    team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    members: Mapped[list["AttendanceGroupMember"]] = relationship(
        "AttendanceGroupMember", back_populates="group",
        cascade="all, delete-orphan", passive_deletes=True,
    )


class AttendanceGroupMember(Base):
    __tablename__ = "attendance_group_members"

    group_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("attendance_groups.id", ondelete="CASCADE"),
        primary_key=True,
    )
    participant_id: Mapped[str] = mapped_column(
        String(64), primary_key=True, index=True,
    )

    group: Mapped[AttendanceGroup] = relationship(
        AttendanceGroup, back_populates="members",
    )
