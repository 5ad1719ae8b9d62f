"""Team Membership ORM — granular per-team roles plus the coarse membership row.

Invariants:
    - One TeamMemberRole per (team, participant); it is the primary role source
    - TeamMember (role coach | player, is_admin) is consulted only when no
      TeamMemberRole row exists

Design Decisions:
    - Two tables kept side by side: older teams only carry the coarse row
"""

import uuid

from sqlalchemy import Boolean, CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rollcall.db.base import Base


class TeamMemberRole(Base):
    __tablename__ = "team_member_roles"
    __table_args__ = (
        UniqueConstraint("team_id", "participant_id", name="uq_team_member_roles"),
        CheckConstraint(
            "role IN ('head_coach', 'assistant_coach', 'position_coach', "
            "'team_admin', 'student_manager', 'athletic_trainer', 'player')",
            name="ck_team_member_roles_role",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4()),
    )
    team_id: Mapped[str] = mapped_column(String(64), nullable=False)
    participant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(30), nullable=False)


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "participant_id", name="uq_team_members"),
    )

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4()),
    )
    team_id: Mapped[str] = mapped_column(String(64), nullable=False)
    participant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="player")
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
