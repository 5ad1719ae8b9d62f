"""Initial schema — events, attendance groups, team roles, event_attendance.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

Live attendance uniqueness is enforced by two partial unique indexes: undated
rows on (event_id, participant_id), dated rows on (event_id, participant_id,
instance_date). Soft-deleted rows are excluded from both.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ID = sa.String(64)
_LIVE_UNDATED = "instance_date IS NULL AND NOT is_deleted"
_LIVE_DATED = "instance_date IS NOT NULL AND NOT is_deleted"


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("team_id", _ID, nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("check_in_radius", sa.Float, nullable=True),
        sa.Column("recurring_pattern", sa.String(20), nullable=False, server_default="none"),
        sa.Column("recurring_days", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("recurring_end_date", sa.Date, nullable=True),
        sa.Column("assigned_attendance_groups", sa.JSON, nullable=False, server_default="[]"),
        sa.Column(
            "check_in_methods", sa.JSON, nullable=False,
            server_default='["token", "geolocation", "override"]',
        ),
        sa.Column("created_by", _ID, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("end_time > start_time", name="ck_events_end_after_start"),
        sa.CheckConstraint(
            "recurring_pattern IN "
            "('none', 'daily', 'weekly', 'biweekly', 'monthly', 'custom_weekly')",
            name="ck_events_recurring_pattern",
        ),
    )

    op.create_table(
        "attendance_groups",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("team_id", _ID, nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "attendance_group_members",
        sa.Column(
            "group_id", _ID,
            sa.ForeignKey("attendance_groups.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("participant_id", _ID, primary_key=True, index=True),
    )

    op.create_table(
        "team_member_roles",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("team_id", _ID, nullable=False),
        sa.Column("participant_id", _ID, nullable=False),
        sa.Column("role", sa.String(30), nullable=False),
        sa.UniqueConstraint("team_id", "participant_id", name="uq_team_member_roles"),
        sa.CheckConstraint(
            "role IN ('head_coach', 'assistant_coach', 'position_coach', "
            "'team_admin', 'student_manager', 'athletic_trainer', 'player')",
            name="ck_team_member_roles_role",
        ),
    )

    op.create_table(
        "team_members",
        sa.Column("id", _ID, primary_key=True),
        sa.Column("team_id", _ID, nullable=False),
        sa.Column("participant_id", _ID, nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="player"),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default="false"),
        sa.UniqueConstraint("team_id", "participant_id", name="uq_team_members"),
    )

    op.create_table(
        "event_attendance",
        sa.Column("id", _ID, primary_key=True),
        sa.Column(
            "event_id", _ID,
            sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("instance_date", sa.Date, nullable=True),
        sa.Column("participant_id", _ID, nullable=False),
        sa.Column("team_id", _ID, nullable=False),
        sa.Column("check_in_method", sa.String(20), nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="present"),
        sa.Column("is_late", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("late_minutes", sa.Integer, nullable=True),
        sa.Column("late_category", sa.String(20), nullable=False, server_default="on_time"),
        sa.Column("check_in_latitude", sa.Float, nullable=True),
        sa.Column("check_in_longitude", sa.Float, nullable=True),
        sa.Column("distance_from_event", sa.Float, nullable=True),
        sa.Column("device_fingerprint", sa.String(128), nullable=True),
        sa.Column("is_flagged", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("flag_reason", sa.Text, nullable=True),
        sa.Column("checked_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", _ID, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "check_in_method IN ('token', 'geolocation', 'override')",
            name="ck_event_attendance_method",
        ),
        sa.CheckConstraint(
            "(check_in_method = 'override' AND device_fingerprint IS NULL) OR "
            "(check_in_method <> 'override' AND device_fingerprint IS NOT NULL)",
            name="ck_event_attendance_device_fingerprint",
        ),
        sa.CheckConstraint(
            "checked_out_at IS NULL OR checked_out_at >= checked_in_at",
            name="ck_event_attendance_checkout_after_checkin",
        ),
    )
    op.create_index(
        "uq_event_attendance_live_undated", "event_attendance",
        ["event_id", "participant_id"], unique=True,
        postgresql_where=sa.text(_LIVE_UNDATED),
    )
    op.create_index(
        "uq_event_attendance_live_dated", "event_attendance",
        ["event_id", "participant_id", "instance_date"], unique=True,
        postgresql_where=sa.text(_LIVE_DATED),
    )
    op.create_index(
        "ix_event_attendance_participant", "event_attendance",
        ["participant_id", "checked_in_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_event_attendance_participant", table_name="event_attendance")
    op.drop_index("uq_event_attendance_live_dated", table_name="event_attendance")
    op.drop_index("uq_event_attendance_live_undated", table_name="event_attendance")
    op.drop_table("event_attendance")
    op.drop_table("team_members")
    op.drop_table("team_member_roles")
    op.drop_table("attendance_group_members")
    op.drop_table("attendance_groups")
    op.drop_table("events")
