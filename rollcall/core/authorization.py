"""Authorization Gate — self-service vs. delegated eligibility, decided before any write.

Invariants:
    - All functions are PURE: lookups happen in the shell, results passed in
    - Return error dict on violation, None on success
    - Self-service (or override targeting oneself): open event, or caller in ≥1 assigned group
    - Delegated marking (override targeting someone else) skips the group check
      and requires a qualifying role
    - Role resolution: granular team role first; only when absent, the coarse
      team-membership row (is_admin ⇒ team_admin, coach ⇒ assistant_coach)
    - Overrides never carry coordinates

Design Decisions:
    - Chained checks with `or`: first error wins, same as the pipeline orchestrator
"""

from rollcall.core.domain_types import (
    CheckInMethod, QUALIFYING_ROLES, TeamRole,
)
from rollcall.core.errors import ErrorCode, failure


def is_delegated(method: CheckInMethod, caller_id: str, target_id: str | None) -> bool:
    """Override aimed at another participant."""
    return (
        method is CheckInMethod.OVERRIDE
        and target_id is not None
        and target_id != caller_id
    )


def check_method_allowed(event: dict, method: CheckInMethod) -> dict | None:
    allowed = event.get("check_in_methods")
    if allowed and method.value not in allowed:
        return failure(
            ErrorCode.METHOD_NOT_ALLOWED,
            f"Check-in method '{method.value}' is not enabled for this event",
        )
    return None


def check_manual_payload(
    method: CheckInMethod, latitude: float | None, longitude: float | None,
) -> dict | None:
    if method is CheckInMethod.OVERRIDE and (latitude is not None or longitude is not None):
        return failure(
            ErrorCode.INVALID_MANUAL_CHECKIN,
            "Manual check-ins cannot include location data",
        )
    return None


def requires_group_check(event: dict) -> bool:
    return bool(event.get("assigned_attendance_groups"))


def check_group_membership(
    event: dict, member_group_ids: set[str], group_names: list[str] | None = None,
) -> dict | None:
    """member_group_ids: the caller's groups among the event's assigned groups."""
    assigned = event.get("assigned_attendance_groups") or []
    if not assigned or member_group_ids.intersection(assigned):
        return None
    names = ", ".join(group_names or []) or "assigned groups"
    return failure(
        ErrorCode.NOT_IN_GROUP,
        f"This event is only for {names}. You are not a member of any "
        f"assigned group. Please contact your coach if you believe this is an error.",
        groups=list(group_names or []),
    )


def resolve_team_role(role_row: dict | None, member_row: dict | None) -> str:
    """Effective team role from the granular lookup, falling back to membership."""
    if role_row and role_row.get("role"):
        return role_row["role"]
    if member_row:
        if member_row.get("is_admin"):
            return TeamRole.TEAM_ADMIN.value
        if member_row.get("role") == "coach":
            return TeamRole.ASSISTANT_COACH.value
    return TeamRole.PLAYER.value


def has_qualifying_role(role: str) -> bool:
    return role in {r.value for r in QUALIFYING_ROLES}


def check_delegation_role(role: str) -> dict | None:
    if not has_qualifying_role(role):
        return failure(
            ErrorCode.PERMISSION_DENIED,
            "Only coaches and admins can manually mark attendance for other users",
            role=role,
        )
    return None


def check_token_issuer(event: dict, caller_id: str, role: str) -> dict | None:
    """Event creators and qualifying roles may mint scan tokens."""
    if event.get("created_by") == caller_id or has_qualifying_role(role):
        return None
    return failure(
        ErrorCode.PERMISSION_DENIED,
        "Only event creators, coaches, and admins can generate QR codes",
    )


def check_record_admin(role: str) -> dict | None:
    if not has_qualifying_role(role):
        return failure(
            ErrorCode.PERMISSION_DENIED,
            "Only coaches and admins can remove attendance records",
        )
    return None
