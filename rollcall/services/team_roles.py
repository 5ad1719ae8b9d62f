"""Team Role Lookup — effective role of a participant, memoised in the call's cache.

Invariants:
    - Granular role row first; the coarse membership row is read only when
      the granular row is absent
    - Cached under ("role", team_id, participant_id) in the caller's CredentialCache
"""

from rollcall.core.authorization import resolve_team_role
from rollcall.core.credential_cache import CredentialCache
from rollcall.core.repository_protocols import RoleDirectory


async def lookup_team_role(
    roles: RoleDirectory,
    cache: CredentialCache,
    team_id: str,
    participant_id: str,
) -> str:
    key = ("role", team_id, participant_id)
    cached = cache.get(key)
    if cached is not None:
        return cached

    role_row = await roles.get_team_role(team_id, participant_id)
    member_row = None
    if role_row is None:
        member_row = await roles.get_team_membership(team_id, participant_id)
    role = resolve_team_role(role_row, member_row)
    cache.put(key, role)
    return role
