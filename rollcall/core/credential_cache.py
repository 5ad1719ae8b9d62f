"""Credential Cache — short-lived memo for lookups repeated within one call context.

Invariants:
    - Owned by the call context that constructs it; never module-global
    - Entries expire after ttl_seconds measured on the injected clock
    - Size bounded by max_entries; oldest insertion evicted first
    - get() never returns an expired entry

Design Decisions:
    - OrderedDict gives insertion order for eviction without a heap
    - Clock is any zero-arg callable returning an aware datetime, so tests fix "now"
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, Hashable

_MISSING = object()


class CredentialCache:
    """Bounded TTL cache keyed by any hashable (token string, (team, participant), ...)."""

    def __init__(
        self,
        clock: Callable[[], datetime],
        ttl_seconds: float = 30,
        max_entries: int = 256,
    ):
        if ttl_seconds <= 0 or max_entries <= 0:
            raise ValueError("ttl_seconds and max_entries must be positive")
        self._clock = clock
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_entries = max_entries
        self._entries: OrderedDict[Hashable, tuple[datetime, Any]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return default
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return default
        return value

    def put(self, key: Hashable, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock() + self._ttl, value)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = compute()
            self.put(key, value)
        return value

    def clear(self) -> None:
        self._entries.clear()
