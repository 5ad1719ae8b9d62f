"""System Sources — production Clock and RandomSource implementations.

Invariants:
    - SystemClock.now() is always timezone-aware UTC
    - SecureRandomSource draws from the OS CSPRNG (secrets)
"""

import secrets
from datetime import datetime, timezone


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class SecureRandomSource:
    def token_bytes(self, n: int) -> bytes:
        return secrets.token_bytes(n)
