"""Scan Token Codec — issue and verify the opaque credential shown as a QR code.

Invariants:
    - Pure: output depends only on arguments (now, random source, secret are injected)
    - verify_token never raises — every malformed input maps to {"valid": False, "reason"}
    - Fails closed: missing/unparseable expiry or expiry in the past is invalid
    - No event/occurrence binding here (no store access) — credential_validator does that

Design Decisions:
    - base64url(JSON) payload, optionally followed by ".<hmac-sha256>" when a
      secret is configured (same shape as the device session tokens elsewhere)
    - Nonce from an injected byte source; NotImplementedError from the source
      falls back to a pseudo-random base-36 nonce
"""

import base64
import binascii
import hashlib
import hmac
import json
import random
import string
from datetime import date, datetime
from typing import Callable

from rollcall.core.domain_types import ScanCredential, ensure_aware

_NONCE_BYTES = 16
_BASE36 = string.digits + string.ascii_lowercase


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _sign(payload_b64: str, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"), payload_b64.encode("ascii"), hashlib.sha256,
    ).digest()
    return _b64url_encode(digest)


def _fallback_nonce() -> str:
    return "".join(random.choice(_BASE36) for _ in range(26))


def make_nonce(random_bytes: Callable[[int], bytes]) -> str:
    """Hex nonce from the byte source; best-effort fallback when none exists."""
    try:
        return random_bytes(_NONCE_BYTES).hex()
    except NotImplementedError:
        return _fallback_nonce()


def build_payload(
    event_id: str,
    team_id: str,
    expires_at: datetime,
    instance_date: date | str | None,
    *,
    now: datetime,
    nonce: str,
) -> dict:
    payload = {
        "event_id": event_id,
        "team_id": team_id,
        "expires_at": ensure_aware(expires_at).isoformat(),
        "issued_at": ensure_aware(now).isoformat(),
        "nonce": nonce,
    }
    if instance_date:
        payload["instance_date"] = (
            instance_date.isoformat() if isinstance(instance_date, date)
            else instance_date
        )
    return payload


def issue_token(
    event_id: str,
    team_id: str,
    expires_at: datetime,
    instance_date: date | str | None = None,
    *,
    now: datetime,
    random_bytes: Callable[[int], bytes],
    secret: str | None = None,
) -> str:
    """Encode a fresh scan credential. instance_date only for recurring events."""
    payload = build_payload(
        event_id, team_id, expires_at, instance_date,
        now=now, nonce=make_nonce(random_bytes),
    )
    body = _b64url_encode(
        json.dumps(payload, separators=(",", ":")).encode("utf-8"),
    )
    if secret:
        return f"{body}.{_sign(body, secret)}"
    return body


def _invalid(reason: str) -> dict:
    return {"valid": False, "reason": reason}


def _parse_instant(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def verify_token(
    token: object, *, now: datetime, secret: str | None = None,
) -> dict:
    """Decode and check expiry. Returns {"valid", "payload"} or {"valid", "reason"}."""
    if not token or not isinstance(token, str) or not token.isascii():
        return _invalid("invalid_token_format")

    body, _, signature = token.partition(".")
    if secret:
        if not signature or not hmac.compare_digest(signature, _sign(body, secret)):
            return _invalid("bad_signature")

    try:
        decoded = json.loads(_b64url_decode(body).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return _invalid("invalid_base64")
    if not isinstance(decoded, dict):
        return _invalid("invalid_base64")

    if not decoded.get("expires_at"):
        return _invalid("missing_expiration")
    expires_at = _parse_instant(decoded["expires_at"])
    if expires_at is None:
        return _invalid("invalid_expiration")
    if expires_at < ensure_aware(now):
        return _invalid("expired")

    return {
        "valid": True,
        "payload": ScanCredential(
            event_id=str(decoded.get("event_id") or ""),
            team_id=str(decoded.get("team_id") or ""),
            expires_at=expires_at,
            issued_at=_parse_instant(decoded.get("issued_at")),
            nonce=str(decoded.get("nonce") or ""),
            instance_date=decoded.get("instance_date") or None,
        ),
    }
