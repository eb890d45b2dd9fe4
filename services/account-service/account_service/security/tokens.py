"""Utilities for minting one-time account tokens."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone


def generate_token() -> str:
    """Return a random url-safe token suitable for activation or reset links."""
    return secrets.token_urlsafe(24)


def issue_token(ttl_seconds: int, now: datetime | None = None) -> tuple[str, datetime]:
    """Generate a token together with its expiry timestamp.

    Parameters
    ----------
    ttl_seconds:
        Lifetime of the token, counted from ``now``.
    now:
        Reference time; defaults to the current UTC time.

    Returns
    -------
    tuple[str, datetime]
        The token string and the moment after which it must be rejected.
    """

    issued_at = now or datetime.now(timezone.utc)
    return generate_token(), issued_at + timedelta(seconds=ttl_seconds)


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """Return ``True`` when ``expires_at`` is set and already in the past."""
    if expires_at is None:
        return False
    return expires_at <= (now or datetime.now(timezone.utc))
