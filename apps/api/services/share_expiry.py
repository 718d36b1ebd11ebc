"""Expiry policy for new shares."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from services.share_errors import InvalidExpiry

DEFAULT_EXPIRY_MINUTES = 10
MIN_EXPIRY_MINUTES = 1
MAX_EXPIRY_MINUTES = 525_600
MAX_EXPIRY_WINDOW = timedelta(days=365)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_expiry(
    relative_minutes: Optional[int] = None,
    absolute_at: Optional[datetime] = None,
    *,
    now: datetime,
) -> datetime:
    """Compute the absolute expiry for a new share.

    An absolute instant wins over relative minutes when both are supplied.
    Without either, the share lives for ``DEFAULT_EXPIRY_MINUTES``.
    """
    now = ensure_utc(now)

    if absolute_at is not None:
        expires_at = ensure_utc(absolute_at)
        if expires_at <= now:
            raise InvalidExpiry("Expiry date and time must be in the future.")
        if expires_at > now + MAX_EXPIRY_WINDOW:
            raise InvalidExpiry("Expiry date cannot be more than 365 days in the future.")
        return expires_at

    if relative_minutes is not None:
        if isinstance(relative_minutes, bool) or not isinstance(relative_minutes, int):
            raise InvalidExpiry("Expiry minutes must be a whole number.")
        if relative_minutes < MIN_EXPIRY_MINUTES:
            raise InvalidExpiry(f"Expiry minutes must be at least {MIN_EXPIRY_MINUTES}.")
        if relative_minutes > MAX_EXPIRY_MINUTES:
            raise InvalidExpiry(
                f"Expiry minutes cannot exceed 365 days ({MAX_EXPIRY_MINUTES} minutes)."
            )
        return now + timedelta(minutes=relative_minutes)

    return now + timedelta(minutes=DEFAULT_EXPIRY_MINUTES)
