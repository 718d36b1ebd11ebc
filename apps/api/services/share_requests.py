"""Typed share creation requests and the form parser that builds them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from services.share_errors import InvalidExpiry, InvalidViewLimit, ShareValidationError

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off", ""}


@dataclass(frozen=True)
class FilePayload:
    filename: str
    content: bytes
    mime_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class CreateShareRequest:
    text: Optional[str] = None
    file: Optional[FilePayload] = None
    password: Optional[str] = None
    one_time_view: bool = False
    expiry_minutes: Optional[int] = None
    expiry_at: Optional[datetime] = None
    view_limit: Optional[int] = None


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def parse_flag(value: Optional[str], field: str) -> bool:
    if value is None:
        return False
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ShareValidationError(f"{field} must be true or false.")


def parse_expiry_minutes(value: Optional[str]) -> Optional[int]:
    raw = _blank_to_none(value)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidExpiry("Expiry minutes must be a valid number.") from exc


def parse_expiry_at(value: Optional[str]) -> Optional[datetime]:
    raw = _blank_to_none(value)
    if raw is None:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidExpiry("Invalid date format.") from exc


def parse_view_limit(value: Optional[str]) -> Optional[int]:
    raw = _blank_to_none(value)
    if raw is None:
        return None
    try:
        limit = int(raw)
    except ValueError as exc:
        raise InvalidViewLimit() from exc
    if limit < 1:
        raise InvalidViewLimit()
    return limit


def parse_share_form(
    *,
    text: Optional[str] = None,
    file: Optional[FilePayload] = None,
    password: Optional[str] = None,
    one_time_view: Optional[str] = None,
    expiry_minutes: Optional[str] = None,
    expiry_at: Optional[str] = None,
    max_views: Optional[str] = None,
) -> CreateShareRequest:
    """Turn raw multipart fields into a validated request.

    Empty strings count as absent. Payload exclusivity and expiry bounds are
    checked later by the lifecycle engine; this step only rejects values that
    cannot be parsed at all.
    """
    return CreateShareRequest(
        text=text if text else None,
        file=file,
        password=password if password else None,
        one_time_view=parse_flag(one_time_view, "one_time_view"),
        expiry_minutes=parse_expiry_minutes(expiry_minutes),
        expiry_at=parse_expiry_at(expiry_at),
        view_limit=parse_view_limit(max_views),
    )
