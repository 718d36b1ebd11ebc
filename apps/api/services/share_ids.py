"""Short, unguessable share identifiers."""

import re
import secrets

DEFAULT_SHARE_ID_LENGTH = 12

_SHARE_ID_PATTERN = re.compile(r"^[0-9a-f]{8,32}$")


def generate_share_id(length: int = DEFAULT_SHARE_ID_LENGTH) -> str:
    """Return a lowercase hex id drawn from the OS CSPRNG."""
    if length < 8 or length > 32:
        raise ValueError("share id length must be between 8 and 32")
    return secrets.token_hex((length + 1) // 2)[:length]


def is_valid_share_id(value: str) -> bool:
    return bool(_SHARE_ID_PATTERN.match(value or ""))
