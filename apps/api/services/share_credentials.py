"""
Share password hashing using PBKDF2-HMAC-SHA256.
"""

import base64
import os

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

HASH_SCHEME = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 200_000
SALT_BYTES = 16
KEY_BYTES = 32


def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=iterations,
    )


def hash_password(password: str, iterations: int = DEFAULT_ITERATIONS) -> str:
    """
    Hash a share password with a fresh random salt.

    Args:
        password: Plain text password
        iterations: PBKDF2 work factor

    Returns:
        Encoded hash ``pbkdf2_sha256$<iterations>$<salt>$<digest>``
    """
    salt = os.urandom(SALT_BYTES)
    digest = _kdf(salt, iterations).derive(password.encode("utf-8"))
    return "$".join(
        [
            HASH_SCHEME,
            str(iterations),
            base64.urlsafe_b64encode(salt).decode(),
            base64.urlsafe_b64encode(digest).decode(),
        ]
    )


def verify_password(password: str, encoded: str) -> bool:
    """Check a password against an encoded hash. Malformed hashes never match."""
    try:
        scheme, iterations_raw, salt_b64, digest_b64 = (encoded or "").split("$")
        if scheme != HASH_SCHEME:
            return False
        iterations = int(iterations_raw)
        salt = base64.urlsafe_b64decode(salt_b64.encode())
        digest = base64.urlsafe_b64decode(digest_b64.encode())
    except (ValueError, TypeError):
        return False

    try:
        _kdf(salt, iterations).verify(password.encode("utf-8"), digest)
    except InvalidKey:
        return False
    return True
