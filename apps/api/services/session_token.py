"""Bearer session tokens issued by the identity provider.

The identity provider (Supabase Auth in production) signs HS256 access tokens
with the project JWT secret; the API only verifies them locally. Anonymous
role tokens (the provider's public API key) never identify a user.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


AUTHENTICATED_ROLE = "authenticated"


@dataclass(frozen=True)
class SessionIdentity:
    user_id: str
    email: Optional[str] = None
    role: str = AUTHENTICATED_ROLE


def create_session_token(
    user_id: str,
    email: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> Dict[str, Any]:
    """Mint a provider-shaped access token (local development and tests)."""
    now = datetime.now(timezone.utc)
    ttl_hours = int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24)
    expires_at = now + timedelta(hours=max(ttl_hours, 1))
    claims: Dict[str, Any] = {
        "sub": user_id,
        "role": AUTHENTICATED_ROLE,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if settings.JWT_AUDIENCE:
        claims["aud"] = settings.JWT_AUDIENCE
    if email:
        claims["email"] = email

    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {
        "token": token,
        "expires_at": int(expires_at.timestamp()),
    }


def decode_session_token(token: str) -> SessionIdentity:
    """Verify signature, expiry and audience, then return the caller identity."""
    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE or None,
            options=options,
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    role = str(payload.get("role", AUTHENTICATED_ROLE)).strip()
    if role != AUTHENTICATED_ROLE:
        raise ValueError("Session token does not identify a signed-in user.")

    subject = str(payload.get("sub", "")).strip()
    if not subject:
        raise ValueError("Session token missing subject.")

    return SessionIdentity(
        user_id=subject,
        email=str(payload.get("email", "")).strip() or None,
        role=role,
    )
