"""Authentication dependencies for share ownership."""

import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.session_token import SessionIdentity, decode_session_token


auth_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> SessionIdentity:
    """Resolve authenticated user from a Bearer session token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail={"reason": "authentication_required", "message": "Missing Bearer session token."},
        )

    try:
        return decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(
            status_code=401,
            detail={"reason": "invalid_session", "message": str(exc)},
        ) from exc


async def get_optional_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> Optional[SessionIdentity]:
    """Like get_auth_context, but an absent or unusable token means anonymous."""
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    try:
        return decode_session_token(credentials.credentials)
    except ValueError as exc:
        logger.info("Ignoring unusable bearer token on optional-auth route: %s", exc)
        return None
