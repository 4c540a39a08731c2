"""
Identity provider token verification.

Sessions, refresh and sign-out belong to the external identity provider.
This module only verifies the HS256 access token it issues and exposes the
user id from the "sub" claim to request handlers.
"""
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel

from consent_backend.app.core.logging import bind_request_context, get_logger
from consent_backend.app.core.settings import Settings, get_settings

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"
DEV_USER_ID = "00000000-0000-0000-0000-000000000000"


class AuthenticatedUser(BaseModel):
    """Caller identity for the current request"""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None


def decode_access_token(token: str, secret: str, audience: Optional[str] = None) -> AuthenticatedUser:
    """
    Verify an access token and extract the caller identity.

    Raises:
        HTTPException 401: If the token is expired, malformed or has no subject
    """
    options = {"require": ["sub", "exp"], "verify_aud": audience is not None}
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            audience=audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError as e:
        logger.info("Rejected access token", error=str(e))
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = str(payload.get("sub") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")

    return AuthenticatedUser(
        user_id=user_id,
        email=payload.get("email"),
        role=payload.get("role"),
    )


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    """
    FastAPI dependency to get and verify the current user.

    Use in endpoints that require authentication:

        @router.get("/protected")
        async def protected_endpoint(
            user: AuthenticatedUser = Depends(get_current_user)
        ):
            user_id = user.user_id
            ...

    Raises:
        HTTPException 401: If authentication fails
    """
    # Allow bypassing auth in development
    if settings.DISABLE_AUTH:
        user = AuthenticatedUser(user_id=DEV_USER_ID, email="dev@example.com")
        bind_request_context(user_id=user.user_id)
        return user

    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    if not settings.JWT_SECRET:
        raise HTTPException(status_code=500, detail="Server configuration error: JWT_SECRET not set")

    user = decode_access_token(token, settings.JWT_SECRET, settings.JWT_AUDIENCE)
    bind_request_context(user_id=user.user_id)
    return user


async def require_admin_token(
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Require admin token. If ADMIN_SECRET is not configured, reject all requests (fail-closed)."""
    if not settings.ADMIN_SECRET:
        logger.warning("ADMIN_SECRET not configured, admin endpoints are blocked")
        raise HTTPException(status_code=503, detail="Admin access not configured (ADMIN_SECRET missing)")
    if not x_admin_token or x_admin_token != settings.ADMIN_SECRET:
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")
