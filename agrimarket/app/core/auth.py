"""
Bearer-token authentication guard.

Tokens are issued by the identity service; this module only verifies them
and exposes the user id to the routers. `create_access_token` mirrors the
issuer's format for scripts and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Header, HTTPException

from agrimarket.app.core.settings import get_settings

JWT_ALGORITHM = "HS256"
JWT_EXPIRY_HOURS = 24 * 7  # 7 days


def _jwt_secret() -> str:
    secret = get_settings().JWT_SECRET
    if not secret:
        raise HTTPException(status_code=503, detail="Authentication not configured (JWT_SECRET missing)")
    return secret


def create_access_token(user_id: int, role: str = "user", expires_in: Optional[timedelta] = None) -> str:
    """Create a signed access token for `user_id`."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + (expires_in or timedelta(hours=JWT_EXPIRY_HOURS)),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[int]:
    """Return the user id carried by the token, or None when it is invalid or expired."""
    try:
        payload = jwt.decode(token, _jwt_secret(), algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError, KeyError):
        return None


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> int:
    """
    FastAPI dependency returning the authenticated user id.

    Expects Authorization header in format: "Bearer <token>"

    Raises:
        HTTPException 401: If authentication fails
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid Authorization header format. Expected: Bearer <token>",
        )

    user_id = decode_access_token(parts[1])
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user_id


async def require_admin_token(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    """Require admin token. If ADMIN_SECRET is not configured, reject all requests (fail-closed)."""
    admin_secret = get_settings().ADMIN_SECRET
    if not admin_secret:
        raise HTTPException(status_code=503, detail="Admin endpoints not configured (ADMIN_SECRET missing)")
    if not x_admin_token or x_admin_token != admin_secret:
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")
