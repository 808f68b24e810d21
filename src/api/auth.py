"""Operator sessions — one admin account, signed token in an httpOnly cookie."""

from __future__ import annotations

import hmac
import secrets
import time
from typing import Any

from fastapi import HTTPException, Response, status
from jose import JWTError, jwt

from config.settings import settings

ALGORITHM = "HS256"
SESSION_TTL_SEC = 12 * 3600
REFRESH_AFTER_SEC = SESSION_TTL_SEC // 2  # sliding window
COOKIE_NAME = "access_token"

# Used when API_JWT_SECRET is unset: sessions do not survive a restart
_process_key = secrets.token_hex(32)


def _signing_key() -> str:
    return settings.api_jwt_secret or _process_key


def _invalid_session() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def create_access_token(username: str) -> tuple[str, dict[str, Any]]:
    """Sign a session for ``username``. Claims carry ``iat``/``exp`` in epoch seconds."""
    issued = int(time.time())
    claims: dict[str, Any] = {"sub": username, "iat": issued, "exp": issued + SESSION_TTL_SEC}
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM), claims


def decode_token(token: str) -> dict[str, Any]:
    """Verified claims, or HTTPException(401).

    A session is only valid for the currently configured admin user.
    """
    try:
        claims = jwt.decode(token, _signing_key(), algorithms=[ALGORITHM])
    except JWTError as e:
        raise _invalid_session() from e
    if not claims.get("sub") or claims["sub"] != settings.api_admin_user:
        raise _invalid_session()
    return claims


def should_refresh_token(claims: dict[str, Any]) -> bool:
    issued = claims.get("iat")
    if not isinstance(issued, int):
        return False
    return time.time() - issued > REFRESH_AFTER_SEC


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        httponly=True,
        secure=False,  # True behind HTTPS
        samesite="lax",
        path="/",
        max_age=SESSION_TTL_SEC,
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(key=COOKIE_NAME, path="/")


def authenticate_admin(username: str, password: str) -> bool:
    """Constant-time credential check. Login is disabled while no password is set."""
    if not settings.api_admin_password:
        return False
    user_ok = hmac.compare_digest(username.encode(), settings.api_admin_user.encode())
    pass_ok = hmac.compare_digest(password.encode(), settings.api_admin_password.encode())
    return user_ok and pass_ok
