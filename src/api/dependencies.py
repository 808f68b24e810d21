"""FastAPI dependency injection — auth and the pipeline facade."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.api.auth import COOKIE_NAME, create_access_token, decode_token, should_refresh_token
from src.reclaim.pipeline import ReclaimPipeline


def get_pipeline(request: Request) -> ReclaimPipeline:
    """Pipeline created at startup and stored on app.state."""
    return request.app.state.pipeline


async def get_current_user(request: Request) -> dict:
    """Extract and validate JWT from the httpOnly cookie.

    Sliding window: sessions older than REFRESH_AFTER_SEC get a fresh token
    stashed on request.state; SecurityHeadersMiddleware sets the cookie.
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    payload = decode_token(token)

    if should_refresh_token(payload):
        new_token, _ = create_access_token(payload.get("sub", ""))
        request.state.refresh_token = new_token

    return payload
