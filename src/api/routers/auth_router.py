"""Auth endpoints — login, logout, me."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from src.api.app import limiter
from src.api.auth import (
    authenticate_admin,
    clear_auth_cookie,
    create_access_token,
    set_auth_cookie,
)
from src.api.dependencies import get_current_user

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=128)


class SessionResponse(BaseModel):
    ok: bool = True
    username: str = ""
    expires_at: int | None = None  # epoch ms


def _expiry_ms(exp: int | None) -> int | None:
    return exp * 1000 if exp is not None else None


@router.post("/login", response_model=SessionResponse)
@limiter.limit("5/minute")
async def login(request: Request, body: LoginRequest, response: Response) -> SessionResponse:
    """Check admin credentials and set the session cookie."""
    if not authenticate_admin(body.username, body.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    token, payload = create_access_token(body.username)
    set_auth_cookie(response, token)
    return SessionResponse(username=body.username, expires_at=_expiry_ms(payload["exp"]))


@router.post("/logout", response_model=SessionResponse)
async def logout(
    response: Response,
    _user: dict = Depends(get_current_user),
) -> SessionResponse:
    clear_auth_cookie(response)
    return SessionResponse()


@router.get("/me", response_model=SessionResponse)
async def me(user: dict = Depends(get_current_user)) -> SessionResponse:
    return SessionResponse(username=user["sub"], expires_at=_expiry_ms(user.get("exp")))
