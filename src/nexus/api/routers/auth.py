from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...errors import ChatError
from ...security.auth import JwtConfig, TokenResponse, User, create_access_token, create_guest_user, get_current_user
from ...security.rate_limit import RateLimitExceeded, rate_limit_action

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/guest", response_model=TokenResponse)
def create_guest_session(request: Request) -> TokenResponse:
    identifier = request.client.host if request.client else "unknown"
    try:
        rate_limit_action(
            "guest_session",
            identifier,
            limit_env="NEXUS_GUEST_LIMIT",
            window_env="NEXUS_GUEST_WINDOW_SEC",
            default_limit=10,
            default_window_seconds=3600,
        )
    except RateLimitExceeded as exc:
        raise ChatError(
            "rate_limited:auth",
            "Too many guest sessions. Please try again later.",
            cause=f"Retry after {exc.retry_after_seconds}s",
        ) from exc

    cfg = JwtConfig.from_env()
    user = create_guest_user()
    token = create_access_token(user, cfg)
    return TokenResponse(access_token=token, expires_in=cfg.expires_min * 60, user=user)


@router.get("/me", response_model=User)
def me(user: User = Depends(get_current_user)) -> User:
    return user
