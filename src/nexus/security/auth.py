from __future__ import annotations

"""Authentication utilities: JWT handling and guest identities.

Credential verification is delegated to whoever issues the bearer token; this
module only signs and decodes tokens and exposes FastAPI dependencies that
resolve the caller.

Env vars:
- JWT_SECRET (required in prod; default for dev)
- JWT_EXPIRES_MIN (default 60)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import os
import logging
import uuid
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..errors import ChatError
from .entitlements import UserType


logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    expires_min: int = 60

    @staticmethod
    def from_env() -> "JwtConfig":
        secret = _get_env("JWT_SECRET", "dev-secret-change-me")
        expires = int(os.getenv("JWT_EXPIRES_MIN", "60"))
        return JwtConfig(secret=secret, expires_min=expires)


class User(BaseModel):
    id: str
    email: Optional[str] = None
    type: UserType = UserType.REGULAR


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: User


def create_access_token(user: User, cfg: Optional[JwtConfig] = None) -> str:
    cfg = cfg or JwtConfig.from_env()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.expires_min)
    payload = {
        "sub": user.id,
        "email": user.email,
        "type": user.type.value,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)


def decode_token(token: str, cfg: Optional[JwtConfig] = None) -> User:
    cfg = cfg or JwtConfig.from_env()
    try:
        data = jwt.decode(token, cfg.secret, algorithms=[cfg.algorithm])
        return User(id=str(data["sub"]), email=data.get("email"), type=UserType(data.get("type", "regular")))
    except jwt.ExpiredSignatureError:
        raise ChatError("unauthorized:auth", "Token expired")
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise ChatError("unauthorized:auth", "Invalid token")


def create_guest_user() -> User:
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    user = User(id=str(uuid.uuid4()), email=f"guest-{stamp}", type=UserType.GUEST)
    logger.info("Created guest user %s", user.id)
    return user


def get_optional_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[User]:
    """Resolve the caller, or None when no usable bearer token is present.

    Routers use this variant so they can choose the error surface for an
    anonymous caller themselves.
    """
    if creds is None or not creds.scheme or creds.scheme.lower() != "bearer":
        return None
    try:
        return decode_token(creds.credentials)
    except ChatError:
        return None


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise ChatError("unauthorized:auth", "Missing bearer token")
    return user
