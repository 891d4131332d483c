from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, Request, status
from jwt import InvalidTokenError
from loguru import logger
from passlib.context import CryptContext

from homeledger.core.config import Settings, get_settings
from homeledger.core.rate_limit import FixedWindowRateLimiter

TOKEN_COOKIE = "token"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class CurrentUser:
    def __init__(self, id: int, username: str) -> None:
        self.id = id
        self.username = username


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, username: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + timedelta(days=settings.token_ttl_days)
    payload = {"sub": str(user_id), "username": username, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings | None = None) -> CurrentUser:
    settings = settings or get_settings()
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    return CurrentUser(id=int(payload["sub"]), username=payload.get("username", ""))


def _token_from_request(request: Request) -> str | None:
    token = request.cookies.get(TOKEN_COOKIE)
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def get_current_user(
    request: Request, settings: Settings = Depends(get_settings)
) -> CurrentUser:
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        return decode_access_token(token, settings)
    except (InvalidTokenError, KeyError, ValueError):
        logger.info("Rejected invalid token", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_auth_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.auth_rate_limiter


def rate_limit_auth(
    request: Request, limiter: FixedWindowRateLimiter = Depends(get_auth_rate_limiter)
) -> None:
    client_ip = request.client.host if request.client else "unknown"
    limiter.hit(client_ip)
