import os
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Header, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from ..config import SUBMISSION_RATE_LIMIT, rate_limits_disabled
from ..exceptions import Unauthenticated


def get_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET environment variable is required")
    if len(secret) < 32 or secret.lower() in {"secret", "changeme", "default"}:
        raise RuntimeError(
            "JWT_SECRET must be at least 32 characters and not a common default"
        )
    return secret


JWT_ALG = "HS256"
JWT_EXPIRE_SECONDS = 3600


def _get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        parts = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
        if parts:
            return parts[-1]
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else ""


limiter = Limiter(key_func=_get_client_ip)


def submission_rate_limit() -> str:
    if rate_limits_disabled():
        return "1000/second"
    return SUBMISSION_RATE_LIMIT


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    detail = exc.detail if isinstance(exc.detail, str) else ""
    if detail:
        message = f"rate limit exceeded: {detail}"
    else:
        message = "rate limit exceeded: please wait before submitting another request."
    return JSONResponse(
        status_code=429,
        content={
            "type": "about:blank",
            "title": "Too many requests",
            "detail": message,
            "status": 429,
            "code": "rate_limit_exceeded",
        },
        media_type="application/problem+json",
    )


def issue_token(user_id: str, expires_in: int = JWT_EXPIRE_SECONDS) -> str:
    """Sign an identity token for ``user_id``.

    Production tokens come from the identity provider; this is used by the
    seed script and tests.
    """

    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, get_jwt_secret(), algorithm=JWT_ALG)


def _extract_bearer_token(authorization: str | None) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    raise Unauthenticated()


async def get_current_user_id(
    authorization: str | None = Header(None),
) -> str:
    """Resolve the caller's opaque user id from the bearer token."""

    token = _extract_bearer_token(authorization)
    try:
        payload = jwt.decode(token, get_jwt_secret(), algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired.")
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid token.")

    uid = payload.get("sub")
    if not isinstance(uid, str) or not uid.strip():
        raise Unauthenticated("Token has no subject.")
    return uid.strip()
