"""Verification of auth-provider access tokens.

Identities are issued by the hosted auth provider (Supabase); this service only
checks the HS256 JWTs it signs with the project's JWT secret.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import jwt

ALGORITHM = "HS256"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _jwt_secret() -> str:
    return os.getenv("SUPABASE_JWT_SECRET") or os.getenv("JWT_SECRET_KEY", "change-me-in-production")


def _jwt_audience() -> str:
    return os.getenv("JWT_AUDIENCE", "authenticated")


def _access_ttl_minutes() -> int:
    return int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def create_access_token(*, user_id: str, email: str | None = None) -> tuple[str, datetime]:
    """Sign a provider-shaped access token; used by local tooling and tests."""
    issued_at = _utc_now()
    expires_at = issued_at + timedelta(minutes=_access_ttl_minutes())
    payload: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "aud": _jwt_audience(),
        "role": "authenticated",
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": str(uuid4()),
    }
    encoded = jwt.encode(payload, _jwt_secret(), algorithm=ALGORITHM)
    return encoded, expires_at


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(
        token,
        _jwt_secret(),
        algorithms=[ALGORITHM],
        audience=_jwt_audience(),
        options={"require": ["sub", "exp"]},
    )
