"""Password hashing and bearer tokens for the email/password identity provider."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

import bcrypt
import jwt

from rentcircle.config import access_token_ttl_minutes, jwt_secret


BCRYPT_ROUNDS = 12
TOKEN_ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str
    expires_at: dt.datetime


def hash_password(password: str) -> str:
    # The hash string embeds algorithm, cost and salt.
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash.
        return False


def create_access_token(*, user_id: int, role: str, ttl_minutes: int | None = None) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    ttl = access_token_ttl_minutes() if ttl_minutes is None else ttl_minutes
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + dt.timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(claims, jwt_secret(), algorithm=TOKEN_ALGORITHM)


def read_access_token(token: str) -> TokenClaims:
    """
    Verify signature and expiry and return the claims.

    Raises `jwt.PyJWTError` for a bad/expired token and `ValueError` when the
    subject is not a user id.
    """
    payload = jwt.decode(token, jwt_secret(), algorithms=[TOKEN_ALGORITHM], options={"require": ["sub", "exp"]})
    return TokenClaims(
        user_id=int(payload["sub"]),
        role=str(payload.get("role") or ""),
        expires_at=dt.datetime.fromtimestamp(int(payload["exp"]), tz=dt.timezone.utc),
    )
