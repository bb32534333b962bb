"""Password hashing and session token signing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from botgate.core.config import Settings, get_settings


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def create_session_token(*, user_id: str, email: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    now = datetime.now(tz=timezone.utc)
    payload = {
        "userId": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(hours=settings.session_ttl_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str, settings: Settings | None = None) -> SessionClaims | None:
    """Verify signature and expiry. Returns None for anything that is not a valid session."""
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    user_id = payload.get("userId")
    if not user_id:
        return None
    return SessionClaims(user_id=str(user_id), email=str(payload.get("email") or ""))
