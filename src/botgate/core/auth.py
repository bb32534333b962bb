from __future__ import annotations

from fastapi import Depends, Header, Request

from botgate.core.config import Settings, get_settings
from botgate.core.errors import unauthorized
from botgate.core.security import SessionClaims, decode_session_token


def _parse_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2:
        return None
    scheme, value = parts[0].lower(), parts[1].strip()
    if scheme != "bearer" or not value:
        return None
    return value


def get_session_claims(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
) -> SessionClaims | None:
    """Header token wins over the cookie. Returns None when no valid session is present."""
    token = _parse_bearer(authorization) or request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    return decode_session_token(token, settings)


def require_session(claims: SessionClaims | None = Depends(get_session_claims)) -> SessionClaims:
    if claims is None:
        raise unauthorized()
    return claims
