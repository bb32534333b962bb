from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from botgate.core.auth import get_session_claims
from botgate.core.config import Settings, get_settings
from botgate.core.security import SessionClaims, create_session_token, decode_session_token, hash_password, verify_password

SETTINGS = Settings(jwt_secret="guard-secret")


def _guarded_app() -> FastAPI:
    app = FastAPI()

    @app.get("/whoami")
    def whoami(claims: SessionClaims | None = Depends(get_session_claims)) -> dict:
        return {"user_id": claims.user_id if claims else None}

    app.dependency_overrides[get_settings] = lambda: SETTINGS
    return app


def test_token_round_trip() -> None:
    token = create_session_token(user_id="u-1", email="a@example.com", settings=SETTINGS)
    assert decode_session_token(token, SETTINGS) == SessionClaims(user_id="u-1", email="a@example.com")


def test_expired_token_is_no_identity() -> None:
    past = datetime.now(tz=timezone.utc) - timedelta(hours=1)
    token = jwt.encode({"userId": "u-1", "email": "a@example.com", "exp": past}, "guard-secret", algorithm="HS256")
    assert decode_session_token(token, SETTINGS) is None


def test_wrong_secret_is_no_identity() -> None:
    token = create_session_token(user_id="u-1", email="a@example.com", settings=Settings(jwt_secret="other"))
    assert decode_session_token(token, SETTINGS) is None


def test_header_wins_over_cookie() -> None:
    client = TestClient(_guarded_app())
    header_token = create_session_token(user_id="from-header", email="h@example.com", settings=SETTINGS)
    cookie_token = create_session_token(user_id="from-cookie", email="c@example.com", settings=SETTINGS)

    client.cookies.set("token", cookie_token)
    resp = client.get("/whoami", headers={"Authorization": f"Bearer {header_token}"})
    assert resp.json() == {"user_id": "from-header"}

    resp = client.get("/whoami")
    assert resp.json() == {"user_id": "from-cookie"}


def test_malformed_header_falls_back_to_no_identity() -> None:
    client = TestClient(_guarded_app())
    resp = client.get("/whoami", headers={"Authorization": "Token abc"})
    assert resp.json() == {"user_id": None}


def test_password_hashing() -> None:
    hashed = hash_password("s3cret")
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret", "not-a-bcrypt-hash")


def test_protected_route_rejects_without_session() -> None:
    from botgate.main import create_app

    client = TestClient(create_app())
    resp = client.get("/bots")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}
