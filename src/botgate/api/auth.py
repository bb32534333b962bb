from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.config import Settings, get_settings
from botgate.core.deps import require_db_session
from botgate.core.errors import bad_request, unauthorized
from botgate.core.security import create_session_token, hash_password, verify_password
from botgate.storage.repos import create_user, get_user_by_email

router = APIRouter()
log = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    createdAt: datetime


@router.post("/auth/register", response_model=UserOut)
async def register(body: RegisterRequest, session: AsyncSession = Depends(require_db_session)) -> UserOut:
    email = body.email.strip().lower()
    if await get_user_by_email(session, email=email) is not None:
        raise bad_request("User already exists", code="USER_EXISTS")

    try:
        user = await create_user(session, name=body.name.strip(), email=email, password_hash=hash_password(body.password))
        await session.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent registration for the same email.
        await session.rollback()
        raise bad_request("User already exists", code="USER_EXISTS") from e

    log.info("auth.registered", extra={"user_id": user.id})
    return UserOut(id=user.id, name=user.name, email=user.email, createdAt=user.created_at)


@router.post("/auth/login")
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(require_db_session),
    settings: Settings = Depends(get_settings),
) -> dict[str, bool]:
    user = await get_user_by_email(session, email=body.email.strip().lower())
    if user is None or not verify_password(body.password, user.password_hash):
        log.info("auth.login_rejected")
        raise unauthorized("Invalid credentials", code="INVALID_CREDENTIALS")

    token = create_session_token(user_id=user.id, email=user.email, settings=settings)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.is_prod,
        samesite="lax",
        max_age=settings.session_ttl_hours * 3600,
        path="/",
    )
    log.info("auth.login", extra={"user_id": user.id})
    return {"success": True}


@router.post("/auth/logout")
def logout(response: Response, settings: Settings = Depends(get_settings)) -> dict[str, bool]:
    response.delete_cookie(key=settings.session_cookie_name, path="/")
    return {"success": True}
