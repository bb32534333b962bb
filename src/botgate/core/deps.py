from __future__ import annotations

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.auth import require_session
from botgate.core.config import Settings, get_settings
from botgate.core.errors import service_unavailable, unauthorized
from botgate.core.security import SessionClaims
from botgate.providers.cometchat import CometChatClient
from botgate.providers.factory import AssistantProviderFactory
from botgate.services.orchestrator import RunPolicy
from botgate.storage.models import User
from botgate.storage.repos import get_user


async def get_db_session(request: Request):
    sessionmaker = getattr(request.app.state, "db_sessionmaker", None)
    if sessionmaker is None:
        yield None
        return

    session: AsyncSession = sessionmaker()
    try:
        yield session
    finally:
        await session.close()


def require_db_session(session: AsyncSession | None = Depends(get_db_session)) -> AsyncSession:
    if session is None:
        raise service_unavailable("Database is not configured")
    return session


async def get_current_user(
    claims: SessionClaims = Depends(require_session),
    session: AsyncSession = Depends(require_db_session),
) -> User:
    """The session's user. A token for a user that no longer exists is not a session."""
    user = await get_user(session, user_id=claims.user_id)
    if user is None:
        raise unauthorized()
    return user


def get_provider_factory(request: Request, settings: Settings = Depends(get_settings)) -> AssistantProviderFactory:
    client: httpx.AsyncClient | None = getattr(request.app.state, "openai_http_client", None)
    return AssistantProviderFactory.from_settings(settings, client)


def get_chat_client(request: Request, settings: Settings = Depends(get_settings)) -> CometChatClient:
    client: httpx.AsyncClient | None = getattr(request.app.state, "chat_http_client", None)
    if client is None:
        raise service_unavailable("Chat platform client is not configured")
    return CometChatClient(client=client, url_template=settings.chat_api_url_template)


def get_run_policy(settings: Settings = Depends(get_settings)) -> RunPolicy:
    return RunPolicy.from_settings(settings)
