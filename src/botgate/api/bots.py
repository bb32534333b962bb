from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.config import Settings, get_settings
from botgate.core.deps import get_current_user, get_provider_factory, get_run_policy, require_db_session
from botgate.core.errors import bad_request, gateway_timeout, internal_error, not_found
from botgate.core.logging import LogContext, mask_secret, with_context
from botgate.providers.factory import AssistantProviderFactory, check_api_key_format
from botgate.services.bots import provision_bot, teardown_bot
from botgate.services.orchestrator import (
    NoTextReplyError,
    RunFailedError,
    RunOrchestrator,
    RunPolicy,
    RunTimeoutError,
)
from botgate.storage.models import Bot, User
from botgate.storage.repos import get_owned_bot, list_bots

router = APIRouter(prefix="/bots")
log = logging.getLogger(__name__)


class BotOut(BaseModel):
    id: str
    name: str
    instruction: str
    assistantId: str | None
    vectorStoreId: str | None
    cometChatEnabled: bool
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_row(cls, bot: Bot) -> BotOut:
        return cls(
            id=bot.id,
            name=bot.name,
            instruction=bot.instruction,
            assistantId=bot.assistant_id,
            vectorStoreId=bot.vector_store_id,
            cometChatEnabled=bot.chat_enabled,
            createdAt=bot.created_at,
            updatedAt=bot.updated_at,
        )


class BotCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    instruction: str = Field(min_length=1)


class BotPatch(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    instruction: str | None = None


class IntegrationsOut(BaseModel):
    cometChatEnabled: bool
    cometChatAppId: str | None
    cometChatRegion: str | None
    cometChatApiKey: str
    cometChatBotUid: str | None
    missingConfigs: list[str]


class IntegrationsUpdate(BaseModel):
    cometChatEnabled: bool | None = None
    cometChatAppId: str | None = None
    cometChatRegion: str | None = None
    cometChatApiKey: str | None = None
    cometChatBotUid: str | None = None


class InvokeRequest(BaseModel):
    message: str = Field(min_length=1)
    threadId: str | None = None


class InvokeResponse(BaseModel):
    response: str
    threadId: str


async def _owned_bot_or_404(session: AsyncSession, bot_id: str, user: User) -> Bot:
    bot = await get_owned_bot(session, bot_id=bot_id, owner_id=user.id)
    if bot is None:
        raise not_found("Bot not found")
    return bot


def _integrations_out(bot: Bot) -> IntegrationsOut:
    return IntegrationsOut(
        cometChatEnabled=bot.chat_enabled,
        cometChatAppId=bot.chat_app_id,
        cometChatRegion=bot.chat_region,
        cometChatApiKey=mask_secret(bot.chat_api_key),
        cometChatBotUid=bot.chat_bot_uid,
        missingConfigs=bot.missing_chat_config(),
    )


@router.get("", response_model=list[BotOut])
async def get_bots(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
) -> list[BotOut]:
    return [BotOut.from_row(bot) for bot in await list_bots(session, owner_id=user.id)]


@router.post("", response_model=BotOut, status_code=201)
async def create_bot(
    body: BotCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
    settings: Settings = Depends(get_settings),
) -> BotOut:
    # Bots are provisioned with the caller's own key only, never the server fallback.
    api_key = check_api_key_format(user.openai_api_key)
    provider = factory.for_api_key(api_key)
    bot = await provision_bot(
        session,
        provider,
        owner_id=user.id,
        name=body.name.strip(),
        instruction=body.instruction,
        settle_seconds=settings.vector_store_settle_seconds,
    )
    return BotOut.from_row(bot)


@router.get("/{bot_id}", response_model=BotOut)
async def get_bot(
    bot_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
) -> BotOut:
    return BotOut.from_row(await _owned_bot_or_404(session, bot_id, user))


@router.patch("/{bot_id}", response_model=BotOut)
async def update_bot(
    bot_id: str,
    body: BotPatch,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
) -> BotOut:
    bot = await _owned_bot_or_404(session, bot_id, user)
    if body.name is None and body.instruction is None:
        raise bad_request("Nothing to update", code="VALIDATION_ERROR")
    if body.name is not None:
        bot.name = body.name.strip()
    if body.instruction is not None:
        bot.instruction = body.instruction
    await session.commit()
    await session.refresh(bot)
    return BotOut.from_row(bot)


@router.delete("/{bot_id}")
async def delete_bot(
    bot_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
) -> dict:
    bot = await _owned_bot_or_404(session, bot_id, user)
    provider = None
    if factory.offline_stubs or factory.resolve_api_key(user):
        provider = factory.for_user(user)

    report = await teardown_bot(session, provider, bot=bot)
    body: dict = {"success": True, "removedAssociations": report.removed_links}
    if report.warnings:
        body["warnings"] = report.warnings
    return body


@router.get("/{bot_id}/integrations", response_model=IntegrationsOut)
async def get_integrations(
    bot_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
) -> IntegrationsOut:
    return _integrations_out(await _owned_bot_or_404(session, bot_id, user))


@router.post("/{bot_id}/integrations", response_model=IntegrationsOut)
async def update_integrations(
    bot_id: str,
    body: IntegrationsUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
) -> IntegrationsOut:
    """Fields left out of the body keep their stored value; an empty string clears one."""
    bot = await _owned_bot_or_404(session, bot_id, user)
    fields = body.model_dump(exclude_unset=True)
    columns = {
        "cometChatAppId": "chat_app_id",
        "cometChatRegion": "chat_region",
        "cometChatApiKey": "chat_api_key",
        "cometChatBotUid": "chat_bot_uid",
    }
    for name, column in columns.items():
        if name in fields:
            setattr(bot, column, (fields[name] or "").strip() or None)
    if fields.get("cometChatEnabled") is not None:
        bot.chat_enabled = fields["cometChatEnabled"]

    await session.commit()
    await session.refresh(bot)
    log.info("bot.integrations_updated", extra={"bot_id": bot.id, "enabled": bot.chat_enabled})
    return _integrations_out(bot)


@router.post("/{bot_id}/invoke", response_model=InvokeResponse)
async def invoke_bot(
    request: Request,
    bot_id: str,
    body: InvokeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
    policy: RunPolicy = Depends(get_run_policy),
) -> InvokeResponse:
    logger = with_context(
        log,
        LogContext(request_id=getattr(request.state, "request_id", None), user_id=user.id, bot_id=bot_id),
    )
    bot = await _owned_bot_or_404(session, bot_id, user)
    if not bot.assistant_id:
        raise bad_request("Bot has no assistant ID", code="BOT_NOT_PROVISIONED")

    orchestrator = RunOrchestrator(factory.for_user(user), policy, path="invoke")
    try:
        result = await orchestrator.run(
            assistant_id=bot.assistant_id,
            conversation_id=body.threadId,
            message=body.message,
        )
    except RunTimeoutError as e:
        logger.warning("bot.invoke_timeout", extra={"polls": e.polls})
        raise gateway_timeout("Assistant run timed out", code="RUN_TIMEOUT", threadId=e.thread_id) from e
    except RunFailedError as e:
        raise internal_error("Failed to get response", code="RUN_FAILED", status=e.status) from e
    except NoTextReplyError as e:
        raise internal_error("No response received", code="NO_RESPONSE") from e

    logger.info("bot.invoked", extra={"thread_id": result.thread_id, "polls": result.polls})
    return InvokeResponse(response=result.text, threadId=result.thread_id)
