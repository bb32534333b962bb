from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.deps import get_chat_client, get_provider_factory, get_run_policy, require_db_session
from botgate.providers.cometchat import CometChatClient
from botgate.providers.factory import AssistantProviderFactory
from botgate.services.orchestrator import RunPolicy
from botgate.services.webhook_relay import RelayResult, WebhookRelay, parse_event

router = APIRouter(prefix="/webhook")
log = logging.getLogger(__name__)


def _response(result: RelayResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post("/chat/{bot_id}")
async def chat_webhook(
    bot_id: str,
    request: Request,
    session: AsyncSession = Depends(require_db_session),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
    chat: CometChatClient = Depends(get_chat_client),
    policy: RunPolicy = Depends(get_run_policy),
) -> JSONResponse:
    """Unauthenticated: the chat platform calls this with the bot id in the path."""
    relay = WebhookRelay(session=session, providers=factory, chat=chat, policy=policy)
    result = await relay.handle(bot_id, await request.body())
    log.info(
        "webhook.handled",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "bot_id": bot_id,
            "state": result.state.value,
            "status": result.status_code,
        },
    )
    return _response(result)


@router.post("/chat")
async def chat_webhook_log_only(request: Request) -> JSONResponse:
    """Accepts message events without a bot id and only records them."""
    parsed = parse_event(await request.body())
    if isinstance(parsed, RelayResult):
        return _response(parsed)

    message = parsed.data
    log.info(
        "webhook.received",
        extra={
            "app_id": parsed.app_id,
            "conversation_id": message.conversation_id,
            "sender": message.sender,
        },
    )
    return JSONResponse(status_code=200, content={"status": "OK"})
