"""Inbound chat webhook → assistant run → outbound bot message.

`WebhookRelay.handle` never raises for expected failures. Every outcome is a
`RelayResult` carrying the terminal state and the HTTP status/body to return.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.errors import ApiError
from botgate.core.metrics import botgate_webhook_events_total
from botgate.domain.chat_events import MESSAGE_CREATED_TRIGGER, WebhookEvent
from botgate.providers.cometchat import ChatCredentials, CometChatClient
from botgate.providers.factory import AssistantProviderFactory
from botgate.services.orchestrator import RunError, RunOrchestrator, RunPolicy
from botgate.storage.models import Bot
from botgate.storage.repos import get_bot, get_user

log = logging.getLogger(__name__)


class RelayState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    CONFIG_RESOLVED = "config_resolved"
    SELF_MESSAGE_CHECK = "self_message_check"
    ORCHESTRATED = "orchestrated"
    RELAYED = "relayed"
    DROPPED = "dropped"
    ERRORED = "errored"


@dataclass
class RelayResult:
    state: RelayState
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


def parse_event(raw: bytes) -> WebhookEvent | RelayResult:
    """RECEIVED → VALIDATED, or the 400 result that ends the relay."""
    try:
        payload = json.loads(raw)
    except ValueError:
        return RelayResult(RelayState.ERRORED, 400, {"error": "Invalid JSON payload"})
    if not isinstance(payload, dict):
        return RelayResult(RelayState.ERRORED, 400, {"error": "Invalid JSON payload"})

    if payload.get("trigger") != MESSAGE_CREATED_TRIGGER:
        return RelayResult(RelayState.ERRORED, 400, {"error": "Unsupported event type"})

    try:
        event = WebhookEvent.model_validate(payload)
    except ValidationError:
        return RelayResult(RelayState.ERRORED, 400, {"error": "Invalid message payload"})
    return event


def reply_target(sender: str, receiver: str, receiver_type: str) -> tuple[str, str]:
    """Who the bot answers: the group for group conversations, otherwise the sender."""
    receiver_type = receiver_type.lower()
    # Group conversations: answering the sender would open a private chat with them,
    # so the reply goes back to the group the message was posted in.
    if receiver_type == "group":
        return receiver, receiver_type
    return sender, receiver_type


OrchestratorFactory = Callable[..., RunOrchestrator]


class WebhookRelay:
    def __init__(
        self,
        *,
        session: AsyncSession,
        providers: AssistantProviderFactory,
        chat: CometChatClient,
        policy: RunPolicy,
        orchestrator_factory: OrchestratorFactory = RunOrchestrator,
    ):
        self._session = session
        self._providers = providers
        self._chat = chat
        self._policy = policy
        self._orchestrator_factory = orchestrator_factory
        self.state = RelayState.RECEIVED

    def _finish(self, result: RelayResult) -> RelayResult:
        self.state = result.state
        botgate_webhook_events_total.labels(outcome=result.state.value).inc()
        return result

    async def _resolve_bot(self, bot_id: str) -> Bot | RelayResult:
        bot = await get_bot(self._session, bot_id=bot_id)
        if bot is None:
            return RelayResult(RelayState.ERRORED, 404, {"error": "Bot not found"})
        missing = bot.missing_chat_config()
        if missing:
            log.warning("webhook.config_incomplete", extra={"bot_id": bot_id, "missing": missing})
            return RelayResult(
                RelayState.ERRORED,
                400,
                {"error": "Bot configuration incomplete", "missingConfigs": missing},
            )
        return bot

    async def handle(self, bot_id: str, raw: bytes) -> RelayResult:
        parsed = parse_event(raw)
        if isinstance(parsed, RelayResult):
            log.info("webhook.rejected", extra={"bot_id": bot_id, "error": parsed.body.get("error")})
            return self._finish(parsed)
        self.state = RelayState.VALIDATED
        message = parsed.data

        resolved = await self._resolve_bot(bot_id)
        if isinstance(resolved, RelayResult):
            return self._finish(resolved)
        bot = resolved
        self.state = RelayState.CONFIG_RESOLVED

        self.state = RelayState.SELF_MESSAGE_CHECK
        if message.sender == bot.chat_bot_uid:
            log.info("webhook.dropped", extra={"bot_id": bot.id, "reason": "self_message"})
            return self._finish(
                RelayResult(RelayState.DROPPED, 200, {"status": "OK", "message": "Ignored message from bot itself"})
            )

        text = (message.data.text or "").strip()
        if not text:
            log.info("webhook.dropped", extra={"bot_id": bot.id, "reason": "no_text", "type": message.type})
            return self._finish(
                RelayResult(RelayState.DROPPED, 200, {"status": "OK", "message": "Ignored non-text message"})
            )

        owner = await get_user(self._session, user_id=bot.user_id)
        try:
            provider = self._providers.for_user(owner)
        except ApiError as e:
            log.warning("webhook.no_api_key", extra={"bot_id": bot.id, "error": e.detail})
            return self._finish(
                RelayResult(RelayState.ERRORED, 500, {"error": "Failed to get response from assistant", "details": e.detail})
            )

        orchestrator = self._orchestrator_factory(provider, self._policy, path="webhook")
        try:
            result = await orchestrator.run(
                assistant_id=bot.assistant_id or "",
                conversation_id=message.conversation_id,
                message=text,
            )
        except RunError as e:
            body: dict[str, Any] = {"error": "Failed to get response from assistant", "status": e.status}
            if e.polls:
                body["polls"] = e.polls
            return self._finish(RelayResult(RelayState.ERRORED, 500, body))
        except ApiError as e:
            log.warning("webhook.provider_error", extra={"bot_id": bot.id, "error": e.detail})
            return self._finish(
                RelayResult(RelayState.ERRORED, 500, {"error": "Failed to get response from assistant", "details": e.detail})
            )
        self.state = RelayState.ORCHESTRATED

        return self._finish(await self._relay(bot, message.sender, message.receiver, message.receiver_type, result.text))

    async def _relay(self, bot: Bot, sender: str, receiver: str, receiver_type: str, text: str) -> RelayResult:
        creds = ChatCredentials(
            app_id=bot.chat_app_id or "",
            region=bot.chat_region or "",
            api_key=bot.chat_api_key or "",
            bot_uid=bot.chat_bot_uid or "",
        )
        to, to_type = reply_target(sender, receiver, receiver_type)
        sent = await self._chat.send_bot_message(creds, receiver=to, receiver_type=to_type, text=text)

        if sent.status_code is None:
            return RelayResult(
                RelayState.ERRORED,
                500,
                {"error": "Failed to communicate with CometChat API", "details": sent.error},
            )
        if not sent.ok:
            log.warning("webhook.relay_failed", extra={"bot_id": bot.id, "status": sent.status_code})
            return RelayResult(
                RelayState.ERRORED,
                500,
                {"error": "Failed to send message via CometChat", "details": sent.data},
            )

        log.info("webhook.relayed", extra={"bot_id": bot.id, "receiver_type": to_type})
        return RelayResult(
            RelayState.RELAYED,
            200,
            {"status": "OK", "message": "Assistant response sent successfully", "result": sent.data},
        )

