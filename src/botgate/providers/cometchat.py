from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from botgate.core.metrics import botgate_provider_errors_total

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatCredentials:
    app_id: str
    region: str
    api_key: str
    bot_uid: str


@dataclass(frozen=True)
class ChatSendResult:
    ok: bool
    status_code: int | None
    data: Any = None
    error: str | None = None


def _body_or_raw(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return {"rawResponse": resp.text}


class CometChatClient:
    """Outbound side of the chat-platform relay: bot-authored messages over the REST API."""

    name = "cometchat"

    def __init__(self, *, client: httpx.AsyncClient, url_template: str):
        self._client = client
        self._url_template = url_template

    def bot_messages_url(self, creds: ChatCredentials) -> str:
        base = self._url_template.format(app_id=creds.app_id, region=creds.region).rstrip("/")
        return f"{base}/bots/{creds.bot_uid}/messages"

    async def send_bot_message(
        self,
        creds: ChatCredentials,
        *,
        receiver: str,
        receiver_type: str,
        text: str,
    ) -> ChatSendResult:
        url = self.bot_messages_url(creds)
        body = {
            "category": "message",
            "type": "text",
            "data": {"text": text},
            "receiver": receiver,
            "receiverType": receiver_type.lower(),
        }
        headers = {"accept": "application/json", "content-type": "application/json", "apikey": creds.api_key}

        try:
            resp = await self._client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            log.warning("cometchat.transport_error", extra={"app_id": creds.app_id, "error": str(e)})
            botgate_provider_errors_total.labels(provider=self.name, operation="message.send", status="transport").inc()
            return ChatSendResult(ok=False, status_code=None, error=str(e) or type(e).__name__)

        if resp.status_code >= 300:
            botgate_provider_errors_total.labels(
                provider=self.name, operation="message.send", status=str(resp.status_code)
            ).inc()
            return ChatSendResult(ok=False, status_code=resp.status_code, data=_body_or_raw(resp))

        return ChatSendResult(ok=True, status_code=resp.status_code, data=_body_or_raw(resp))
