"""Inbound chat-platform (CometChat) webhook payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MESSAGE_CREATED_TRIGGER = "after_message"


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MessageBody(_Event):
    text: str | None = None
    entities: dict[str, Any] | None = None


class WebhookMessage(_Event):
    id: str | None = None
    conversation_id: str = Field(alias="conversationId")
    sender: str
    receiver: str
    receiver_type: str = Field(alias="receiverType")
    category: str | None = None
    type: str | None = None
    data: MessageBody = Field(default_factory=MessageBody)


class WebhookEvent(_Event):
    trigger: str
    data: WebhookMessage
    app_id: str | None = Field(default=None, alias="appId")
    region: str | None = None
