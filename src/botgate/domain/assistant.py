from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Run statuses the provider reports while work is still outstanding.
PENDING_RUN_STATUSES = frozenset({"queued", "in_progress"})


class _ProviderObject(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Thread(_ProviderObject):
    id: str


class Run(_ProviderObject):
    id: str
    thread_id: str | None = None
    status: str
    assistant_id: str | None = None
    last_error: dict | None = None


class TextValue(_ProviderObject):
    value: str


class MessageContent(_ProviderObject):
    """One content part of a thread message. Only `text` parts carry a `text` value."""

    type: str
    text: TextValue | None = None


class ThreadMessage(_ProviderObject):
    id: str
    role: Literal["user", "assistant"]
    content: list[MessageContent] = Field(default_factory=list)

    def first_text(self) -> str | None:
        if not self.content:
            return None
        part = self.content[0]
        if part.type != "text" or part.text is None:
            return None
        return part.text.value


class UploadedFile(_ProviderObject):
    id: str
    filename: str
    bytes: int = 0
    purpose: str = "assistants"


class ModelInfo(_ProviderObject):
    id: str
    owned_by: str | None = None
