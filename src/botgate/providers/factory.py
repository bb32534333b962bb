from __future__ import annotations

from dataclasses import dataclass

import httpx

from botgate.core.config import Settings
from botgate.core.errors import bad_request
from botgate.providers.base import AssistantProvider
from botgate.providers.openai_adapter import OpenAIAssistantAdapter
from botgate.providers.stub_adapter import StubAssistantProvider
from botgate.storage.models import User

API_KEY_PREFIX = "sk-"


def check_api_key_format(api_key: str | None) -> str:
    """Superficial shape check run before any remote call. Returns the trimmed key."""
    if not api_key or not api_key.strip():
        raise bad_request(
            "OpenAI API key not found. Please add your API key in the settings page.",
            code="API_KEY_MISSING",
        )
    api_key = api_key.strip()
    if not api_key.startswith(API_KEY_PREFIX):
        raise bad_request(
            'Invalid OpenAI API key format. API keys should start with "sk-".',
            code="INVALID_API_KEY_FORMAT",
        )
    return api_key


@dataclass
class AssistantProviderFactory:
    """Builds a provider bound to one caller's credentials. One shared HTTP pool, no shared key."""

    client: httpx.AsyncClient | None
    model: str = "gpt-4o"
    fallback_api_key: str | None = None
    offline_stubs: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None) -> AssistantProviderFactory:
        return cls(
            client=client,
            model=settings.openai_assistant_model,
            fallback_api_key=settings.openai_api_key,
            offline_stubs=settings.botgate_offline_stubs,
        )

    def resolve_api_key(self, user: User | None) -> str | None:
        own = (user.openai_api_key or "").strip() if user is not None else ""
        return own or (self.fallback_api_key or "").strip() or None

    def for_api_key(self, api_key: str) -> AssistantProvider:
        if self.offline_stubs:
            return StubAssistantProvider()
        if self.client is None:
            raise RuntimeError("Assistant provider HTTP client is not configured")
        return OpenAIAssistantAdapter(client=self.client, api_key=api_key, model=self.model)

    def for_user(self, user: User | None) -> AssistantProvider:
        """The user's own key, else the server fallback key."""
        if self.offline_stubs:
            return StubAssistantProvider()
        api_key = self.resolve_api_key(user)
        if not api_key:
            raise bad_request(
                "OpenAI API key not found. Please add your API key in the settings page.",
                code="API_KEY_MISSING",
            )
        return self.for_api_key(api_key)
