from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.deps import get_current_user, get_provider_factory, require_db_session
from botgate.core.errors import ProviderError
from botgate.core.logging import mask_secret
from botgate.providers.factory import AssistantProviderFactory, check_api_key_format
from botgate.storage.models import User

router = APIRouter(prefix="/user")
log = logging.getLogger(__name__)


class SettingsOut(BaseModel):
    openaiApiKey: str
    hasApiKey: bool


class SettingsUpdate(BaseModel):
    openaiApiKey: str | None = None


@router.get("/settings", response_model=SettingsOut)
async def get_user_settings(user: User = Depends(get_current_user)) -> SettingsOut:
    return SettingsOut(openaiApiKey=mask_secret(user.openai_api_key), hasApiKey=bool(user.openai_api_key))


@router.post("/settings", response_model=SettingsOut)
async def update_user_settings(
    body: SettingsUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(require_db_session),
) -> SettingsOut:
    # An empty value clears the key.
    key = (body.openaiApiKey or "").strip()
    if key:
        key = check_api_key_format(key)
    user.openai_api_key = key or None
    await session.commit()
    log.info("user.api_key_updated", extra={"user_id": user.id, "cleared": not key})
    return SettingsOut(openaiApiKey=mask_secret(user.openai_api_key), hasApiKey=bool(user.openai_api_key))


@router.get("/test-api-key")
async def test_api_key(
    user: User = Depends(get_current_user),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
) -> dict:
    """Validate the stored key by listing the provider's models."""
    api_key = check_api_key_format(user.openai_api_key)
    masked = mask_secret(api_key)
    provider = factory.for_api_key(api_key)
    try:
        models = await provider.list_models()
    except ProviderError as e:
        log.info("user.api_key_invalid", extra={"user_id": user.id, "upstream_status": e.upstream_status})
        return {"valid": False, "error": e.detail, "maskedKey": masked}
    return {
        "valid": True,
        "message": f"API key is valid. {len(models)} models available.",
        "maskedKey": masked,
    }
