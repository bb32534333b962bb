from __future__ import annotations

from fastapi import APIRouter, Depends

from botgate.core.deps import get_current_user, get_provider_factory
from botgate.providers.factory import AssistantProviderFactory
from botgate.storage.models import User

router = APIRouter()


@router.post("/threads/create")
async def create_thread(
    user: User = Depends(get_current_user),
    factory: AssistantProviderFactory = Depends(get_provider_factory),
) -> dict[str, str]:
    thread = await factory.for_user(user).create_thread()
    return {"threadId": thread.id}
