"""Bot provisioning and teardown.

Provisioning and teardown each span the provider and the database without a
transaction across them. A failure after the remote steps leaves orphaned
remote objects; their ids are logged so they can be cleaned up by hand.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.errors import ApiError, ProviderError, bad_request
from botgate.providers.base import AssistantProvider
from botgate.storage.models import Bot
from botgate.storage.repos import create_bot, delete_bot

log = logging.getLogger(__name__)


@dataclass
class TeardownReport:
    removed_links: int = 0
    warnings: list[str] = field(default_factory=list)


async def provision_bot(
    session: AsyncSession,
    provider: AssistantProvider,
    *,
    owner_id: str,
    name: str,
    instruction: str,
    settle_seconds: float = 0.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Bot:
    """Vector store → assistant bound to it → local row."""
    try:
        vector_store_id = await provider.create_vector_store(name)
        log.info("bot.vector_store_created", extra={"owner_id": owner_id, "vector_store_id": vector_store_id})

        # The provider does not always see a fresh store immediately.
        if settle_seconds > 0:
            await sleep(settle_seconds)

        assistant_id = await provider.create_assistant(
            name=name, instructions=instruction, vector_store_id=vector_store_id
        )
        log.info("bot.assistant_created", extra={"owner_id": owner_id, "assistant_id": assistant_id})
    except ProviderError as e:
        if e.upstream_status == 404 and "vector store" in e.detail.lower():
            raise bad_request(
                "Failed to create bot: Vector store creation succeeded but OpenAI could not find it "
                "immediately. Please try again in a few seconds.",
                code="VECTOR_STORE_NOT_FOUND",
                details=e.detail,
            ) from e
        raise

    try:
        bot = await create_bot(
            session,
            owner_id=owner_id,
            name=name,
            instruction=instruction,
            assistant_id=assistant_id,
            vector_store_id=vector_store_id,
        )
        await session.commit()
    except Exception as e:
        await session.rollback()
        log.error(
            "bot.persist_failed",
            extra={"owner_id": owner_id, "assistant_id": assistant_id, "vector_store_id": vector_store_id},
        )
        raise ApiError(500, f"Failed to create bot: {e}", code="BOT_PERSIST_FAILED") from e

    log.info("bot.created", extra={"owner_id": owner_id, "bot_id": bot.id})
    return bot


async def teardown_bot(session: AsyncSession, provider: AssistantProvider | None, *, bot: Bot) -> TeardownReport:
    """Remote assistant → remote vector store → local join rows → local bot.

    Remote teardown is best-effort: failures become warnings and never block the
    local delete. `provider=None` skips the remote side entirely.
    """
    report = TeardownReport()
    if provider is None:
        report.warnings.append("No OpenAI API key available; remote assistant and vector store were left in place")
    else:
        remote = (
            ("assistant", bot.assistant_id, provider.delete_assistant),
            ("vector_store", bot.vector_store_id, provider.delete_vector_store),
        )
        for kind, remote_id, delete_remote in remote:
            if not remote_id:
                continue
            try:
                await delete_remote(remote_id)
            except ProviderError as e:
                if e.is_not_found:
                    log.info("bot.teardown_already_gone", extra={"bot_id": bot.id, "kind": kind})
                    continue
                log.warning(
                    "bot.teardown_failed",
                    extra={"bot_id": bot.id, "kind": kind, "remote_id": remote_id, "error": e.detail},
                )
                report.warnings.append(f"Failed to delete remote {kind} {remote_id}: {e.detail}")

    report.removed_links = await delete_bot(session, bot=bot)
    await session.commit()
    log.info("bot.deleted", extra={"bot_id": bot.id, "removed_links": report.removed_links})
    return report
