from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from botgate.core.errors import ProviderError, not_found
from botgate.providers.base import AssistantProvider
from botgate.storage.models import Bot, File
from botgate.storage.repos import (
    create_file,
    delete_file,
    ensure_file_bot_link,
    get_owned_bots,
    list_linked_bot_ids,
    remove_file_bot_links,
)

log = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    remote_file_id: str
    file: File | None = None
    warning: str | None = None
    error: str | None = None


@dataclass
class LinkOutcome:
    succeeded: list[str] = field(default_factory=list)
    failed: int = 0


async def upload_document(
    session: AsyncSession,
    provider: AssistantProvider,
    *,
    owner_id: str,
    filename: str,
    content: bytes,
) -> UploadOutcome:
    uploaded = await provider.upload_file(filename=filename, content=content, purpose="assistants")
    log.info("file.uploaded", extra={"owner_id": owner_id, "file_id": uploaded.id, "bytes": uploaded.bytes})

    try:
        row = await create_file(
            session,
            owner_id=owner_id,
            file_id=uploaded.id,
            filename=filename,
            purpose=uploaded.purpose,
            size_bytes=uploaded.bytes,
        )
        await session.commit()
    except Exception as e:
        # The remote upload cannot be undone; report it and move on.
        await session.rollback()
        log.error("file.persist_failed", extra={"owner_id": owner_id, "file_id": uploaded.id, "error": str(e)})
        return UploadOutcome(
            remote_file_id=uploaded.id,
            warning="File uploaded to OpenAI but database storage failed",
            error=str(e),
        )
    return UploadOutcome(remote_file_id=uploaded.id, file=row)


async def _resolve_owned_bots(session: AsyncSession, *, bot_ids: list[str], owner_id: str) -> list[Bot]:
    bots = await get_owned_bots(session, bot_ids=bot_ids, owner_id=owner_id)
    if len(bots) != len(set(bot_ids)):
        raise not_found("One or more bots not found")
    return bots


async def associate_document(
    session: AsyncSession,
    provider: AssistantProvider,
    *,
    file: File,
    bot_ids: list[str],
    owner_id: str,
) -> LinkOutcome:
    """Index `file` into each bot's vector store, then record the join rows.

    Remote calls are issued only for bots not already linked. A remote
    "already exists" counts as success and the missing join row is repaired.
    """
    bots = await _resolve_owned_bots(session, bot_ids=bot_ids, owner_id=owner_id)
    existing = set(await list_linked_bot_ids(session, file_pk=file.id))
    outcome = LinkOutcome()

    for bot in bots:
        if not bot.vector_store_id:
            log.warning("file.associate_no_vector_store", extra={"bot_id": bot.id})
            outcome.failed += 1
            continue

        if bot.id not in existing:
            try:
                await provider.add_file_to_vector_store(bot.vector_store_id, file.file_id)
            except ProviderError as e:
                if not e.is_already_exists:
                    log.warning(
                        "file.associate_failed",
                        extra={"bot_id": bot.id, "file_id": file.file_id, "error": e.detail},
                    )
                    outcome.failed += 1
                    continue
                log.info("file.associate_already_indexed", extra={"bot_id": bot.id, "file_id": file.file_id})

        if await ensure_file_bot_link(session, file_pk=file.id, bot_id=bot.id):
            log.info("file.associated", extra={"bot_id": bot.id, "file_id": file.file_id})
        outcome.succeeded.append(bot.id)

    await session.commit()
    return outcome


async def disassociate_document(
    session: AsyncSession,
    provider: AssistantProvider,
    *,
    file: File,
    bot_ids: list[str] | None,
) -> LinkOutcome:
    """Remove `file` from linked bots' vector stores (all linked bots when `bot_ids` is None)."""
    linked = [link.bot for link in file.bot_links]
    targets = linked if bot_ids is None else [bot for bot in linked if bot.id in set(bot_ids)]
    outcome = LinkOutcome()

    for bot in targets:
        if not bot.vector_store_id:
            log.warning("file.disassociate_no_vector_store", extra={"bot_id": bot.id})
            outcome.failed += 1
            continue
        try:
            await provider.remove_file_from_vector_store(bot.vector_store_id, file.file_id)
        except ProviderError as e:
            if not e.is_not_found:
                log.warning(
                    "file.disassociate_failed",
                    extra={"bot_id": bot.id, "file_id": file.file_id, "error": e.detail},
                )
                outcome.failed += 1
                continue
        await remove_file_bot_links(session, file_pk=file.id, bot_ids=[bot.id])
        outcome.succeeded.append(bot.id)

    await session.commit()
    return outcome


async def delete_document(session: AsyncSession, provider: AssistantProvider, *, file: File) -> None:
    """Join rows → remote file (missing is fine) → local row, committed together."""
    try:
        await remove_file_bot_links(session, file_pk=file.id)
        try:
            await provider.delete_file(file.file_id)
        except ProviderError as e:
            if not e.is_not_found:
                raise
            log.info("file.delete_already_gone", extra={"file_id": file.file_id})
        await delete_file(session, file=file)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    log.info("file.deleted", extra={"file_id": file.file_id})
