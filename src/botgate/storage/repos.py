from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from botgate.storage.models import Bot, File, FileToBot, User

# Users


async def get_user(session: AsyncSession, *, user_id: str) -> User | None:
    return await session.get(User, user_id)


async def get_user_by_email(session: AsyncSession, *, email: str) -> User | None:
    return await session.scalar(select(User).where(User.email == email))


async def create_user(session: AsyncSession, *, name: str, email: str, password_hash: str) -> User:
    row = User(name=name, email=email, password_hash=password_hash)
    session.add(row)
    await session.flush()
    return row


# Bots


async def list_bots(session: AsyncSession, *, owner_id: str) -> list[Bot]:
    stmt = select(Bot).where(Bot.user_id == owner_id).order_by(Bot.created_at.desc())
    return list((await session.execute(stmt)).scalars().all())


async def get_owned_bot(session: AsyncSession, *, bot_id: str, owner_id: str) -> Bot | None:
    """A bot that exists but belongs to someone else is indistinguishable from a missing one."""
    return await session.scalar(select(Bot).where(Bot.id == bot_id, Bot.user_id == owner_id))


async def get_bot(session: AsyncSession, *, bot_id: str) -> Bot | None:
    return await session.get(Bot, bot_id)


async def get_owned_bots(session: AsyncSession, *, bot_ids: Iterable[str], owner_id: str) -> list[Bot]:
    ids = list(dict.fromkeys(bot_ids))
    if not ids:
        return []
    stmt = select(Bot).where(Bot.id.in_(ids), Bot.user_id == owner_id)
    return list((await session.execute(stmt)).scalars().all())


async def create_bot(
    session: AsyncSession,
    *,
    owner_id: str,
    name: str,
    instruction: str,
    assistant_id: str | None,
    vector_store_id: str | None,
) -> Bot:
    row = Bot(
        user_id=owner_id,
        name=name,
        instruction=instruction,
        assistant_id=assistant_id,
        vector_store_id=vector_store_id,
        chat_enabled=False,
    )
    session.add(row)
    await session.flush()
    return row


async def delete_bot(session: AsyncSession, *, bot: Bot) -> int:
    """Delete the bot's join rows, then the bot. Returns the number of join rows removed."""
    result = await session.execute(delete(FileToBot).where(FileToBot.bot_id == bot.id))
    await session.execute(delete(Bot).where(Bot.id == bot.id))
    await session.flush()
    return result.rowcount or 0


# Files


async def list_files_with_bots(session: AsyncSession, *, owner_id: str) -> list[File]:
    stmt = (
        select(File)
        .where(File.user_id == owner_id)
        .options(selectinload(File.bot_links).selectinload(FileToBot.bot))
        .order_by(File.created_at.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_owned_file(session: AsyncSession, *, file_id: str, owner_id: str) -> File | None:
    """Look up by provider file id, restricted to the owner. Loads join rows and their bots."""
    stmt = (
        select(File)
        .where(File.file_id == file_id, File.user_id == owner_id)
        .options(selectinload(File.bot_links).selectinload(FileToBot.bot))
    )
    return await session.scalar(stmt)


async def create_file(
    session: AsyncSession,
    *,
    owner_id: str,
    file_id: str,
    filename: str,
    purpose: str,
    size_bytes: int,
) -> File:
    row = File(user_id=owner_id, file_id=file_id, filename=filename, purpose=purpose, bytes=size_bytes)
    session.add(row)
    await session.flush()
    return row


async def delete_file(session: AsyncSession, *, file: File) -> None:
    await session.execute(delete(File).where(File.id == file.id))
    await session.flush()


# File <-> bot links


async def list_linked_bot_ids(session: AsyncSession, *, file_pk: str) -> list[str]:
    stmt = select(FileToBot.bot_id).where(FileToBot.file_id == file_pk)
    return list((await session.execute(stmt)).scalars().all())


async def ensure_file_bot_link(session: AsyncSession, *, file_pk: str, bot_id: str) -> bool:
    """Create the join row unless it already exists. Returns True when a row was inserted."""
    existing = await session.scalar(
        select(FileToBot).where(FileToBot.file_id == file_pk, FileToBot.bot_id == bot_id)
    )
    if existing is not None:
        return False
    session.add(FileToBot(file_id=file_pk, bot_id=bot_id))
    await session.flush()
    return True


async def remove_file_bot_links(
    session: AsyncSession, *, file_pk: str, bot_ids: Iterable[str] | None = None
) -> int:
    stmt = delete(FileToBot).where(FileToBot.file_id == file_pk)
    if bot_ids is not None:
        stmt = stmt.where(FileToBot.bot_id.in_(list(bot_ids)))
    result = await session.execute(stmt)
    await session.flush()
    return result.rowcount or 0
