from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(100), nullable=False)
    openai_api_key: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    bots: Mapped[list["Bot"]] = relationship(back_populates="owner")
    files: Mapped[list["File"]] = relationship(back_populates="owner")


class Bot(Base):
    __tablename__ = "bots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    instruction: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Remote ids, assigned by the assistant provider during provisioning.
    assistant_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    vector_store_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    chat_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    chat_app_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    chat_region: Mapped[str | None] = mapped_column(String(32), nullable=True)
    chat_api_key: Mapped[str | None] = mapped_column(String(256), nullable=True)
    chat_bot_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    owner: Mapped[User] = relationship(back_populates="bots")
    file_links: Mapped[list["FileToBot"]] = relationship(back_populates="bot")

    def missing_chat_config(self) -> list[str]:
        required = {
            "cometChatAppId": self.chat_app_id,
            "cometChatApiKey": self.chat_api_key,
            "cometChatRegion": self.chat_region,
            "cometChatBotUid": self.chat_bot_uid,
            "assistantId": self.assistant_id,
        }
        return [name for name, value in required.items() if not value]


class File(Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    file_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)  # provider file id
    filename: Mapped[str] = mapped_column(String(512), nullable=False)
    purpose: Mapped[str] = mapped_column(String(32), nullable=False, default="assistants")
    bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    owner: Mapped[User] = relationship(back_populates="files")
    bot_links: Mapped[list["FileToBot"]] = relationship(back_populates="file")


class FileToBot(Base):
    __tablename__ = "file_to_bot"
    __table_args__ = (UniqueConstraint("file_id", "bot_id", name="uq_file_to_bot_pair"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    file_id: Mapped[str] = mapped_column(String(36), ForeignKey("files.id"), nullable=False, index=True)
    bot_id: Mapped[str] = mapped_column(String(36), ForeignKey("bots.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    file: Mapped[File] = relationship(back_populates="bot_links")
    bot: Mapped[Bot] = relationship(back_populates="file_links")
