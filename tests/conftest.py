from __future__ import annotations

import json
from collections.abc import Callable
from itertools import count
from typing import Any

import httpx
import pytest
import pytest_asyncio

from botgate.core.config import Settings, get_settings
from botgate.core.deps import get_chat_client, get_db_session, get_provider_factory
from botgate.core.errors import ProviderError
from botgate.core.security import create_session_token, hash_password
from botgate.domain.assistant import MessageContent, ModelInfo, Run, TextValue, Thread, ThreadMessage, UploadedFile
from botgate.main import create_app
from botgate.providers.base import AssistantProvider
from botgate.providers.cometchat import CometChatClient
from botgate.providers.factory import AssistantProviderFactory
from botgate.storage.db import create_engine, create_sessionmaker
from botgate.storage.models import Base, Bot, User
from botgate.storage.repos import create_bot, create_user

TEST_API_KEY = "sk-test-0123456789abcdef"


class FakeProvider(AssistantProvider):
    """Scripted assistant provider. `fail[operation]` raises on that operation."""

    name = "fake"

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail: dict[str, Exception] = {}
        self.run_statuses: list[str] = ["completed"]
        self.reply: str | None = "hello from the assistant"
        self.threads: set[str] = set()
        self._ids = count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def _call(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        exc = self.fail.get(operation)
        if exc is not None:
            raise exc

    def ops(self, operation: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == operation]

    async def create_vector_store(self, name: str) -> str:
        self._call("create_vector_store", name)
        return self._next_id("vs")

    async def delete_vector_store(self, vector_store_id: str) -> None:
        self._call("delete_vector_store", vector_store_id)

    async def add_file_to_vector_store(self, vector_store_id: str, file_id: str) -> None:
        self._call("add_file_to_vector_store", vector_store_id, file_id)

    async def remove_file_from_vector_store(self, vector_store_id: str, file_id: str) -> None:
        self._call("remove_file_from_vector_store", vector_store_id, file_id)

    async def create_assistant(self, *, name: str, instructions: str, vector_store_id: str) -> str:
        self._call("create_assistant", name, vector_store_id)
        return self._next_id("asst")

    async def delete_assistant(self, assistant_id: str) -> None:
        self._call("delete_assistant", assistant_id)

    async def upload_file(self, *, filename: str, content: bytes, purpose: str = "assistants") -> UploadedFile:
        self._call("upload_file", filename)
        return UploadedFile(id=self._next_id("file"), filename=filename, bytes=len(content), purpose=purpose)

    async def delete_file(self, file_id: str) -> None:
        self._call("delete_file", file_id)

    async def list_models(self) -> list[ModelInfo]:
        self._call("list_models")
        return [ModelInfo(id="gpt-4o"), ModelInfo(id="gpt-4o-mini")]

    async def create_thread(self) -> Thread:
        self._call("create_thread")
        thread = Thread(id=self._next_id("thread"))
        self.threads.add(thread.id)
        return thread

    async def retrieve_thread(self, thread_id: str) -> Thread:
        self._call("retrieve_thread", thread_id)
        if thread_id not in self.threads:
            raise ProviderError(f"No thread found with id '{thread_id}'.", upstream_status=404)
        return Thread(id=thread_id)

    async def create_message(self, thread_id: str, content: str) -> ThreadMessage:
        self._call("create_message", thread_id, content)
        return ThreadMessage(id=self._next_id("msg"), role="user", content=[])

    async def create_run(self, thread_id: str, assistant_id: str) -> Run:
        self._call("create_run", thread_id, assistant_id)
        return Run(id=self._next_id("run"), thread_id=thread_id, status="queued", assistant_id=assistant_id)

    async def retrieve_run(self, thread_id: str, run_id: str) -> Run:
        self._call("retrieve_run", thread_id, run_id)
        # The last scripted status repeats once the script runs out.
        status = self.run_statuses.pop(0) if len(self.run_statuses) > 1 else self.run_statuses[0]
        return Run(id=run_id, thread_id=thread_id, status=status)

    async def list_messages(self, thread_id: str, *, limit: int = 20) -> list[ThreadMessage]:
        self._call("list_messages", thread_id, limit)
        if self.reply is None:
            return []
        part = MessageContent(type="text", text=TextValue(value=self.reply))
        return [ThreadMessage(id=self._next_id("msg"), role="assistant", content=[part])]


class FakeProviderFactory(AssistantProviderFactory):
    def __init__(self, provider: FakeProvider) -> None:
        super().__init__(client=None)
        self.provider = provider
        self.keys: list[str] = []

    def for_api_key(self, api_key: str) -> AssistantProvider:
        self.keys.append(api_key)
        return self.provider


class FakeSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        botgate_env="test",
        jwt_secret="test-secret",
        vector_store_settle_seconds=0.0,
        run_poll_interval_seconds=0.0,
        run_poll_max_attempts=60,
    )


@pytest_asyncio.fixture
async def sessionmaker():
    engine = create_engine(database_url="sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
def chat_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def chat_handler(chat_requests: list[httpx.Request]) -> Callable[[httpx.Request], httpx.Response]:
    """Default chat platform: accepts every message. Tests may replace `chat_handler`."""

    def handler(request: httpx.Request) -> httpx.Response:
        chat_requests.append(request)
        body = json.loads(request.content.decode("utf-8"))
        return httpx.Response(200, json={"data": {"id": "101", "data": body["data"]}})

    return handler


@pytest.fixture
def app(test_settings, sessionmaker, provider, chat_handler):
    app = create_app()

    async def _db():
        async with sessionmaker() as session:
            yield session

    chat = CometChatClient(
        client=httpx.AsyncClient(transport=httpx.MockTransport(chat_handler)),
        url_template=test_settings.chat_api_url_template,
    )
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_db_session] = _db
    app.dependency_overrides[get_provider_factory] = lambda: FakeProviderFactory(provider)
    app.dependency_overrides[get_chat_client] = lambda: chat
    return app


@pytest_asyncio.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as c:
        yield c


@pytest.fixture
def make_user(sessionmaker):
    async def _make(email: str = "alice@example.com", *, api_key: str | None = TEST_API_KEY) -> User:
        async with sessionmaker() as session:
            user = await create_user(session, name=email.split("@")[0], email=email, password_hash=hash_password("pw"))
            user.openai_api_key = api_key
            await session.commit()
            return user

    return _make


@pytest.fixture
def make_bot(sessionmaker):
    async def _make(owner: User, *, name: str = "Helper", **chat: Any) -> Bot:
        async with sessionmaker() as session:
            bot = await create_bot(
                session,
                owner_id=owner.id,
                name=name,
                instruction="Be helpful.",
                assistant_id=chat.pop("assistant_id", "asst_seed"),
                vector_store_id=chat.pop("vector_store_id", "vs_seed"),
            )
            for column, value in chat.items():
                setattr(bot, column, value)
            await session.commit()
            return bot

    return _make


@pytest.fixture
def auth_headers(test_settings):
    def _headers(user: User) -> dict[str, str]:
        token = create_session_token(user_id=user.id, email=user.email, settings=test_settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers
