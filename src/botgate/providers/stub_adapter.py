from __future__ import annotations

from uuid import uuid4

from botgate.domain.assistant import MessageContent, ModelInfo, Run, TextValue, Thread, ThreadMessage, UploadedFile
from botgate.providers.base import AssistantProvider

STUB_REPLY = "This is a dummy response for the build process"


def _stub_id(prefix: str) -> str:
    return f"{prefix}_stub_{uuid4().hex[:12]}"


class StubAssistantProvider(AssistantProvider):
    """Offline stand-in selected by `BOTGATE_OFFLINE_STUBS`. Never touches the network.

    Runs complete on the first poll and every thread replies with `STUB_REPLY`.
    """

    name = "stub"

    async def create_vector_store(self, name: str) -> str:
        return _stub_id("vs")

    async def delete_vector_store(self, vector_store_id: str) -> None:
        return None

    async def add_file_to_vector_store(self, vector_store_id: str, file_id: str) -> None:
        return None

    async def remove_file_from_vector_store(self, vector_store_id: str, file_id: str) -> None:
        return None

    async def create_assistant(self, *, name: str, instructions: str, vector_store_id: str) -> str:
        return _stub_id("asst")

    async def delete_assistant(self, assistant_id: str) -> None:
        return None

    async def upload_file(self, *, filename: str, content: bytes, purpose: str = "assistants") -> UploadedFile:
        return UploadedFile(id=_stub_id("file"), filename=filename, bytes=len(content), purpose=purpose)

    async def delete_file(self, file_id: str) -> None:
        return None

    async def list_models(self) -> list[ModelInfo]:
        return [ModelInfo(id="stub-model", owned_by="stub")]

    async def create_thread(self) -> Thread:
        return Thread(id=_stub_id("thread"))

    async def retrieve_thread(self, thread_id: str) -> Thread:
        return Thread(id=thread_id)

    async def create_message(self, thread_id: str, content: str) -> ThreadMessage:
        return ThreadMessage(
            id=_stub_id("msg"),
            role="user",
            content=[MessageContent(type="text", text=TextValue(value=content))],
        )

    async def create_run(self, thread_id: str, assistant_id: str) -> Run:
        return Run(id=_stub_id("run"), thread_id=thread_id, assistant_id=assistant_id, status="queued")

    async def retrieve_run(self, thread_id: str, run_id: str) -> Run:
        return Run(id=run_id, thread_id=thread_id, status="completed")

    async def list_messages(self, thread_id: str, *, limit: int = 20) -> list[ThreadMessage]:
        return [
            ThreadMessage(
                id=_stub_id("msg"),
                role="assistant",
                content=[MessageContent(type="text", text=TextValue(value=STUB_REPLY))],
            )
        ]
