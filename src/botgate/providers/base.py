from __future__ import annotations

from abc import ABC, abstractmethod

from botgate.domain.assistant import ModelInfo, Run, Thread, ThreadMessage, UploadedFile


class AssistantProvider(ABC):
    """Remote assistant API bound to one set of credentials.

    Every method raises `ProviderError` on failure.
    """

    name: str

    # Knowledge stores
    @abstractmethod
    async def create_vector_store(self, name: str) -> str:
        raise NotImplementedError

    @abstractmethod
    async def delete_vector_store(self, vector_store_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def add_file_to_vector_store(self, vector_store_id: str, file_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove_file_from_vector_store(self, vector_store_id: str, file_id: str) -> None:
        raise NotImplementedError

    # Assistants
    @abstractmethod
    async def create_assistant(self, *, name: str, instructions: str, vector_store_id: str) -> str:
        raise NotImplementedError

    @abstractmethod
    async def delete_assistant(self, assistant_id: str) -> None:
        raise NotImplementedError

    # Files
    @abstractmethod
    async def upload_file(self, *, filename: str, content: bytes, purpose: str = "assistants") -> UploadedFile:
        raise NotImplementedError

    @abstractmethod
    async def delete_file(self, file_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        raise NotImplementedError

    # Threads and runs
    @abstractmethod
    async def create_thread(self) -> Thread:
        raise NotImplementedError

    @abstractmethod
    async def retrieve_thread(self, thread_id: str) -> Thread:
        raise NotImplementedError

    @abstractmethod
    async def create_message(self, thread_id: str, content: str) -> ThreadMessage:
        """Append a user-role message."""
        raise NotImplementedError

    @abstractmethod
    async def create_run(self, thread_id: str, assistant_id: str) -> Run:
        raise NotImplementedError

    @abstractmethod
    async def retrieve_run(self, thread_id: str, run_id: str) -> Run:
        raise NotImplementedError

    @abstractmethod
    async def list_messages(self, thread_id: str, *, limit: int = 20) -> list[ThreadMessage]:
        """Newest first."""
        raise NotImplementedError
