from __future__ import annotations

import logging
from typing import Any

import httpx

from botgate.core.errors import ProviderError
from botgate.core.metrics import botgate_provider_errors_total
from botgate.domain.assistant import ModelInfo, Run, Thread, ThreadMessage, UploadedFile
from botgate.providers.base import AssistantProvider

log = logging.getLogger(__name__)

ASSISTANTS_BETA_HEADER = {"OpenAI-Beta": "assistants=v2"}


def _safe_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _error_from_response(resp: httpx.Response, operation: str) -> ProviderError:
    message = ""
    upstream_code = None
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        message = _safe_text(data["error"].get("message"))
        upstream_code = data["error"].get("code")
    if not message:
        message = _safe_text(resp.text)[:500] or f"HTTP {resp.status_code}"

    if resp.status_code == 401:
        return ProviderError(
            "Authentication failed with OpenAI: Invalid API key. Please check your API key in settings.",
            upstream_status=401,
            upstream_code=upstream_code,
            status_code=401,
            code="INVALID_API_KEY",
            extra={"details": message},
        )
    return ProviderError(
        f"OpenAI {operation} failed ({resp.status_code}): {message}",
        upstream_status=resp.status_code,
        upstream_code=upstream_code,
    )


class OpenAIAssistantAdapter(AssistantProvider):
    name = "openai"

    def __init__(self, *, client: httpx.AsyncClient, api_key: str, model: str = "gpt-4o"):
        self._client = client
        self._headers = {"Authorization": f"Bearer {api_key}", **ASSISTANTS_BETA_HEADER}
        self._model = model

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            resp = await self._client.request(
                method, path, json=json, params=params, files=files, data=data, headers=self._headers
            )
        except httpx.TimeoutException as e:
            log.warning("openai.timeout", extra={"operation": operation})
            botgate_provider_errors_total.labels(provider=self.name, operation=operation, status="timeout").inc()
            raise ProviderError(f"OpenAI {operation} timed out", status_code=504) from e
        except httpx.HTTPError as e:
            log.warning("openai.transport_error", extra={"operation": operation, "error": str(e)})
            botgate_provider_errors_total.labels(provider=self.name, operation=operation, status="transport").inc()
            raise ProviderError(f"OpenAI {operation} request failed") from e

        if resp.status_code >= 400:
            botgate_provider_errors_total.labels(
                provider=self.name, operation=operation, status=str(resp.status_code)
            ).inc()
            raise _error_from_response(resp, operation)

        if not resp.content:
            return {}
        return resp.json()

    # Knowledge stores

    async def create_vector_store(self, name: str) -> str:
        data = await self._request("POST", "/vector_stores", operation="vector_store.create", json={"name": name})
        return _safe_text(data.get("id"))

    async def delete_vector_store(self, vector_store_id: str) -> None:
        await self._request("DELETE", f"/vector_stores/{vector_store_id}", operation="vector_store.delete")

    async def add_file_to_vector_store(self, vector_store_id: str, file_id: str) -> None:
        await self._request(
            "POST",
            f"/vector_stores/{vector_store_id}/files",
            operation="vector_store.file_add",
            json={"file_id": file_id},
        )

    async def remove_file_from_vector_store(self, vector_store_id: str, file_id: str) -> None:
        await self._request(
            "DELETE",
            f"/vector_stores/{vector_store_id}/files/{file_id}",
            operation="vector_store.file_remove",
        )

    # Assistants

    async def create_assistant(self, *, name: str, instructions: str, vector_store_id: str) -> str:
        payload = {
            "name": name,
            "instructions": instructions,
            "model": self._model,
            "tools": [{"type": "file_search"}],
            "tool_resources": {"file_search": {"vector_store_ids": [vector_store_id]}},
        }
        data = await self._request("POST", "/assistants", operation="assistant.create", json=payload)
        return _safe_text(data.get("id"))

    async def delete_assistant(self, assistant_id: str) -> None:
        await self._request("DELETE", f"/assistants/{assistant_id}", operation="assistant.delete")

    # Files

    async def upload_file(self, *, filename: str, content: bytes, purpose: str = "assistants") -> UploadedFile:
        data = await self._request(
            "POST",
            "/files",
            operation="file.upload",
            files={"file": (filename, content)},
            data={"purpose": purpose},
        )
        return UploadedFile.model_validate({"filename": filename, **data})

    async def delete_file(self, file_id: str) -> None:
        await self._request("DELETE", f"/files/{file_id}", operation="file.delete")

    async def list_models(self) -> list[ModelInfo]:
        data = await self._request("GET", "/models", operation="models.list")
        return [ModelInfo.model_validate(item) for item in data.get("data") or [] if item.get("id")]

    # Threads and runs

    async def create_thread(self) -> Thread:
        data = await self._request("POST", "/threads", operation="thread.create", json={})
        return Thread.model_validate(data)

    async def retrieve_thread(self, thread_id: str) -> Thread:
        data = await self._request("GET", f"/threads/{thread_id}", operation="thread.retrieve")
        return Thread.model_validate(data)

    async def create_message(self, thread_id: str, content: str) -> ThreadMessage:
        data = await self._request(
            "POST",
            f"/threads/{thread_id}/messages",
            operation="message.create",
            json={"role": "user", "content": content},
        )
        return ThreadMessage.model_validate(data)

    async def create_run(self, thread_id: str, assistant_id: str) -> Run:
        data = await self._request(
            "POST",
            f"/threads/{thread_id}/runs",
            operation="run.create",
            json={"assistant_id": assistant_id},
        )
        return Run.model_validate(data)

    async def retrieve_run(self, thread_id: str, run_id: str) -> Run:
        data = await self._request("GET", f"/threads/{thread_id}/runs/{run_id}", operation="run.retrieve")
        return Run.model_validate(data)

    async def list_messages(self, thread_id: str, *, limit: int = 20) -> list[ThreadMessage]:
        data = await self._request(
            "GET",
            f"/threads/{thread_id}/messages",
            operation="message.list",
            params={"order": "desc", "limit": limit},
        )
        return [ThreadMessage.model_validate(item) for item in data.get("data") or []]
