"""Conversation run orchestration: thread → message → run → poll → reply.

The remote run is driven by polling. `next_phase` is the pure transition used by
the poll loop, so the loop and its timeout policy are testable with a fake
provider and a fake sleep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from botgate.core.config import Settings
from botgate.core.errors import ProviderError
from botgate.core.metrics import botgate_run_duration_seconds, botgate_run_polls_total, botgate_runs_total
from botgate.domain.assistant import PENDING_RUN_STATUSES, Run, Thread
from botgate.providers.base import AssistantProvider

log = logging.getLogger(__name__)


class RunPhase(str, Enum):
    NO_THREAD = "no_thread"
    THREAD_READY = "thread_ready"
    MESSAGE_POSTED = "message_posted"
    RUN_QUEUED = "run_queued"
    RUN_IN_PROGRESS = "run_in_progress"
    RUN_COMPLETED = "run_completed"
    RUN_FAILED = "run_failed"
    RUN_TIMEOUT = "run_timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (RunPhase.RUN_COMPLETED, RunPhase.RUN_FAILED, RunPhase.RUN_TIMEOUT)


def next_phase(status: str, polls: int, max_polls: int | None) -> RunPhase:
    """Phase after the `polls`-th status poll returned `status`.

    `max_polls=None` means no budget. Only pending statuses can time out.
    """
    if status == "completed":
        return RunPhase.RUN_COMPLETED
    if status in PENDING_RUN_STATUSES:
        if max_polls is not None and polls >= max_polls:
            return RunPhase.RUN_TIMEOUT
        return RunPhase.RUN_QUEUED if status == "queued" else RunPhase.RUN_IN_PROGRESS
    return RunPhase.RUN_FAILED


@dataclass(frozen=True)
class RunPolicy:
    poll_interval_seconds: float = 1.0
    max_polls: int | None = 60
    thread_fallback_on_any_error: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> RunPolicy:
        return cls(
            poll_interval_seconds=settings.run_poll_interval_seconds,
            max_polls=settings.run_poll_max_attempts,
            thread_fallback_on_any_error=settings.thread_fallback_on_any_error,
        )


@dataclass(frozen=True)
class RunResult:
    text: str
    thread_id: str
    run_id: str
    polls: int


class RunError(Exception):
    def __init__(
        self,
        message: str,
        *,
        phase: RunPhase,
        thread_id: str,
        run_id: str | None,
        status: str | None,
        polls: int,
    ):
        super().__init__(message)
        self.phase = phase
        self.thread_id = thread_id
        self.run_id = run_id
        self.status = status
        self.polls = polls


class RunFailedError(RunError):
    pass


class RunTimeoutError(RunError):
    pass


class NoTextReplyError(RunError):
    pass


Sleep = Callable[[float], Awaitable[None]]


class RunOrchestrator:
    def __init__(
        self,
        provider: AssistantProvider,
        policy: RunPolicy,
        *,
        path: str = "invoke",
        sleep: Sleep = asyncio.sleep,
    ):
        self._provider = provider
        self._policy = policy
        self._path = path
        self._sleep = sleep
        self.phase = RunPhase.NO_THREAD

    async def ensure_thread(self, conversation_id: str | None) -> Thread:
        """NO_THREAD → THREAD_READY. Reuses the conversation's thread or starts a new one."""
        if not conversation_id:
            return await self._provider.create_thread()
        try:
            return await self._provider.retrieve_thread(conversation_id)
        except ProviderError as e:
            if not (e.is_not_found or self._policy.thread_fallback_on_any_error):
                raise
            level = logging.INFO if e.is_not_found else logging.WARNING
            log.log(
                level,
                "run.thread_fallback",
                extra={"conversation_id": conversation_id, "upstream_status": e.upstream_status},
            )
        thread = await self._provider.create_thread()
        log.info("run.thread_created", extra={"conversation_id": conversation_id, "thread_id": thread.id})
        return thread

    async def wait_for_run(self, thread_id: str, run: Run) -> tuple[Run, RunPhase, int]:
        """Poll until a terminal phase. The first poll is immediate; later ones wait one interval."""
        polls = 0
        while True:
            if polls:
                await self._sleep(self._policy.poll_interval_seconds)
            current = await self._provider.retrieve_run(thread_id, run.id)
            polls += 1
            botgate_run_polls_total.labels(path=self._path).inc()
            phase = next_phase(current.status, polls, self._policy.max_polls)
            self.phase = phase
            log.debug("run.poll", extra={"run_id": run.id, "status": current.status, "polls": polls})
            if phase.is_terminal:
                return current, phase, polls

    async def read_reply(self, thread_id: str) -> str | None:
        messages = await self._provider.list_messages(thread_id, limit=1)
        if not messages:
            return None
        return messages[0].first_text()

    async def run(self, *, assistant_id: str, conversation_id: str | None, message: str) -> RunResult:
        thread = await self.ensure_thread(conversation_id)
        self.phase = RunPhase.THREAD_READY
        await self._provider.create_message(thread.id, message)
        self.phase = RunPhase.MESSAGE_POSTED
        run = await self._provider.create_run(thread.id, assistant_id)
        self.phase = RunPhase.RUN_QUEUED
        log.info("run.started", extra={"path": self._path, "thread_id": thread.id, "run_id": run.id})

        started = time.perf_counter()
        try:
            final, phase, polls = await self.wait_for_run(thread.id, run)
        finally:
            botgate_run_duration_seconds.labels(path=self._path).observe(time.perf_counter() - started)
        botgate_runs_total.labels(path=self._path, status=phase.value).inc()

        common = {"phase": phase, "thread_id": thread.id, "run_id": run.id, "status": final.status, "polls": polls}
        if phase is RunPhase.RUN_TIMEOUT:
            log.warning("run.timeout", extra={"run_id": run.id, "polls": polls, "status": final.status})
            raise RunTimeoutError(f"Run did not finish after {polls} polls", **common)
        if phase is RunPhase.RUN_FAILED:
            log.warning(
                "run.failed",
                extra={"run_id": run.id, "status": final.status, "last_error": final.last_error},
            )
            raise RunFailedError(f"Run ended with status {final.status}", **common)

        text = await self.read_reply(thread.id)
        if text is None:
            log.warning("run.no_text_reply", extra={"run_id": run.id, "thread_id": thread.id})
            raise NoTextReplyError("No response received", **common)

        log.info("run.completed", extra={"path": self._path, "run_id": run.id, "polls": polls})
        return RunResult(text=text, thread_id=thread.id, run_id=run.id, polls=polls)
