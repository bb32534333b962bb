from __future__ import annotations

import pytest

from botgate.core.errors import ProviderError
from botgate.services.orchestrator import (
    NoTextReplyError,
    RunFailedError,
    RunOrchestrator,
    RunPhase,
    RunPolicy,
    RunTimeoutError,
    next_phase,
)


def test_next_phase_transitions() -> None:
    assert next_phase("queued", 1, 60) is RunPhase.RUN_QUEUED
    assert next_phase("in_progress", 59, 60) is RunPhase.RUN_IN_PROGRESS
    assert next_phase("in_progress", 60, 60) is RunPhase.RUN_TIMEOUT
    assert next_phase("completed", 60, 60) is RunPhase.RUN_COMPLETED
    assert next_phase("requires_action", 1, 60) is RunPhase.RUN_FAILED
    assert next_phase("cancelled", 1, None) is RunPhase.RUN_FAILED
    assert next_phase("queued", 10_000, None) is RunPhase.RUN_QUEUED


@pytest.mark.asyncio
async def test_three_statuses_take_exactly_three_polls(provider, fake_sleep) -> None:
    provider.run_statuses = ["queued", "in_progress", "completed"]
    orchestrator = RunOrchestrator(provider, RunPolicy(poll_interval_seconds=1.0), sleep=fake_sleep)

    result = await orchestrator.run(assistant_id="asst_1", conversation_id=None, message="hi")

    assert result.text == "hello from the assistant"
    assert result.polls == 3
    assert len(provider.ops("retrieve_run")) == 3
    # First poll is immediate.
    assert fake_sleep.calls == [1.0, 1.0]
    assert orchestrator.phase is RunPhase.RUN_COMPLETED
    assert provider.ops("list_messages") == [("list_messages", result.thread_id, 1)]


@pytest.mark.asyncio
async def test_stuck_run_times_out_after_budget(provider, fake_sleep) -> None:
    provider.run_statuses = ["in_progress"]
    orchestrator = RunOrchestrator(provider, RunPolicy(max_polls=60), path="webhook", sleep=fake_sleep)

    with pytest.raises(RunTimeoutError) as exc_info:
        await orchestrator.run(assistant_id="asst_1", conversation_id=None, message="hi")

    assert exc_info.value.polls == 60
    assert exc_info.value.phase is RunPhase.RUN_TIMEOUT
    assert len(provider.ops("retrieve_run")) == 60
    assert len(fake_sleep.calls) == 59
    assert provider.ops("list_messages") == []


@pytest.mark.asyncio
async def test_failed_run_is_not_a_missing_reply(provider, fake_sleep) -> None:
    provider.run_statuses = ["queued", "failed"]
    orchestrator = RunOrchestrator(provider, RunPolicy(), sleep=fake_sleep)

    with pytest.raises(RunFailedError) as exc_info:
        await orchestrator.run(assistant_id="asst_1", conversation_id=None, message="hi")

    assert exc_info.value.status == "failed"
    assert exc_info.value.polls == 2


@pytest.mark.asyncio
async def test_completed_run_without_text_reply(provider, fake_sleep) -> None:
    provider.reply = None
    orchestrator = RunOrchestrator(provider, RunPolicy(), sleep=fake_sleep)

    with pytest.raises(NoTextReplyError):
        await orchestrator.run(assistant_id="asst_1", conversation_id=None, message="hi")


@pytest.mark.asyncio
async def test_existing_thread_is_reused(provider, fake_sleep) -> None:
    provider.threads.add("thread_existing")
    orchestrator = RunOrchestrator(provider, RunPolicy(), sleep=fake_sleep)

    result = await orchestrator.run(assistant_id="asst_1", conversation_id="thread_existing", message="hi")

    assert result.thread_id == "thread_existing"
    assert provider.ops("create_thread") == []
    assert provider.ops("create_message") == [("create_message", "thread_existing", "hi")]


@pytest.mark.asyncio
async def test_unknown_conversation_gets_a_new_thread(provider, fake_sleep) -> None:
    orchestrator = RunOrchestrator(provider, RunPolicy(), sleep=fake_sleep)

    result = await orchestrator.run(assistant_id="asst_1", conversation_id="group_chat_7", message="hi")

    assert result.thread_id != "group_chat_7"
    assert len(provider.ops("create_thread")) == 1


@pytest.mark.asyncio
async def test_fallback_restricted_to_not_found(provider, fake_sleep) -> None:
    provider.fail["retrieve_thread"] = ProviderError("OpenAI thread.retrieve failed (500): boom", upstream_status=500)
    orchestrator = RunOrchestrator(provider, RunPolicy(thread_fallback_on_any_error=False), sleep=fake_sleep)

    with pytest.raises(ProviderError):
        await orchestrator.run(assistant_id="asst_1", conversation_id="thread_x", message="hi")
    assert provider.ops("create_thread") == []


@pytest.mark.asyncio
async def test_fallback_on_any_error_by_default(provider, fake_sleep) -> None:
    provider.fail["retrieve_thread"] = ProviderError("OpenAI thread.retrieve failed (500): boom", upstream_status=500)
    orchestrator = RunOrchestrator(provider, RunPolicy(), sleep=fake_sleep)

    result = await orchestrator.run(assistant_id="asst_1", conversation_id="thread_x", message="hi")

    assert result.text == "hello from the assistant"
    assert len(provider.ops("create_thread")) == 1
