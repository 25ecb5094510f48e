"""
Tests for polling: bounded termination, per-kind budgets, cancellation.
Polling must not hang or block the event loop.
"""
import asyncio

import pytest

from tests.fakes.fake_provider import FakeProvider
from tryon.errors import ProviderStatusError
from tryon.models import ProviderStatus, TaskState, TryOnKind, TryOnRequest, TryOnTask
from tryon.services.polling import CancellationToken, PollingScheduler, max_attempts_for


def polling_task(kind=TryOnKind.IMAGE):
    request = TryOnRequest(
        kind=kind,
        cost=25,
        user_image_ref="https://cdn.example.com/me.jpg",
        subject_media_ref="https://cdn.example.com/subject",
        user_id="u1",
        product_id="p1",
    )
    task = TryOnTask(request=request, provider_task_id="fake_task_1")
    task.state = TaskState.POLLING
    return task


@pytest.mark.asyncio
async def test_completed_with_media():
    task = polling_task()
    provider = FakeProvider.completing_on(3, ["x", "y"])
    scheduler = PollingScheduler(task, provider, max_attempts=60, interval=0)

    state = await scheduler.run()

    assert state == TaskState.COMPLETED
    assert task.attempts == 3
    assert task.result_media == ["x", "y"]


@pytest.mark.asyncio
async def test_completed_without_media_is_failure():
    task = polling_task()
    provider = FakeProvider(statuses=[ProviderStatus(status="completed", result_media=[])])
    scheduler = PollingScheduler(task, provider, max_attempts=60, interval=0)

    assert await scheduler.run() == TaskState.FAILED
    assert "without result media" in task.error_message


@pytest.mark.asyncio
async def test_provider_failure_keeps_error_text():
    task = polling_task()
    scheduler = PollingScheduler(task, FakeProvider.failing_on(2, "no face found"), max_attempts=60, interval=0)

    assert await scheduler.run() == TaskState.FAILED
    assert task.error_message == "no face found"
    assert task.attempts == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts", [1, 5, 60])
async def test_bounded_termination(max_attempts):
    task = polling_task()
    provider = FakeProvider()
    scheduler = PollingScheduler(task, provider, max_attempts=max_attempts, interval=0)

    state = await asyncio.wait_for(scheduler.run(), timeout=5)

    assert state == TaskState.TIMED_OUT
    assert task.attempts == max_attempts
    assert len(provider.status_calls) == max_attempts


@pytest.mark.asyncio
@pytest.mark.parametrize("kind, expected", [(TryOnKind.IMAGE, 60), (TryOnKind.VIDEO, 120)])
async def test_budget_by_kind(settings, kind, expected):
    task = polling_task(kind)
    budget = max_attempts_for(kind, settings)
    scheduler = PollingScheduler(task, FakeProvider(), max_attempts=budget, interval=0)

    await scheduler.run()

    assert budget == expected
    assert task.state == TaskState.TIMED_OUT
    assert task.attempts == expected


@pytest.mark.asyncio
async def test_completion_on_last_attempt_wins_over_timeout():
    task = polling_task()
    provider = FakeProvider.completing_on(3, ["x"])
    scheduler = PollingScheduler(task, provider, max_attempts=3, interval=0)

    assert await scheduler.run() == TaskState.COMPLETED


@pytest.mark.asyncio
async def test_transient_errors_count_as_attempts():
    task = polling_task()
    provider = FakeProvider(statuses=[ProviderStatusError("503"), RuntimeError("boom")])
    scheduler = PollingScheduler(task, provider, max_attempts=2, interval=0)

    assert await scheduler.run() == TaskState.TIMED_OUT
    assert task.attempts == 2


@pytest.mark.asyncio
async def test_transient_error_then_completion():
    task = polling_task()
    provider = FakeProvider(statuses=[
        ProviderStatusError("timeout"),
        ProviderStatus(status="completed", result_media=["x"]),
    ])
    scheduler = PollingScheduler(task, provider, max_attempts=60, interval=0)

    assert await scheduler.run() == TaskState.COMPLETED
    assert task.attempts == 2


@pytest.mark.asyncio
async def test_progress_callback_per_pending_tick():
    task = polling_task()
    seen = []
    provider = FakeProvider.completing_on(4, ["x"])
    scheduler = PollingScheduler(
        task, provider, max_attempts=60, interval=0,
        on_progress=lambda t: seen.append(t.attempts),
    )

    await scheduler.run()

    assert seen == [1, 2, 3]


@pytest.mark.asyncio
async def test_progress_callback_errors_do_not_stop_polling():
    task = polling_task()

    async def broken(_task):
        raise RuntimeError("ui gone")

    scheduler = PollingScheduler(
        task, FakeProvider.completing_on(2, ["x"]), max_attempts=60, interval=0, on_progress=broken,
    )

    assert await scheduler.run() == TaskState.COMPLETED


@pytest.mark.asyncio
async def test_tick_noop_when_not_polling():
    task = polling_task()
    task.state = TaskState.SUBMITTED
    provider = FakeProvider()
    scheduler = PollingScheduler(task, provider, max_attempts=60, interval=0)

    assert await scheduler.tick() == TaskState.SUBMITTED
    assert task.attempts == 0
    assert provider.status_calls == []


@pytest.mark.asyncio
async def test_cancelled_tick_is_noop():
    task = polling_task()
    provider = FakeProvider.completing_on(1, ["x"])
    scheduler = PollingScheduler(task, provider, max_attempts=60, interval=0)
    scheduler.cancel()

    assert await scheduler.tick() == TaskState.POLLING
    assert provider.status_calls == []


@pytest.mark.asyncio
async def test_cancel_during_status_check_skips_transition():
    task = polling_task()
    token = CancellationToken()
    provider = FakeProvider.completing_on(1, ["x"])
    provider.before_status = lambda n: token.cancel()
    scheduler = PollingScheduler(task, provider, max_attempts=60, interval=0, token=token)

    assert await scheduler.tick() == TaskState.POLLING
    assert task.result_media == []


@pytest.mark.asyncio
async def test_cancel_wakes_interval_timer():
    """Cancellation stops a long interval wait immediately."""
    task = polling_task()
    provider = FakeProvider()
    scheduler = PollingScheduler(task, provider, max_attempts=60, interval=30)

    runner = asyncio.create_task(scheduler.run())
    await asyncio.sleep(0.01)
    scheduler.cancel()
    state = await asyncio.wait_for(runner, timeout=1)

    assert state == TaskState.POLLING
    assert provider.status_calls == []


@pytest.mark.asyncio
async def test_first_tick_after_one_interval():
    task = polling_task()
    provider = FakeProvider.completing_on(1, ["x"])
    scheduler = PollingScheduler(task, provider, max_attempts=60, interval=0.05)

    runner = asyncio.create_task(scheduler.run())
    await asyncio.sleep(0.01)
    assert provider.status_calls == []

    assert await asyncio.wait_for(runner, timeout=1) == TaskState.COMPLETED


def test_invalid_budget_rejected():
    with pytest.raises(ValueError):
        PollingScheduler(polling_task(), FakeProvider(), max_attempts=0)
