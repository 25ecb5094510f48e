"""
Polling of one submitted try-on task.

The scheduler is an explicit tick state machine: each tick performs one
status check and at most one transition out of ``polling``. ``run``
drives ticks from a timer that a CancellationToken wakes immediately,
so polling never blocks the event loop and stops deterministically.
"""
import asyncio
from typing import Any, Callable, Optional

from tryon.integrations.base import TryOnProvider
from tryon.models import TaskState, TryOnKind, TryOnTask
from tryon.services.callbacks import invoke_safely
from tryon.utils.correlation import correlation_tag
from tryon.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 5.0


def max_attempts_for(kind: Any, settings=None) -> int:
    """Polling budget in attempts: image 60, video 120 by default."""
    from tryon.config import get_settings

    settings = settings or get_settings()
    if TryOnKind(kind) == TryOnKind.VIDEO:
        return settings.video_max_poll_attempts
    return settings.image_max_poll_attempts


class CancellationToken:
    """One-shot cancellation flag that can be awaited."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class PollingScheduler:
    """Drives a task in ``polling`` to completed, failed or timed_out."""

    def __init__(
        self,
        task: TryOnTask,
        provider: TryOnProvider,
        max_attempts: int,
        interval: float = DEFAULT_POLL_INTERVAL,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[Callable[[TryOnTask], Any]] = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.task = task
        self.provider = provider
        self.max_attempts = max_attempts
        self.interval = interval
        self.token = token or CancellationToken()
        self.on_progress = on_progress

    @property
    def is_active(self) -> bool:
        return not self.token.is_cancelled and self.task.state == TaskState.POLLING

    def cancel(self) -> None:
        """Stop polling; later ticks and transitions are no-ops."""
        if not self.token.is_cancelled:
            logger.info(f"{correlation_tag()} [POLL_TICK] task={self.task.id} cancelled")
        self.token.cancel()

    async def tick(self) -> TaskState:
        """
        One status check.

        Returns:
            Task state after the tick
        """
        task = self.task
        if not self.is_active:
            return task.state

        task.attempts += 1
        attempt = task.attempts

        status = None
        try:
            status = await self.provider.check_status(task.provider_task_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Transient: the attempt still counts against the budget
            logger.warning(
                f"{correlation_tag()} [POLL_TICK] task={task.id} attempt={attempt}/{self.max_attempts} "
                f"status check failed: {e}"
            )

        # The task may have been cancelled or resolved during the round trip
        if not self.is_active:
            return task.state

        if status is not None and status.is_completed:
            if status.result_media:
                task.result_media = list(status.result_media)
                task.transition(TaskState.COMPLETED)
            else:
                task.error_message = "Provider completed without result media"
                task.transition(TaskState.FAILED)
        elif status is not None and status.is_failed:
            task.error_message = status.error or "Task failed"
            task.transition(TaskState.FAILED)
        elif attempt >= self.max_attempts:
            task.error_message = f"No result after {attempt} status checks"
            task.transition(TaskState.TIMED_OUT)
        else:
            logger.debug(
                f"{correlation_tag()} [POLL_TICK] task={task.id} attempt={attempt}/{self.max_attempts} pending"
            )
            await invoke_safely(self.on_progress, task, logger=logger, tag="[POLL_TICK]")
            return task.state

        logger.info(
            f"{correlation_tag()} [POLL_TICK] task={task.id} attempt={attempt}/{self.max_attempts} "
            f"-> {task.state.value}"
        )
        return task.state

    async def _wait_interval(self) -> None:
        if self.interval <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self.token.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> TaskState:
        """
        Tick every ``interval`` seconds (first tick after one interval)
        until the task leaves ``polling`` or the token is cancelled.
        """
        logger.info(
            f"{correlation_tag()} [POLL_TICK] task={self.task.id} start interval={self.interval}s "
            f"max_attempts={self.max_attempts}"
        )
        while self.is_active:
            await self._wait_interval()
            if not self.is_active:
                break
            await self.tick()
        return self.task.state
