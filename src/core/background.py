"""Background execution of best-effort side effects.

Side effects (estimates, notifications) run off the request path. Each has
its own error boundary so one failure cannot affect another or the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BestEffortResult(Generic[T]):
    """Outcome of a best-effort operation."""

    ok: bool
    value: T | None = None
    error: str | None = None


async def run_best_effort(coro: Awaitable[T], name: str, **context: Any) -> BestEffortResult[T]:
    """Await an operation and convert any failure into a logged result.

    Args:
        coro: The awaitable to run.
        name: Operation name used in logs.
        **context: Identifiers (order_id, ...) logged on failure.

    Returns:
        BestEffortResult: ok with value, or not ok with the error message.
    """
    try:
        value = await coro
        return BestEffortResult(ok=True, value=value)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(
            "Best-effort operation %s failed (%s): %s",
            name,
            ", ".join(f"{k}={v}" for k, v in context.items()),
            e,
            exc_info=True,
        )
        return BestEffortResult(ok=False, error=str(e))


class BackgroundTaskRunner:
    """Schedules fire-and-forget coroutines and drains them on shutdown."""

    def __init__(self, drain_timeout_seconds: float = 10.0) -> None:
        self.drain_timeout_seconds = drain_timeout_seconds
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[Any], name: str, **context: Any) -> asyncio.Task:
        """Schedule a coroutine on the running loop with its own error boundary."""
        task = asyncio.create_task(run_best_effort(coro, name, **context), name=name)
        # Event loop only keeps weak references
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight tasks, cancelling whatever outlives the timeout."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logger.info("Draining %d background tasks", len(tasks))
        done, still_running = await asyncio.wait(tasks, timeout=self.drain_timeout_seconds)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled %d background tasks on shutdown", len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)


_runner: BackgroundTaskRunner | None = None


def get_background_runner() -> BackgroundTaskRunner:
    """Get or create the global background runner."""
    global _runner
    if _runner is None:
        _runner = BackgroundTaskRunner()
    return _runner


async def shutdown_background_runner() -> None:
    """Drain outstanding tasks. Call at app shutdown."""
    global _runner
    if _runner is not None:
        await _runner.drain()
        _runner = None
