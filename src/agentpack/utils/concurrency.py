"""Bounded asyncio worker pool.

``run_with_concurrency`` runs a list of coroutine factories with at most
``limit`` in flight. Every task gets exactly one outcome, in input order:
``fulfilled`` with its value, ``rejected`` with its exception, or
``cancelled`` when fail-fast stopped it (in flight) or never started it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

FULFILLED = "fulfilled"
REJECTED = "rejected"
CANCELLED = "cancelled"


@dataclass
class TaskOutcome(Generic[T]):
    """Outcome of one pooled task."""

    index: int
    status: str
    value: T | None = None
    error: BaseException | None = None


@dataclass
class ConcurrencyResult(Generic[T]):
    """All outcomes of a pool run, ordered like the input tasks."""

    outcomes: list[TaskOutcome[T]] = field(default_factory=list)

    @property
    def rejected(self) -> list[TaskOutcome[T]]:
        return [o for o in self.outcomes if o.status == REJECTED]


async def run_with_concurrency(
    tasks: Sequence[Callable[[], Awaitable[T]]],
    limit: int,
    *,
    fail_fast: bool = False,
) -> ConcurrencyResult[T]:
    """Run *tasks* with at most *limit* concurrently.

    Args:
        tasks: Zero-argument callables returning awaitables. A task is only
            invoked once a worker picks it up.
        limit: Maximum number of tasks in flight (at least 1).
        fail_fast: Stop issuing queued tasks after the first rejection and
            cancel tasks that are still running.

    Returns:
        A ``ConcurrencyResult`` with one outcome per task.

    Raises:
        ValueError: If *limit* is less than 1.
    """
    if limit < 1:
        raise ValueError(f"Concurrency limit must be at least 1, got {limit}")

    outcomes: list[TaskOutcome[T] | None] = [None] * len(tasks)
    running: dict[int, asyncio.Future[T]] = {}
    next_index = 0
    stopped = False

    def _stop() -> None:
        nonlocal stopped
        if stopped:
            return
        stopped = True
        for future in running.values():
            future.cancel()

    async def _worker() -> None:
        nonlocal next_index
        while not stopped and next_index < len(tasks):
            index = next_index
            next_index += 1
            future = asyncio.ensure_future(tasks[index]())
            running[index] = future
            try:
                value = await future
            except asyncio.CancelledError:
                if not stopped:
                    raise
                outcomes[index] = TaskOutcome(index=index, status=CANCELLED)
            except Exception as exc:
                outcomes[index] = TaskOutcome(index=index, status=REJECTED, error=exc)
                if fail_fast:
                    logger.debug("Task %d failed, stopping pool: %s", index, exc)
                    _stop()
            else:
                outcomes[index] = TaskOutcome(index=index, status=FULFILLED, value=value)
            finally:
                running.pop(index, None)

    workers = min(limit, len(tasks))
    if workers:
        await asyncio.gather(*(_worker() for _ in range(workers)))

    result: ConcurrencyResult[T] = ConcurrencyResult()
    for index, outcome in enumerate(outcomes):
        if outcome is None:
            outcome = TaskOutcome(index=index, status=CANCELLED)
        result.outcomes.append(outcome)
    return result
