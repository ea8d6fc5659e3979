"""Bounded-concurrency fan-out with per-task timeouts and partial-failure tolerance."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TaskOutcome(Generic[T, R]):
    item: T
    result: R | None = None
    error: str | None = None
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


async def parallel_map(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    limit: int = 4,
    timeout: float | None = None,
) -> list[TaskOutcome[T, R]]:
    """Run `fn` over `items` with at most `limit` in flight.

    Outcomes come back in input order. A failing or timed-out item yields an
    outcome with `error` set; it never cancels its siblings.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run_one(item: T) -> TaskOutcome[T, R]:
        async with semaphore:
            start = time.monotonic()
            try:
                if timeout is None:
                    result = await fn(item)
                else:
                    result = await asyncio.wait_for(fn(item), timeout=timeout)
                return TaskOutcome(
                    item=item, result=result, duration_seconds=time.monotonic() - start
                )
            except TimeoutError:
                logger.warning("Task for %r timed out after %ss", item, timeout)
                return TaskOutcome(
                    item=item,
                    error=f"timed out after {timeout}s",
                    timed_out=True,
                    duration_seconds=time.monotonic() - start,
                )
            except Exception as exc:
                logger.warning("Task for %r failed: %s", item, exc)
                return TaskOutcome(
                    item=item, error=str(exc), duration_seconds=time.monotonic() - start
                )

    return list(await asyncio.gather(*[run_one(item) for item in items]))
