"""Bounded-concurrency fan-out/fan-in for per-item and per-category work.

run_bounded() starts one task per item, lets at most max_concurrent of them
run at a time, and collects an Outcome for every item in input order. A
failing item never cancels its siblings; its exception is stored on the
outcome instead.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class Outcome(Generic[T, R]):
    """Result of processing one item.

    Attributes:
        item: The input item
        value: Worker return value (None on failure)
        error: Exception raised by the worker (None on success)
    """

    item: T
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult(Generic[T, R]):
    """Outcomes of a batch, in input order."""

    outcomes: list[Outcome[T, R]] = field(default_factory=list)

    @property
    def ok(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def fail(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def failures(self) -> list[Outcome[T, R]]:
        return [o for o in self.outcomes if not o.ok]

    def __len__(self) -> int:
        return len(self.outcomes)


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    max_concurrent: int,
    label: str = "batch",
) -> BatchResult[T, R]:
    """Run worker over items with at most max_concurrent in flight.

    Args:
        items: Items to process
        worker: Async function applied to each item
        max_concurrent: Concurrency limit (>= 1)
        label: Name used in log messages

    Returns:
        BatchResult with one Outcome per item, in input order
    """
    if max_concurrent < 1:
        raise ValueError("max_concurrent must be >= 1")

    total = len(items)
    semaphore = asyncio.Semaphore(max_concurrent)

    logger.debug("Batch started | batch=%s total=%d max_concurrent=%d", label, total, max_concurrent)

    async def run_one(item: T) -> R:
        async with semaphore:
            return await worker(item)

    results = await asyncio.gather(*(run_one(item) for item in items), return_exceptions=True)

    outcomes: list[Outcome[T, R]] = []
    for item, result in zip(items, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            outcomes.append(Outcome(item=item, error=result))
        else:
            outcomes.append(Outcome(item=item, value=result))

    batch = BatchResult(outcomes=outcomes)
    logger.debug("Batch complete | batch=%s ok=%d fail=%d", label, batch.ok, batch.fail)
    return batch
