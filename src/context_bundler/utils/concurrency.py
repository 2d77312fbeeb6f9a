"""Async concurrency primitives used by token counting and assembly."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

T = TypeVar("T")
R = TypeVar("R")

_LOGGER = logging.getLogger(__name__)


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    task: Callable[[T], Awaitable[R]],
) -> list[R | None]:
    """
    Run ``task`` over ``items`` with at most ``limit`` calls in flight.

    ``min(limit, len(items))`` workers repeatedly claim the next unclaimed
    index. The result for item ``i`` is stored at index ``i`` regardless of
    completion order. A failing item yields ``None`` at its index and never
    stops sibling workers.
    """

    if limit <= 0:
        raise ValueError("limit must be > 0")

    results: list[R | None] = [None] * len(items)
    if not items:
        return results

    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            # Claim and increment happen without an await in between.
            index = next_index
            next_index += 1
            try:
                results[index] = await task(items[index])
            except Exception:
                _LOGGER.warning(
                    "work item failed",
                    exc_info=True,
                    extra={"item_index": index},
                )
                results[index] = None

    width = min(limit, len(items))
    await asyncio.gather(*(worker() for _ in range(width)))
    return results


async def run_with_timeout(coroutine: Awaitable[T], timeout_seconds: float) -> T:
    """Await ``coroutine``, cancelling it after ``timeout_seconds``.

    Raises ``TimeoutError`` when the deadline passes. A rejected timeout closes
    the coroutine unawaited.
    """

    if timeout_seconds <= 0:
        if inspect.iscoroutine(coroutine):
            coroutine.close()
        raise ValueError("timeout_seconds must be > 0")
    try:
        return await asyncio.wait_for(coroutine, timeout_seconds)
    except TimeoutError as exc:
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds") from exc


__all__ = [
    "map_with_concurrency",
    "run_with_timeout",
]
