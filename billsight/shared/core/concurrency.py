import asyncio
from typing import Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def gather_bounded(
    items: Iterable[T], func: Callable[[T], Awaitable[R]], limit: int
) -> List[R]:
    """Run `func` over `items` with at most `limit` calls in flight. Results keep input order."""
    semaphore = asyncio.Semaphore(max(1, int(limit)))

    async def _bounded(item: T) -> R:
        async with semaphore:
            return await func(item)

    return list(await asyncio.gather(*(_bounded(item) for item in items)))
