import asyncio
import logging
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Iterable,
    Iterator,
    TypeVar,
    Union,
)

T = TypeVar("T")
U = TypeVar("U")

logger = logging.getLogger("s3cache")

DEFAULT_CONCURRENCY = 16


async def wrap_iterator(it: Iterator[T], executor=None) -> AsyncIterator[T]:
    """Make a blocking iterator into an async iterator by running each step in the executor.

    We assume that the iterator can be advanced from any thread.
    """
    loop = asyncio.get_running_loop()
    while True:
        result: Any = await loop.run_in_executor(executor, next, it, StopIteration)
        if result is StopIteration:
            return
        yield result


async def _aiter(xs: Iterable[T]) -> AsyncIterator[T]:
    for x in xs:
        yield x


async def bounded_map(
    fn: Callable[[T], Awaitable[U]],
    items: Union[Iterable[T], AsyncIterable[T]],
    limit: int,
) -> list[U]:
    """Await ``fn(item)`` for every item, with at most ``limit`` of them in flight at once.

    Items are pulled lazily, only when there is a free slot. Once anything fails (a task, or
    pulling the next item) no further items are started; tasks already running are left to
    settle and then the first error is raised. Results are returned in item order.
    """
    if limit < 1:
        raise ValueError(f"concurrency limit must be at least 1, got {limit}")
    if not isinstance(items, AsyncIterable):
        items = _aiter(items)
    slots = asyncio.Semaphore(limit)
    tasks: list[asyncio.Task] = []
    errors: list[BaseException] = []

    def on_done(task: asyncio.Task):
        slots.release()
        if not task.cancelled() and task.exception() is not None:
            errors.append(task.exception())  # type: ignore

    try:
        async for item in items:
            await slots.acquire()
            if errors:
                slots.release()
                break
            task = asyncio.ensure_future(fn(item))
            task.add_done_callback(on_done)
            tasks.append(task)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    except Exception as err:
        errors.append(err)

    results = await asyncio.gather(*tasks, return_exceptions=True)
    if errors:
        if len(errors) > 1:
            logger.debug(f"{len(errors) - 1} further errors suppressed: {errors[1:]}")
        raise errors[0]
    return results  # type: ignore
