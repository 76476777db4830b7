"""
Concurrent fan-out over an async stream.

`fan_out` pulls items from an upstream async iterable, runs one task per item
under an AdmissionController and yields results in the order the tasks
finish. A ticket is acquired before the next upstream item is pulled, which
is what bounds concurrency and applies backpressure upstream. Each ticket is
released by its task's done callback, so it is returned whether the task
succeeds, fails or is cancelled before it ever starts.
"""
import asyncio
import functools
import logging
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Optional, Set, TypeVar

from vaporsource.core.concurrency import AdmissionController, Ticket

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

_DONE = object()


async def fan_out(
    items: AsyncIterable[T],
    worker: Callable[[T], Awaitable[Optional[U]]],
    controller: AdmissionController,
    *,
    key: Callable[[T], str] = str,
    on_error: Optional[Callable[[T, Exception], None]] = None,
) -> AsyncIterator[U]:
    """
    Run `worker` over every item with at most `controller.limit` in flight.

    Workers returning None emit nothing. An exception from a worker is logged
    with the item's key and reported to `on_error`; it never cancels sibling
    tasks. An exception from the upstream iterable is re-raised to the
    consumer once the stream is torn down.

    Closing the returned iterator early cancels in-flight workers.
    """
    queue: asyncio.Queue = asyncio.Queue()
    tasks: Set[asyncio.Task] = set()

    async def run_one(item: T) -> None:
        try:
            result = await worker(item)
        except Exception as e:
            logger.error(f"[{controller.name}] Error processing {key(item)}: {e}")
            if on_error is not None:
                on_error(item, e)
            return
        if result is not None:
            queue.put_nowait(result)

    def finish(ticket: Ticket, task: asyncio.Task) -> None:
        tasks.discard(task)
        controller.release(ticket)

    async def feed() -> None:
        try:
            async for item in items:
                ticket = await controller.acquire()
                task = asyncio.create_task(run_one(item))
                tasks.add(task)
                task.add_done_callback(functools.partial(finish, ticket))
            while tasks:
                await asyncio.wait(set(tasks))
        finally:
            try:
                aclose = getattr(items, "aclose", None)
                if aclose is not None:
                    await aclose()
            finally:
                queue.put_nowait(_DONE)

    feeder = asyncio.create_task(feed())
    try:
        while True:
            result = await queue.get()
            if result is _DONE:
                break
            yield result
        await feeder
    finally:
        if not feeder.done():
            feeder.cancel()
        pending = [feeder, *tasks]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
