"""Per-key serialized task runner on asyncio.

Each key has a tail: the task most recently enqueued for it. A new task
for the key waits for the tail to settle, success or failure, before it
starts, then becomes the new tail. Keys never wait on each other.

Waiting uses ``asyncio.wait``, which returns once the previous task is
done without re-raising its exception, so one failed operation cannot
stop the operations queued behind it.
"""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import TypeVar

from notekeeper.dependencies import logger

T = TypeVar("T")


class KeyedOperationQueue:
    """Runs async operations one at a time per key, in submission order.

    Example:
        queue = KeyedOperationQueue()
        first = queue.enqueue("timeline-1", lambda: linker_step("a"))
        second = queue.enqueue("timeline-1", lambda: linker_step("b"))
        await second  # runs only after `first` has finished
    """

    def __init__(self) -> None:
        self._tails: dict[Hashable, asyncio.Task] = {}

    def enqueue(self, key: Hashable, task: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """Schedule ``task`` to run after every earlier task for ``key``.

        Must be called from a running event loop. The queue never cancels
        or times out an operation, but cancelling a coroutine that awaits
        the returned task cancels the task too. Callers that may be
        cancelled should await it through ``asyncio.shield``.

        Args:
            key: Serialization key (a timeline id for the linker)
            task: Zero-argument callable returning the awaitable to run

        Returns:
            Task that settles with the operation's result or exception
        """
        previous = self._tails.get(key)

        async def run() -> T:
            if previous is not None:
                await asyncio.wait([previous])
            return await task()

        handle = asyncio.ensure_future(run())
        self._tails[key] = handle
        handle.add_done_callback(lambda done: self._release(key, done))
        logger.debug(
            "operation_enqueued",
            extra={"key": str(key), "waiting": previous is not None},
        )
        return handle

    def _release(self, key: Hashable, done: asyncio.Task) -> None:
        if self._tails.get(key) is done:
            del self._tails[key]

    def pending_keys(self) -> list[Hashable]:
        """Keys with at least one operation not yet settled."""
        return list(self._tails)

    async def drain(self) -> None:
        """Wait until every enqueued operation has settled."""
        while self._tails:
            await asyncio.wait(list(self._tails.values()))
