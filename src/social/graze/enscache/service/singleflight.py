"""In-flight de-duplication of concurrent work.

Concurrent callers asking for the same key share one run of the work instead of repeating it.
The work runs in its own task, so cancelling one caller never cancels the run the others are
waiting on. Nothing is cached once the work completes.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    def __init__(self) -> None:
        self._in_flight: Dict[Hashable, asyncio.Task[T]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._in_flight

    async def do(self, key: Hashable, work: Callable[[], Awaitable[T]]) -> T:
        """Run work for key, or wait for the run already in progress.

        Exceptions raised by the work are re-raised to every waiter. A cancelled caller stops
        waiting, the run continues for everyone else.
        """
        task = self._in_flight.get(key)
        if task is not None:
            logger.debug("Joining in-flight work for %s", key)
        else:
            task = asyncio.ensure_future(work())
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._finished(key, done))
        return await asyncio.shield(task)

    def _finished(self, key: Hashable, task: "asyncio.Task[T]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            # Every caller may have been cancelled, mark the exception as retrieved.
            logger.debug("In-flight work for %s failed: %r", key, task.exception())
