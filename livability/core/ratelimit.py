import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

class RateLimiter:
    """
    Serializes async work with a minimum spacing between execution starts.

    Items run one at a time in submission order. A single drain task owns the
    queue and the last-run timestamp; it is started on demand by `submit` and
    exits once the queue is empty. A failing item only fails its own caller.
    If the drain task is torn down, every waiting caller is released.
    """
    def __init__(self, min_interval: float = 1.0):
        self.min_interval = min_interval
        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._last_run: float | None = None
        self._drainer: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def submit(self, work: Callable[[], Awaitable[Any]]) -> Any:
        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        self._queue.append((work, fut))
        if self._drainer is None or self._drainer.done():
            self._drainer = loop.create_task(self._drain())
        return await fut

    async def _wait_turn(self) -> None:
        if self._last_run is None:
            return
        loop = asyncio.get_running_loop()
        # Re-check after waking; the loop clock may fire a hair early.
        while True:
            remaining = self._last_run + self.min_interval - loop.time()
            if remaining <= 0:
                return
            await asyncio.sleep(remaining)

    async def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        fut: asyncio.Future | None = None
        try:
            while self._queue:
                await self._wait_turn()
                work, fut = self._queue.popleft()
                if fut.cancelled():
                    logger.debug("rate-limited item cancelled before running")
                    continue
                self._last_run = loop.time()
                try:
                    result = await work()
                except Exception as exc:
                    if not fut.cancelled():
                        fut.set_exception(exc)
                else:
                    if not fut.cancelled():
                        fut.set_result(result)
        except BaseException as exc:
            # The drain task is going away; nothing it owns may stay unresolved.
            if fut is not None and not fut.done():
                if isinstance(exc, asyncio.CancelledError):
                    fut.cancel()
                else:
                    fut.set_exception(exc)
            while self._queue:
                _, queued = self._queue.popleft()
                queued.cancel()
            logger.warning("rate limiter drain stopped: %r", exc)
            raise
