import asyncio
import math
import threading
import time
from typing import Any, Awaitable, Callable
from cachetools import TTLCache
from .config import settings
from .metrics import CACHE_LOOKUPS

class PoiCache:
    """
    Process-lifetime, in-memory TTL store for provider fragments.

    Reads mask entries older than the TTL. There is no size bound, so memory
    grows with the number of distinct (coordinate, radius) keys seen by the
    process; entries only go away when they expire and a later write purges them.
    """
    def __init__(self, namespace: str, ttl: float | None = None, timer: Callable[[], float] = time.monotonic):
        self.namespace = namespace
        self.ttl = settings.POI_CACHE_TTL_SECONDS if ttl is None else ttl
        self._store = TTLCache(maxsize=math.inf, ttl=self.ttl, timer=timer)
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            value = self._store.get(key)
        CACHE_LOOKUPS.labels(namespace=self.namespace, result="miss" if value is None else "hit").inc()
        return value

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._store[key] = value

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

class SingleFlight:
    """
    Coalesces concurrent loads of the same key: while a load is running, later
    callers for that key await the same task instead of starting their own.
    """
    def __init__(self):
        self._inflight: dict[str, asyncio.Task] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._inflight

    async def run(self, key: str, load: Callable[[], Awaitable[Any]]) -> Any:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(load())
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        # a cancelled caller must not cancel the load other callers share
        return await asyncio.shield(task)
