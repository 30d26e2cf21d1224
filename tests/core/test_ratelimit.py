import asyncio

import pytest

from livability.core.ratelimit import RateLimiter

INTERVAL = 0.05


def _recorder(limiter: RateLimiter, runs: list, label, result=None, exc: Exception | None = None):
    async def work():
        # execution start as stamped by the limiter
        runs.append((label, limiter._last_run))
        if exc is not None:
            raise exc
        return result if result is not None else label
    return work


class TestRateLimiter:
    async def test_returns_work_result(self):
        limiter = RateLimiter(min_interval=INTERVAL)
        runs: list = []
        assert await limiter.submit(_recorder(limiter, runs, "a", result=42)) == 42

    async def test_back_to_back_calls_are_spaced(self):
        limiter = RateLimiter(min_interval=INTERVAL)
        runs: list = []
        await limiter.submit(_recorder(limiter, runs, "a"))
        await limiter.submit(_recorder(limiter, runs, "b"))
        assert runs[1][1] - runs[0][1] >= INTERVAL

    async def test_concurrent_submissions_run_fifo_and_spaced(self):
        limiter = RateLimiter(min_interval=INTERVAL)
        runs: list = []
        results = await asyncio.gather(*(limiter.submit(_recorder(limiter, runs, i)) for i in range(4)))
        assert results == [0, 1, 2, 3]
        assert [label for label, _ in runs] == [0, 1, 2, 3]
        gaps = [b[1] - a[1] for a, b in zip(runs, runs[1:])]
        assert all(g >= INTERVAL for g in gaps)

    async def test_only_one_item_runs_at_a_time(self):
        limiter = RateLimiter(min_interval=0)
        active = 0
        peak = 0

        async def work():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        await asyncio.gather(*(limiter.submit(work) for _ in range(5)))
        assert peak == 1

    async def test_failure_reaches_only_its_caller(self):
        limiter = RateLimiter(min_interval=0.01)
        runs: list = []
        first = limiter.submit(_recorder(limiter, runs, "bad", exc=RuntimeError("boom")))
        second = limiter.submit(_recorder(limiter, runs, "good"))
        results = await asyncio.gather(first, second, return_exceptions=True)
        assert isinstance(results[0], RuntimeError)
        assert results[1] == "good"

    async def test_queue_keeps_draining_after_failure(self):
        limiter = RateLimiter(min_interval=0.01)
        runs: list = []
        with pytest.raises(ValueError):
            await limiter.submit(_recorder(limiter, runs, "bad", exc=ValueError("x")))
        assert await limiter.submit(_recorder(limiter, runs, "next")) == "next"
        assert limiter.pending == 0

    async def test_cancelled_work_resolves_its_caller(self):
        limiter = RateLimiter(min_interval=0.01)

        async def work():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(limiter.submit(work), timeout=1)
        assert await limiter.submit(_recorder(limiter, [], "after")) == "after"

    async def test_stopping_the_drain_releases_queued_callers(self):
        limiter = RateLimiter(min_interval=10)
        runs: list = []
        await limiter.submit(_recorder(limiter, runs, "first"))
        waiting = asyncio.ensure_future(limiter.submit(_recorder(limiter, runs, "second")))
        for _ in range(3):
            await asyncio.sleep(0)

        limiter._drainer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(waiting, timeout=1)
        assert limiter.pending == 0
        assert [label for label, _ in runs] == ["first"]
