"""
Periodic job scheduling.

Repeating work (matching cycles, cache sweeps) runs through a PeriodicRunner
driven by a Ticker and stopped through a CancellationToken. Production code
uses IntervalTicker; tests use ManualTicker to advance cycles explicitly.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol

import structlog

logger = structlog.get_logger().bind(component="scheduler")


class CancellationToken:
    """One-shot cancellation signal shared between a runner and its owner."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class Ticker(Protocol):
    """Source of ticks for a PeriodicRunner."""

    async def wait(self, token: CancellationToken) -> bool:
        """Block until the next tick. Returns False once the token is cancelled."""
        ...


class IntervalTicker:
    """Ticks every ``interval`` seconds of wall-clock time."""

    def __init__(self, interval: float):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval

    async def wait(self, token: CancellationToken) -> bool:
        if token.cancelled:
            return False
        try:
            await asyncio.wait_for(token.wait(), timeout=self.interval)
            return False
        except asyncio.TimeoutError:
            return not token.cancelled


class ManualTicker:
    """
    Ticker advanced by explicit calls to ``tick()``.

    ``tick()`` releases exactly one cycle and returns once the runner is
    parked waiting for the next tick, so callers can assert on the cycle's
    effects without sleeping.
    """

    def __init__(self) -> None:
        self._ticks: asyncio.Queue = asyncio.Queue()
        self._idle = asyncio.Event()

    async def wait(self, token: CancellationToken) -> bool:
        if token.cancelled:
            self._idle.set()
            return False

        self._idle.set()
        getter = asyncio.ensure_future(self._ticks.get())
        cancelled = asyncio.ensure_future(token.wait())
        done, pending = await asyncio.wait({getter, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()

        if token.cancelled:
            return False
        self._idle.clear()
        return getter in done

    async def wait_until_idle(self) -> None:
        await self._idle.wait()

    async def tick(self) -> None:
        await self._idle.wait()
        self._idle.clear()
        self._ticks.put_nowait(None)
        await self._idle.wait()


class PeriodicRunner:
    """
    Runs an async job once per tick until cancelled.

    Jobs never overlap. Cancelling stops future cycles; a cycle already in
    flight runs to completion. Job exceptions are logged and the runner
    proceeds to the next tick.
    """

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        ticker: Ticker,
        name: str = "job",
        run_immediately: bool = True,
    ):
        self._job = job
        self._ticker = ticker
        self.name = name
        self.run_immediately = run_immediately
        self.token = CancellationToken()
        self.cycles_completed = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"periodic:{self.name}")
        return self._task

    def stop(self) -> None:
        self.token.cancel()

    async def join(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        logger.debug("periodic_runner_started", job=self.name)
        if self.run_immediately and not self.token.cancelled:
            await self._run_once()
        while await self._ticker.wait(self.token):
            await self._run_once()
        logger.debug("periodic_runner_stopped", job=self.name, cycles=self.cycles_completed)

    async def _run_once(self) -> None:
        try:
            await self._job()
        except Exception as e:
            logger.error("periodic_job_failed", job=self.name, error=str(e), exc_info=True)
        self.cycles_completed += 1
