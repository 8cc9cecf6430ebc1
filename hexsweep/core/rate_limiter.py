"""Rate gate for outbound search calls.

Every call to the upstream provider first awaits ``acquire_slot()``. Callers
are queued FIFO and released one at a time by a single drain task, which is
the only code that reads or mutates the counters, so "check quota" and
"increment counter" can never interleave between callers.

Usage:
    gate = RateGate(per_second_limit=10, daily_limit=5000)

    await gate.acquire_slot()
    response = await client.search(...)

WARNING: State lives in this process only. Running several workers against
the same API key needs an external shared counter.
"""

import asyncio
from collections import deque
from typing import Optional

import structlog

from hexsweep.core.clock import Clock, MonotonicClock
from hexsweep.core.rate_limit_config import Duration
from hexsweep.models.schemas import QuotaState

logger = structlog.get_logger(__name__)


class RateGate:
    """
    Serializes outbound calls under per-second and per-day ceilings.

    Args:
        per_second_limit: Maximum calls in any one-second window
        daily_limit: Maximum calls in any one-day window
        safety_factor: Fraction of the theoretical spacing (1 / per_second_limit)
            actually enforced between two calls
        min_interval_floor: Lower bound for the spacing, in seconds
        clock: Time source (real monotonic clock by default)
    """

    def __init__(
        self,
        per_second_limit: int = 10,
        daily_limit: int = 5000,
        safety_factor: float = 0.8,
        min_interval_floor: float = 0.08,
        clock: Optional[Clock] = None,
    ) -> None:
        if per_second_limit < 1 or daily_limit < 1:
            raise ValueError("Rate limits must be positive")

        self.per_second_limit = per_second_limit
        self.daily_limit = daily_limit
        self.min_interval = max(min_interval_floor, (1.0 / per_second_limit) * safety_factor)
        self._clock = clock or MonotonicClock()

        now = self._clock.now()
        self._second_started_at = now
        self._day_started_at = now
        self._calls_this_second = 0
        self._calls_today = 0
        self._last_call_at: Optional[float] = None

        self._waiters: deque[asyncio.Future] = deque()
        self._drain_task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def acquire_slot(self) -> None:
        """Wait until one more outbound call may be issued."""
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._ensure_draining()
        await waiter

    def status(self) -> QuotaState:
        """Snapshot of the counters as of now. Does not mutate the gate."""
        now = self._clock.now()
        second_started, calls_this_second = self._window(
            now, self._second_started_at, self._calls_this_second, Duration.SECOND
        )
        day_started, calls_today = self._window(
            now, self._day_started_at, self._calls_today, Duration.DAY
        )
        return QuotaState(
            calls_today=calls_today,
            daily_limit=self.daily_limit,
            last_daily_reset=day_started,
            calls_this_second=calls_this_second,
            per_second_limit=self.per_second_limit,
            last_second_reset=second_started,
            queue_depth=self.queue_depth,
        )

    @property
    def queue_depth(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def reset_daily(self) -> None:
        """Reset the daily counter (operator override)."""
        self._calls_today = 0
        self._day_started_at = self._clock.now()
        logger.info("rate_gate_daily_reset")

    # -------------------------------------------------------------------------
    # Queue Processing
    # -------------------------------------------------------------------------

    def _ensure_draining(self) -> None:
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._waiters:
                if self._waiters[0].done():
                    # Caller gave up (cancelled) while queued
                    self._waiters.popleft()
                    continue

                now = self._clock.now()

                if self._last_call_at is not None:
                    spacing_wait = self._last_call_at + self.min_interval - now
                    if spacing_wait > 0:
                        await self._clock.sleep(spacing_wait)
                        continue

                self._roll_windows(now)

                if self._calls_today >= self.daily_limit:
                    wait = self._day_started_at + Duration.DAY - now
                    logger.warning(
                        "rate_gate_daily_limit_reached",
                        calls_today=self._calls_today,
                        wait_seconds=round(wait, 1),
                        queue_depth=self.queue_depth,
                    )
                    await self._clock.sleep(wait)
                    continue

                if self._calls_this_second >= self.per_second_limit:
                    await self._clock.sleep(self._second_started_at + Duration.SECOND - now)
                    continue

                waiter = self._waiters.popleft()
                if waiter.done():
                    continue

                self._calls_this_second += 1
                self._calls_today += 1
                self._last_call_at = now
                waiter.set_result(None)
        except Exception as e:
            logger.error("rate_gate_drain_failed", error=str(e), error_type=type(e).__name__)
            while self._waiters:
                waiter = self._waiters.popleft()
                if not waiter.done():
                    waiter.set_exception(e)

    def _roll_windows(self, now: float) -> None:
        self._second_started_at, self._calls_this_second = self._window(
            now, self._second_started_at, self._calls_this_second, Duration.SECOND
        )
        self._day_started_at, self._calls_today = self._window(
            now, self._day_started_at, self._calls_today, Duration.DAY
        )

    @staticmethod
    def _window(now: float, started_at: float, count: int, length: int) -> tuple[float, int]:
        """Advance a fixed-length window to the one containing ``now``."""
        elapsed = now - started_at
        if elapsed < length:
            return started_at, count
        periods = int(elapsed // length)
        return started_at + periods * length, 0
