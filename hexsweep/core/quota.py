"""Daily quota bookkeeping and pre-flight feasibility estimates.

The tracker is advisory: it never blocks. The rate gate enforces the ceilings;
the tracker answers "can this batch finish within what is left today?" before
any outbound call is made.
"""

import math
from typing import Optional

import structlog

from hexsweep.core.clock import Clock, MonotonicClock
from hexsweep.core.rate_limit_config import Duration
from hexsweep.models.schemas import FeasibilityEstimate, QuotaState, RiskLevel

logger = structlog.get_logger(__name__)

# Extra share of calls reserved for dense cells that get subdivided
DEFAULT_SUBDIVISION_MARGIN = 0.2

# Usage ratios (after the batch) at which the risk level steps up
RISK_THRESHOLDS = (
    (0.5, RiskLevel.LOW),
    (0.8, RiskLevel.MEDIUM),
    (1.0, RiskLevel.HIGH),
)


class QuotaTracker:
    """
    Tracks calls made today against the daily limit.

    Mutated only by synchronous methods, so updates are atomic under asyncio.
    """

    def __init__(
        self,
        daily_limit: int = 5000,
        subdivision_margin: float = DEFAULT_SUBDIVISION_MARGIN,
        clock: Optional[Clock] = None,
    ) -> None:
        if daily_limit < 1:
            raise ValueError("daily_limit must be positive")
        if subdivision_margin < 0:
            raise ValueError("subdivision_margin must not be negative")

        self.daily_limit = daily_limit
        self.subdivision_margin = subdivision_margin
        self._clock = clock or MonotonicClock()
        self._calls_today = 0
        self._last_daily_reset = self._clock.now()

    def record_call(self, count: int = 1) -> None:
        self._roll_day()
        self._calls_today += count

    @property
    def remaining(self) -> int:
        return self.status().daily_remaining

    def status(self) -> QuotaState:
        now = self._clock.now()
        calls_today = self._calls_today
        last_reset = self._last_daily_reset
        if now - last_reset >= Duration.DAY:
            calls_today = 0
            last_reset += ((now - last_reset) // Duration.DAY) * Duration.DAY
        return QuotaState(
            calls_today=calls_today,
            daily_limit=self.daily_limit,
            last_daily_reset=last_reset,
        )

    def reset_daily(self) -> None:
        self._calls_today = 0
        self._last_daily_reset = self._clock.now()
        logger.info("quota_daily_reset")

    def estimate_feasibility(
        self,
        cell_count: int,
        probes_per_cell: float,
        avg_pages_per_probe: float,
    ) -> FeasibilityEstimate:
        """
        Estimate the calls a batch needs and whether today's quota covers them.

        The raw estimate (cells x probes x pages) is padded by the subdivision
        margin and rounded up.
        """
        if cell_count < 0 or probes_per_cell < 0 or avg_pages_per_probe < 0:
            raise ValueError("Feasibility inputs must not be negative")

        raw = cell_count * probes_per_cell * avg_pages_per_probe * (1 + self.subdivision_margin)
        # Guard against float noise pushing an exact product over an integer
        estimated_calls = max(0, math.ceil(round(raw, 6)))

        state = self.status()
        remaining = state.daily_remaining
        can_proceed = estimated_calls <= remaining
        usage_after = (state.calls_today + estimated_calls) / self.daily_limit
        risk_level = self._risk_level(usage_after)

        recommendations = self._recommendations(
            estimated_calls=estimated_calls,
            remaining=remaining,
            usage_after=usage_after,
            cell_count=cell_count,
        )

        logger.info(
            "quota_feasibility_estimated",
            cell_count=cell_count,
            estimated_calls=estimated_calls,
            remaining=remaining,
            can_proceed=can_proceed,
            risk_level=risk_level.value,
        )

        return FeasibilityEstimate(
            can_proceed=can_proceed,
            estimated_calls=estimated_calls,
            remaining=remaining,
            risk_level=risk_level,
            recommendations=recommendations,
        )

    def _roll_day(self) -> None:
        state = self.status()
        self._calls_today = state.calls_today
        self._last_daily_reset = state.last_daily_reset

    @staticmethod
    def _risk_level(usage_after: float) -> RiskLevel:
        for threshold, level in RISK_THRESHOLDS:
            if usage_after <= threshold:
                return level
        return RiskLevel.CRITICAL

    @staticmethod
    def _recommendations(
        estimated_calls: int,
        remaining: int,
        usage_after: float,
        cell_count: int,
    ) -> list[str]:
        recommendations: list[str] = []

        if estimated_calls > remaining:
            if cell_count and estimated_calls:
                per_cell = estimated_calls / cell_count
                max_cells = int(remaining // per_cell)
                recommendations.append(
                    f"Process at most {max_cells} of {cell_count} cells today"
                )
            recommendations.append("Wait for the daily quota reset before retrying")
        elif usage_after > 0.8:
            recommendations.append(
                f"This batch will use {usage_after:.0%} of the daily quota; "
                "consider splitting it across days"
            )

        return recommendations
