"""Core services: exceptions, clock, rate gate, quota tracker, container."""

from hexsweep.core.clock import Clock, MonotonicClock
from hexsweep.core.exceptions import (
    HexsweepError,
    PermanentError,
    RetryableError,
)
from hexsweep.core.quota import QuotaTracker
from hexsweep.core.rate_limiter import RateGate

__all__ = [
    "Clock",
    "HexsweepError",
    "MonotonicClock",
    "PermanentError",
    "QuotaTracker",
    "RateGate",
    "RetryableError",
]
