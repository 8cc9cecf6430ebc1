"""
Prometheus metrics for hexsweep observability.

Usage:
    from hexsweep.monitoring.metrics import track_collector_operation

    with track_collector_operation("yelp", "search"):
        page = await collector.search(...)

    # Or manually
    CELLS_PROCESSED.labels(status="fetched").inc()
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route


# =============================================================================
# Metric Definitions
# =============================================================================

# Upstream search provider
COLLECTOR_OPERATIONS = Counter(
    "hexsweep_collector_operations_total",
    "Total search provider calls",
    ["collector", "operation", "status"],
)

COLLECTOR_LATENCY = Histogram(
    "hexsweep_collector_latency_seconds",
    "Latency of search provider calls",
    ["collector", "operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Pipeline
CELLS_PROCESSED = Counter(
    "hexsweep_cells_processed_total",
    "Cells processed, by terminal status",
    ["status"],
)

PROBES_EXECUTED = Counter(
    "hexsweep_probes_executed_total",
    "Probes executed, by outcome",
    ["status"],
)

# Staging writes
STAGING_WRITES = Counter(
    "hexsweep_staging_writes_total",
    "Staging writer outcomes per business",
    ["outcome"],
)

# Rate gate
RATE_GATE_QUEUE_DEPTH = Gauge(
    "hexsweep_rate_gate_queue_depth",
    "Callers waiting for a rate gate slot",
)

QUOTA_CALLS_TODAY = Gauge(
    "hexsweep_quota_calls_today",
    "Upstream calls recorded in the current daily window",
)


# =============================================================================
# Tracking Helpers
# =============================================================================


@contextmanager
def track_collector_operation(
    collector: str,
    operation: str,
) -> Generator[None, None, None]:
    """
    Context manager to track collector calls.

    Usage:
        with track_collector_operation("yelp", "search"):
            page = await collector.search(...)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception as e:
        status = type(e).__name__
        raise
    finally:
        duration = time.perf_counter() - start_time
        COLLECTOR_OPERATIONS.labels(
            collector=collector,
            operation=operation,
            status=status,
        ).inc()
        COLLECTOR_LATENCY.labels(
            collector=collector,
            operation=operation,
        ).observe(duration)


def record_cell_processed(status: str) -> None:
    CELLS_PROCESSED.labels(status=status).inc()


def record_probe(status: str) -> None:
    PROBES_EXECUTED.labels(status=status).inc()


def record_staging_writes(created: int, skipped: int, errors: int) -> None:
    """Add one write call's per-business outcomes to the staging counter."""
    if created:
        STAGING_WRITES.labels(outcome="created").inc(created)
    if skipped:
        STAGING_WRITES.labels(outcome="skipped").inc(skipped)
    if errors:
        STAGING_WRITES.labels(outcome="error").inc(errors)


def update_quota_gauges(queue_depth: int, calls_today: int) -> None:
    RATE_GATE_QUEUE_DEPTH.set(queue_depth)
    QUOTA_CALLS_TODAY.set(calls_today)


# =============================================================================
# Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    """Prometheus metrics endpoint handler."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def get_metrics_app() -> Starlette:
    """
    Get a Starlette app for serving metrics.

    Mounted at /metrics by the API app.
    """
    return Starlette(
        routes=[
            Route("/", metrics_endpoint),
        ]
    )
