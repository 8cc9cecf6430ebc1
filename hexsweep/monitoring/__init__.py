"""Prometheus metrics."""

from hexsweep.monitoring.metrics import (
    get_metrics_app,
    record_cell_processed,
    record_probe,
    record_staging_writes,
    track_collector_operation,
    update_quota_gauges,
)

__all__ = [
    "get_metrics_app",
    "record_cell_processed",
    "record_probe",
    "record_staging_writes",
    "track_collector_operation",
    "update_quota_gauges",
]
