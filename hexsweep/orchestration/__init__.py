"""Search orchestration and batch runs."""

from hexsweep.orchestration.pipeline import CellPipeline
from hexsweep.orchestration.search import (
    SearchOrchestrator,
    assess_coverage_quality,
    dedupe_by_id,
)

__all__ = [
    "CellPipeline",
    "SearchOrchestrator",
    "assess_coverage_quality",
    "dedupe_by_id",
]
