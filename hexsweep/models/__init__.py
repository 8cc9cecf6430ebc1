"""
Data Models and Schemas.

Pydantic models shared across the pipeline:

- Business: a provider search result (immutable once fetched)
- ProbePoint / CoveragePlan: search origins generated per cell
- CellResult: the outcome of processing one cell
- StagingRecord / WriteStats / DuplicateInfo: staging persistence
- QuotaState / FeasibilityEstimate: rate and quota bookkeeping
- RunResult / RunProgress / ImportLog: batch runs
"""

from hexsweep.models.schemas import (
    Address,
    BulkStatusUpdateResult,
    Business,
    CachedCell,
    Category,
    CellResult,
    CellSizeClass,
    CellStatus,
    Coordinates,
    CoveragePlan,
    CoverageQuality,
    DuplicateInfo,
    DuplicateMatch,
    FeasibilityEstimate,
    ImportLog,
    ImportLogStatus,
    ProbePoint,
    ProbeResult,
    ProbeStatus,
    QuotaState,
    RiskLevel,
    RunProgress,
    RunResult,
    RunStats,
    SearchPage,
    StagingRecord,
    StagingStatus,
    WriteStats,
    normalize_text,
)

__all__ = [
    "Address",
    "BulkStatusUpdateResult",
    "Business",
    "CachedCell",
    "Category",
    "CellResult",
    "CellSizeClass",
    "CellStatus",
    "Coordinates",
    "CoveragePlan",
    "CoverageQuality",
    "DuplicateInfo",
    "DuplicateMatch",
    "FeasibilityEstimate",
    "ImportLog",
    "ImportLogStatus",
    "ProbePoint",
    "ProbeResult",
    "ProbeStatus",
    "QuotaState",
    "RiskLevel",
    "RunProgress",
    "RunResult",
    "RunStats",
    "SearchPage",
    "StagingRecord",
    "StagingStatus",
    "WriteStats",
    "normalize_text",
]
