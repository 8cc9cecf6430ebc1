"""Pydantic models for hexsweep core entities."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_text(value: Optional[str]) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    if not value:
        return ""
    return " ".join(value.lower().split())


# =============================================================================
# Enums
# =============================================================================


class CellStatus(str, Enum):
    """Terminal states of a processed cell."""
    FETCHED = "fetched"
    DENSE = "dense"
    SPLIT = "split"
    FAILED = "failed"


class CoverageQuality(str, Enum):
    """Operator-facing label for how thoroughly a cell was sampled."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class CellSizeClass(str, Enum):
    """Area buckets used by the coverage planner."""
    DEGENERATE = "degenerate"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class ProbeStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class StagingStatus(str, Enum):
    """Review state of a staged business."""
    NEW = "new"
    DUPLICATE = "duplicate"
    APPROVED = "approved"
    REJECTED = "rejected"


class DuplicateMatch(str, Enum):
    """How a duplicate was recognised."""
    ID = "id"
    NAME_ADDRESS = "name_address"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ImportLogStatus(str, Enum):
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


# =============================================================================
# Base Models
# =============================================================================


class BaseEntity(BaseModel):
    """Base model with database row conversion."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    def to_db_row(self) -> dict[str, Any]:
        """Convert model to database row format (e.g., for Supabase/PostgreSQL)."""
        return self.model_dump(mode="json")

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "BaseEntity":
        """Create model instance from database row."""
        return cls.model_validate(row)


# =============================================================================
# Business
# =============================================================================


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    line1: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    alias: str = ""
    title: str = ""


class Business(BaseEntity):
    """A business as returned by the search provider.

    Fields are deliberately lenient: malformed upstream rows still parse and
    are rejected, with reasons, by the staging writer's validation step.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True, populate_by_name=True)

    id: str = Field("", description="Provider-issued business id")
    name: str = ""
    rating: Optional[float] = None
    review_count: int = 0
    price: Optional[str] = None
    categories: list[Category] = Field(default_factory=list)
    coordinates: Coordinates = Field(default_factory=Coordinates)
    address: Address = Field(default_factory=Address)
    phone: str = ""
    url: str = ""
    distance_meters: Optional[float] = None

    @property
    def latitude(self) -> Optional[float]:
        return self.coordinates.latitude

    @property
    def longitude(self) -> Optional[float]:
        return self.coordinates.longitude

    @property
    def name_address_key(self) -> Optional[str]:
        """Secondary identity used for fuzzy duplicate detection.

        None when either part is missing, so unrelated businesses that merely
        share a name never collide on an empty address.
        """
        name = normalize_text(self.name)
        line1 = normalize_text(self.address.line1)
        if not name or not line1:
            return None
        return f"{name}|{line1}"

    @classmethod
    def from_yelp(cls, payload: dict[str, Any]) -> "Business":
        """Build a Business from a Yelp Fusion search result entry."""
        coordinates = payload.get("coordinates") or {}
        location = payload.get("location") or {}
        return cls(
            id=payload.get("id") or "",
            name=payload.get("name") or "",
            rating=payload.get("rating"),
            review_count=payload.get("review_count") or 0,
            price=payload.get("price"),
            categories=[
                Category(alias=c.get("alias") or "", title=c.get("title") or "")
                for c in payload.get("categories") or []
            ],
            coordinates=Coordinates(
                latitude=coordinates.get("latitude"),
                longitude=coordinates.get("longitude"),
            ),
            address=Address(
                line1=location.get("address1") or "",
                city=location.get("city") or "",
                state=location.get("state") or "",
                zip_code=location.get("zip_code") or "",
            ),
            phone=payload.get("phone") or "",
            url=payload.get("url") or "",
            distance_meters=payload.get("distance"),
        )


# =============================================================================
# Coverage
# =============================================================================


class ProbePoint(BaseModel):
    """One search origin and the integer radius searched around it."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    radius_meters: int = Field(..., ge=1)


class CoveragePlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    cell_id: str
    resolution: int
    size_class: CellSizeClass
    area_km2: float
    probe_points: list[ProbePoint]

    @property
    def probe_count(self) -> int:
        return len(self.probe_points)


# =============================================================================
# Search Results
# =============================================================================


class SearchPage(BaseModel):
    """One page of a provider search."""

    total: int = 0
    businesses: list[Business] = Field(default_factory=list)


class ProbeResult(BaseModel):
    probe: ProbePoint
    status: ProbeStatus
    businesses: list[Business] = Field(default_factory=list)
    total: int = 0
    pages_fetched: int = 0
    api_calls: int = 0
    saturated: bool = Field(
        default=False,
        description="Pagination reached the per-probe cap with more results reported",
    )
    error: Optional[str] = None


class CellResult(BaseModel):
    """Outcome of processing one cell."""

    cell_id: str
    resolution: int
    status: CellStatus
    businesses: list[Business] = Field(default_factory=list)
    total_businesses: int = 0
    coverage_quality: CoverageQuality = CoverageQuality.POOR
    probe_count: int = 0
    failed_probes: int = 0
    api_calls: int = 0
    parent_cell_id: Optional[str] = None
    child_cell_ids: list[str] = Field(default_factory=list)
    from_cache: bool = False
    error: Optional[str] = None


# =============================================================================
# Staging
# =============================================================================


class StagingRecord(BaseEntity):
    """Durable candidate business awaiting (or holding) a review decision."""

    id: str
    data: dict[str, Any]
    cell_id: str
    import_run_id: str
    status: StagingStatus = StagingStatus.NEW
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_business(
        cls,
        business: Business,
        cell_id: str,
        import_run_id: str,
    ) -> "StagingRecord":
        return cls(
            id=business.id,
            data=business.model_dump(mode="json"),
            cell_id=cell_id,
            import_run_id=import_run_id,
        )

    def to_business(self) -> Business:
        return Business.model_validate(self.data)


class DuplicateInfo(BaseModel):
    id: str = Field(..., description="Id of the incoming business")
    existing_id: str = Field(..., description="Id of the record it collided with")
    existing_cell_id: Optional[str] = None
    match: DuplicateMatch


class WriteStats(BaseModel):
    created_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    new_businesses: list[Business] = Field(default_factory=list)
    duplicates: list[DuplicateInfo] = Field(default_factory=list)


class BulkStatusUpdateResult(BaseModel):
    success_count: int = 0
    failed_count: int = 0
    failed_ids: list[str] = Field(default_factory=list)


# =============================================================================
# Quota
# =============================================================================


class QuotaState(BaseModel):
    """Snapshot of call counters."""

    calls_today: int
    daily_limit: int
    last_daily_reset: float
    calls_this_second: int = 0
    per_second_limit: Optional[int] = None
    last_second_reset: Optional[float] = None
    queue_depth: int = 0

    @property
    def daily_remaining(self) -> int:
        return max(0, self.daily_limit - self.calls_today)

    @property
    def usage_percentage(self) -> float:
        return (self.calls_today / self.daily_limit) * 100 if self.daily_limit else 100.0


class FeasibilityEstimate(BaseModel):
    can_proceed: bool
    estimated_calls: int
    remaining: int
    risk_level: RiskLevel
    recommendations: list[str] = Field(default_factory=list)


# =============================================================================
# Runs
# =============================================================================


class RunStats(BaseModel):
    fetched: int = 0
    processed: int = 0
    dense: int = 0
    split: int = 0
    failed: int = 0
    cached: int = 0
    api_calls: int = 0
    businesses_found: int = 0
    staged: int = 0
    duplicates: int = 0
    write_errors: int = 0


class RunResult(BaseModel):
    import_run_id: str
    results: list[CellResult] = Field(default_factory=list)
    stats: RunStats = Field(default_factory=RunStats)
    cancelled: bool = False


class RunProgress(BaseModel):
    import_run_id: Optional[str] = None
    is_running: bool = False
    cancelled: bool = False
    total_cells: int = 0
    processed_cells: int = 0
    queued_children: int = 0
    remaining: int = 0
    api_calls: int = 0
    estimated_total_api_calls: int = 0
    last_business_count: int = 0
    elapsed_seconds: float = 0.0
    estimated_seconds_remaining: Optional[float] = None


class ImportLog(BaseEntity):
    """Bookkeeping row for one import run."""

    id: str
    status: ImportLogStatus = ImportLogStatus.RUNNING
    city_id: Optional[str] = None
    total_cells: int = 0
    processed_cells: int = 0
    cells_cached: int = 0
    cells_fetched: int = 0
    estimated_api_calls: int = 0
    actual_api_calls: int = 0
    businesses_fetched: int = 0
    businesses_staged: int = 0
    duplicates_existing: int = 0
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: Optional[datetime] = None


class CachedCell(BaseEntity):
    """Row of the processed-cell cache."""

    id: str = Field(..., description="H3 cell id")
    status: CellStatus
    resolution: int
    center_lat: float
    center_lng: float
    total_businesses: int = 0
    staged: int = 0
    updated_at: datetime = Field(default_factory=utc_now)
