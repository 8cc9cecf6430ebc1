"""Search orchestrator.

Runs every probe of a cell's coverage plan against the search provider:

- each page waits for a rate gate slot and is recorded against the quota
- transient failures (RetryableError) are retried with exponential backoff
- a probe that fails degrades coverage but never aborts the cell
- results are merged, deduplicated by id (first occurrence wins) and
  filtered to businesses whose coordinates index into the cell
- the density detector then decides fetched / split / dense
"""

from typing import Callable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hexsweep.collectors.base import BusinessSearchProvider
from hexsweep.core.clock import Clock, MonotonicClock
from hexsweep.core.exceptions import (
    GeometryError,
    HexsweepError,
    ProcessingCancelledError,
    RetryableError,
)
from hexsweep.core.quota import QuotaTracker
from hexsweep.core.rate_limiter import RateGate
from hexsweep.geo.coverage import CoveragePlanner
from hexsweep.geo.density import DensityDetector
from hexsweep.geo.h3_grid import H3Grid
from hexsweep.models.schemas import (
    Business,
    CellResult,
    CellStatus,
    CoverageQuality,
    ProbePoint,
    ProbeResult,
    ProbeStatus,
    SearchPage,
)
from hexsweep.monitoring.metrics import record_probe

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_RESULTS_PER_PROBE = 240

ShouldContinue = Callable[[], bool]


def assess_coverage_quality(probe_count: int, business_count: int) -> CoverageQuality:
    if probe_count >= 7 and business_count > 100:
        return CoverageQuality.EXCELLENT
    if probe_count >= 5 and business_count > 50:
        return CoverageQuality.GOOD
    if probe_count >= 3 and business_count > 20:
        return CoverageQuality.FAIR
    return CoverageQuality.POOR


def dedupe_by_id(businesses: list[Business]) -> list[Business]:
    """Drop later occurrences of an id, keeping input order."""
    seen: set[str] = set()
    unique = []
    for business in businesses:
        if business.id in seen:
            continue
        seen.add(business.id)
        unique.append(business)
    return unique


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "search_call_retrying",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc),
        error_type=type(exc).__name__,
    )


class SearchOrchestrator:
    """
    Processes one cell at a time.

    Args:
        provider: Business search provider (one page per call)
        gate: Shared rate gate
        quota: Shared quota tracker
        planner: Coverage planner
        density: Density detector
        grid: H3 adapter (boundary validation)
        clock: Time source for retry backoff sleeps
    """

    def __init__(
        self,
        provider: BusinessSearchProvider,
        gate: RateGate,
        quota: QuotaTracker,
        planner: Optional[CoveragePlanner] = None,
        density: Optional[DensityDetector] = None,
        grid: Optional[H3Grid] = None,
        clock: Optional[Clock] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_results_per_probe: int = DEFAULT_MAX_RESULTS_PER_PROBE,
        retry_max_attempts: int = 4,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 8.0,
    ) -> None:
        self.provider = provider
        self.gate = gate
        self.quota = quota
        self.grid = grid or H3Grid()
        self.planner = planner or CoveragePlanner(self.grid)
        self.density = density or DensityDetector(self.grid)
        self._clock = clock or MonotonicClock()
        self.page_size = page_size
        self.max_results_per_probe = max_results_per_probe
        self.retry_max_attempts = retry_max_attempts
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._call_count = 0

    @property
    def call_count(self) -> int:
        """Upstream calls issued by this orchestrator, retries included."""
        return self._call_count

    # -------------------------------------------------------------------------
    # Cell
    # -------------------------------------------------------------------------

    async def process_cell(
        self,
        cell_id: str,
        parent_cell_id: Optional[str] = None,
        should_continue: Optional[ShouldContinue] = None,
    ) -> CellResult:
        """
        Search a whole cell and classify it.

        Raises:
            ProcessingCancelledError: ``should_continue`` returned False
                between probes.
        """
        log = logger.bind(cell_id=cell_id)
        calls_before = self._call_count

        try:
            resolution = self.grid.resolution(cell_id)
            plan = self.planner.plan(cell_id)
        except GeometryError as e:
            log.error("cell_geometry_failed", error=str(e))
            return CellResult(
                cell_id=cell_id,
                resolution=-1,
                status=CellStatus.FAILED,
                parent_cell_id=parent_cell_id,
                error=str(e),
            )

        probe_results: list[ProbeResult] = []
        for index, probe in enumerate(plan.probe_points):
            probe_results.append(await self.run_probe(probe))
            is_last = index == plan.probe_count - 1
            if not is_last and should_continue is not None and not should_continue():
                log.info("cell_cancelled", completed_probes=len(probe_results))
                raise ProcessingCancelledError(cell_id, len(probe_results))

        api_calls = self._call_count - calls_before
        failed_probes = sum(1 for r in probe_results if r.status is ProbeStatus.FAILED)
        base = dict(
            cell_id=cell_id,
            resolution=resolution,
            probe_count=plan.probe_count,
            failed_probes=failed_probes,
            api_calls=api_calls,
            parent_cell_id=parent_cell_id,
        )

        if failed_probes == plan.probe_count:
            last_error = probe_results[-1].error if probe_results else "No probes planned"
            log.error("cell_all_probes_failed", probe_count=plan.probe_count, error=last_error)
            return CellResult(status=CellStatus.FAILED, error=last_error, **base)

        merged = dedupe_by_id([b for r in probe_results for b in r.businesses])
        inside = self._within_cell(merged, cell_id, resolution)
        count = len(inside)
        saturated = any(r.saturated for r in probe_results)

        try:
            decision = self.density.decide(cell_id, resolution, count, saturated=saturated)
        except GeometryError as e:
            log.error("cell_subdivision_failed", error=str(e))
            return CellResult(status=CellStatus.FAILED, error=str(e), **base)

        log.info(
            "cell_processed",
            status=decision.status.value,
            business_count=count,
            filtered_out=len(merged) - count,
            saturated_probes=sum(1 for r in probe_results if r.saturated),
            probe_count=plan.probe_count,
            failed_probes=failed_probes,
            api_calls=api_calls,
        )

        return CellResult(
            status=decision.status,
            businesses=inside,
            total_businesses=count,
            coverage_quality=assess_coverage_quality(plan.probe_count, count),
            child_cell_ids=decision.child_cell_ids,
            **base,
        )

    def _within_cell(self, businesses: list[Business], cell_id: str, resolution: int) -> list[Business]:
        """Keep businesses that index into ``cell_id``. Unresolvable coordinates are kept."""
        kept = []
        for business in businesses:
            if business.latitude is None or business.longitude is None:
                kept.append(business)
                continue
            try:
                business_cell = self.grid.point_to_cell(business.latitude, business.longitude, resolution)
            except GeometryError as e:
                logger.warning(
                    "boundary_check_failed",
                    cell_id=cell_id,
                    business_id=business.id,
                    error=str(e),
                )
                kept.append(business)
                continue
            if business_cell == cell_id:
                kept.append(business)
        return kept

    # -------------------------------------------------------------------------
    # Probe
    # -------------------------------------------------------------------------

    async def run_probe(self, probe: ProbePoint) -> ProbeResult:
        """
        Page through one probe until results run out or the per-probe cap.

        The last page before the cap is shortened so ``offset + limit`` never
        exceeds ``max_results_per_probe``. A probe that stops at the cap while
        the provider reports more results is marked ``saturated``.
        """
        calls_before = self._call_count
        businesses: list[Business] = []
        total = 0
        pages = 0
        offset = 0

        while True:
            try:
                page = await self._fetch_page(probe, offset)
            except HexsweepError as e:
                status = ProbeStatus.PARTIAL if pages else ProbeStatus.FAILED
                logger.warning(
                    "probe_failed",
                    latitude=probe.latitude,
                    longitude=probe.longitude,
                    radius_meters=probe.radius_meters,
                    offset=offset,
                    status=status.value,
                    error=str(e),
                )
                record_probe(status.value)
                return ProbeResult(
                    probe=probe,
                    status=status,
                    businesses=dedupe_by_id(businesses),
                    total=total,
                    pages_fetched=pages,
                    api_calls=self._call_count - calls_before,
                    error=str(e),
                )

            pages += 1
            total = page.total
            businesses.extend(page.businesses)
            offset += self._page_limit(offset)

            if not page.businesses or offset >= min(total, self.max_results_per_probe):
                break

        record_probe(ProbeStatus.SUCCESS.value)
        return ProbeResult(
            probe=probe,
            status=ProbeStatus.SUCCESS,
            businesses=dedupe_by_id(businesses),
            total=total,
            pages_fetched=pages,
            api_calls=self._call_count - calls_before,
            saturated=offset >= self.max_results_per_probe and total > self.max_results_per_probe,
        )

    def _page_limit(self, offset: int) -> int:
        # offset + limit may not pass the deepest reachable result
        return min(self.page_size, self.max_results_per_probe - offset)

    async def _fetch_page(self, probe: ProbePoint, offset: int) -> SearchPage:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RetryableError),
            stop=stop_after_attempt(self.retry_max_attempts),
            wait=wait_exponential(multiplier=self.retry_base_delay, max=self.retry_max_delay),
            sleep=self._clock.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.gate.acquire_slot()
                self.quota.record_call()
                self._call_count += 1
                return await self.provider.search(
                    probe.latitude,
                    probe.longitude,
                    probe.radius_meters,
                    offset=offset,
                    limit=self._page_limit(offset),
                )
        raise RuntimeError("retry loop exited without a result")
