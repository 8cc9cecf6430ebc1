"""Cell pipeline: runs a batch of cells end to end.

    cells -> cache check -> feasibility check -> for each cell:
        orchestrator.process_cell
        split  -> children appended to the work queue
        leaf   -> staging writer, cell cache
    -> RunResult

Cells are processed one at a time. Every per-cell exception becomes a
``failed`` CellResult; only a quota refusal (before any call) or a concurrent
run request escapes ``plan_and_run``. Anything else that breaks the loop marks
the import log ``failed`` and is re-raised.
"""

from collections import deque
from typing import Any, Optional
from uuid import uuid4

import structlog

from hexsweep.core.clock import Clock, MonotonicClock
from hexsweep.core.exceptions import (
    GeometryError,
    PersistenceError,
    ProcessingCancelledError,
    QuotaExhaustedError,
    RunInProgressError,
)
from hexsweep.core.quota import QuotaTracker
from hexsweep.models.schemas import (
    CachedCell,
    CellResult,
    CellStatus,
    ImportLog,
    RunProgress,
    RunResult,
    RunStats,
)
from hexsweep.monitoring.metrics import record_cell_processed, update_quota_gauges
from hexsweep.orchestration.search import SearchOrchestrator
from hexsweep.storage.cell_cache import CellCache
from hexsweep.storage.import_logs import ImportLogRepository
from hexsweep.storage.staging import StagingWriter

logger = structlog.get_logger(__name__)

# Import log is persisted after this many processed cells
PROGRESS_UPDATE_INTERVAL = 10

LEAF_STATUSES = (CellStatus.FETCHED, CellStatus.DENSE)


class CellPipeline:
    """
    Batch runner around the search orchestrator.

    Args:
        orchestrator: Processes single cells
        writer: Staging writer for leaf results
        quota: Quota tracker used for the pre-flight estimate
        cache: Optional processed-cell cache
        import_logs: Optional import log repository
        base_resolution: Resolution used by plan_polygon when none is given
        avg_pages_per_probe: Pages assumed per probe in the estimate
        clock: Time source for elapsed time and ETA
    """

    def __init__(
        self,
        orchestrator: SearchOrchestrator,
        writer: StagingWriter,
        quota: QuotaTracker,
        cache: Optional[CellCache] = None,
        import_logs: Optional[ImportLogRepository] = None,
        base_resolution: int = 7,
        avg_pages_per_probe: float = 1.5,
        clock: Optional[Clock] = None,
        progress_update_interval: int = PROGRESS_UPDATE_INTERVAL,
    ) -> None:
        self.orchestrator = orchestrator
        self.writer = writer
        self.quota = quota
        self.cache = cache
        self.import_logs = import_logs
        self.base_resolution = base_resolution
        self.avg_pages_per_probe = avg_pages_per_probe
        self.progress_update_interval = progress_update_interval
        self._clock = clock or MonotonicClock()

        self._running = False
        self._reserved_run_id: Optional[str] = None
        self._cancel_requested = False
        self._progress = RunProgress()
        self._queue: deque[tuple[str, Optional[str]]] = deque()
        self._started_at: Optional[float] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    def plan_polygon(self, geojson: dict[str, Any], resolution: Optional[int] = None) -> list[str]:
        """Tile a GeoJSON polygon into the cells a run should start from."""
        return self.orchestrator.grid.tile_cells_in_polygon(
            geojson,
            resolution if resolution is not None else self.base_resolution,
        )

    def reserve(self, import_run_id: str) -> None:
        """
        Mark the pipeline busy for ``import_run_id`` ahead of ``plan_and_run``.

        Lets a caller that schedules the run for later refuse a second
        request right away.

        Raises:
            RunInProgressError: Another run is active or reserved.
        """
        if self._running:
            raise RunInProgressError(self._progress.import_run_id)
        self._running = True
        self._reserved_run_id = import_run_id
        self._cancel_requested = False
        self._queue = deque()
        self._started_at = None
        self._progress = RunProgress(import_run_id=import_run_id, is_running=True)
        logger.info("run_reserved", import_run_id=import_run_id)

    def cancel(self) -> bool:
        """Request cancellation of the active run. False when nothing is running."""
        if not self._running:
            return False
        self._cancel_requested = True
        logger.info("run_cancel_requested", import_run_id=self._progress.import_run_id)
        return True

    def preflight(self, cell_ids: list[str]) -> int:
        """
        Estimated calls for a run over ``cell_ids``, excluding cached cells.

        Raises:
            QuotaExhaustedError: The estimate exceeds today's remaining quota.
        """
        unique_cells = list(dict.fromkeys(cell_ids))
        cached = self._lookup_cached(unique_cells)
        return self._check_feasibility([c for c in unique_cells if c not in cached])

    def status(self) -> RunProgress:
        progress = self._progress.model_copy()
        progress.is_running = self._running
        progress.cancelled = self._cancel_requested
        progress.remaining = len(self._queue)

        if self._started_at is not None:
            elapsed = self._clock.now() - self._started_at
            progress.elapsed_seconds = round(elapsed, 3)
            if self._running and progress.processed_cells:
                per_cell = elapsed / progress.processed_cells
                progress.estimated_seconds_remaining = round(per_cell * progress.remaining, 3)
        return progress

    async def plan_and_run(
        self,
        cell_ids: list[str],
        import_run_id: Optional[str] = None,
        city_id: Optional[str] = None,
    ) -> RunResult:
        """
        Process ``cell_ids`` and every child created by subdivision.

        Raises:
            QuotaExhaustedError: The estimated calls exceed today's remaining
                quota. Raised before any call is made.
            RunInProgressError: Another run is active on this pipeline, or the
                pipeline is reserved for a different ``import_run_id``.
        """
        import_run_id = import_run_id or str(uuid4())
        self._claim(import_run_id)

        log = logger.bind(import_run_id=import_run_id)
        unique_cells = list(dict.fromkeys(cell_ids))
        stats = RunStats()
        results: list[CellResult] = []
        import_log: Optional[ImportLog] = None

        try:
            cached = self._lookup_cached(unique_cells)
            to_fetch = [c for c in unique_cells if c not in cached]
            estimated_calls = self._check_feasibility(to_fetch)

            self._start(import_run_id, unique_cells, estimated_calls)
            log.info(
                "run_started",
                cell_count=len(unique_cells),
                cached=len(cached),
                estimated_api_calls=estimated_calls,
            )

            import_log = self._create_import_log(import_run_id, len(unique_cells), estimated_calls, city_id)
            while self._queue:
                if self._cancel_requested:
                    break

                cell_id, parent_cell_id = self._queue.popleft()
                if cell_id in cached:
                    result = self._cached_result(cached[cell_id], parent_cell_id)
                else:
                    try:
                        result = await self._process(cell_id, parent_cell_id, import_run_id, stats)
                    except ProcessingCancelledError:
                        break

                results.append(result)
                self._record(result, stats)

                if import_log and stats.processed % self.progress_update_interval == 0:
                    import_log = self._update_import_log(import_log, stats)
        except QuotaExhaustedError:
            raise
        except Exception as e:
            log.exception("run_failed", processed=stats.processed, error=str(e))
            if import_log:
                self._fail_import_log(import_log, stats, e)
            raise
        finally:
            self._running = False
            self._reserved_run_id = None

        cancelled = self._cancel_requested
        if import_log:
            self._finish_import_log(import_log, stats, cancelled)

        log.info(
            "run_finished",
            cancelled=cancelled,
            processed=stats.processed,
            fetched=stats.fetched,
            split=stats.split,
            dense=stats.dense,
            failed=stats.failed,
            cached=stats.cached,
            api_calls=stats.api_calls,
            staged=stats.staged,
        )
        return RunResult(import_run_id=import_run_id, results=results, stats=stats, cancelled=cancelled)

    # -------------------------------------------------------------------------
    # Cell Processing
    # -------------------------------------------------------------------------

    async def _process(
        self,
        cell_id: str,
        parent_cell_id: Optional[str],
        import_run_id: str,
        stats: RunStats,
    ) -> CellResult:
        try:
            result = await self.orchestrator.process_cell(
                cell_id,
                parent_cell_id=parent_cell_id,
                should_continue=lambda: not self._cancel_requested,
            )
        except ProcessingCancelledError:
            raise
        except Exception as e:
            logger.exception(
                "cell_processing_failed",
                cell_id=cell_id,
                import_run_id=import_run_id,
                error=str(e),
            )
            return CellResult(
                cell_id=cell_id,
                resolution=-1,
                status=CellStatus.FAILED,
                parent_cell_id=parent_cell_id,
                error=str(e),
            )

        if result.status is CellStatus.SPLIT:
            for child in result.child_cell_ids:
                self._queue.append((child, cell_id))
            self._progress.total_cells += len(result.child_cell_ids)
            self._progress.queued_children += len(result.child_cell_ids)
            return result

        if result.status in LEAF_STATUSES:
            staged = 0
            if result.businesses:
                write = await self.writer.write(result.businesses, cell_id, import_run_id)
                stats.staged += write.created_count
                stats.duplicates += write.skipped_count
                stats.write_errors += write.error_count
                staged = write.created_count
            self._cache_result(result, staged)

        return result

    def _record(self, result: CellResult, stats: RunStats) -> None:
        stats.processed += 1
        stats.api_calls += result.api_calls

        if result.from_cache:
            stats.cached += 1
            record_cell_processed("cached")
        else:
            if result.status is CellStatus.FETCHED:
                stats.fetched += 1
            elif result.status is CellStatus.DENSE:
                stats.dense += 1
            elif result.status is CellStatus.SPLIT:
                stats.split += 1
            else:
                stats.failed += 1
            if result.status in LEAF_STATUSES:
                stats.businesses_found += result.total_businesses
            record_cell_processed(result.status.value)

        self._progress.processed_cells = stats.processed
        self._progress.api_calls = stats.api_calls
        self._progress.last_business_count = result.total_businesses

        gate_state = self.orchestrator.gate.status()
        update_quota_gauges(gate_state.queue_depth, self.quota.status().calls_today)

    # -------------------------------------------------------------------------
    # Pre-flight
    # -------------------------------------------------------------------------

    def _check_feasibility(self, cell_ids: list[str]) -> int:
        probe_counts = []
        for cell_id in cell_ids:
            try:
                probe_counts.append(self.orchestrator.planner.plan(cell_id).probe_count)
            except GeometryError:
                # Fails inside the run without spending calls
                continue

        probes_per_cell = sum(probe_counts) / len(probe_counts) if probe_counts else 0.0
        estimate = self.quota.estimate_feasibility(
            len(probe_counts),
            probes_per_cell,
            self.avg_pages_per_probe,
        )
        if not estimate.can_proceed:
            logger.warning(
                "run_refused_quota",
                estimated_calls=estimate.estimated_calls,
                remaining=estimate.remaining,
                recommendations=estimate.recommendations,
            )
            raise QuotaExhaustedError(
                estimate.estimated_calls,
                estimate.remaining,
                estimate.recommendations,
            )
        return estimate.estimated_calls

    def _lookup_cached(self, cell_ids: list[str]) -> dict[str, CachedCell]:
        if self.cache is None:
            return {}
        cached = {}
        for cell_id in cell_ids:
            try:
                hit = self.cache.get_fresh(cell_id)
            except PersistenceError as e:
                logger.warning("cell_cache_read_failed", cell_id=cell_id, error=str(e))
                continue
            if hit is not None:
                cached[cell_id] = hit
        return cached

    @staticmethod
    def _cached_result(cached: CachedCell, parent_cell_id: Optional[str]) -> CellResult:
        return CellResult(
            cell_id=cached.id,
            resolution=cached.resolution,
            status=cached.status,
            total_businesses=cached.total_businesses,
            parent_cell_id=parent_cell_id,
            from_cache=True,
        )

    def _cache_result(self, result: CellResult, staged: int) -> None:
        if self.cache is None:
            return
        try:
            center = self.orchestrator.grid.cell_center(result.cell_id)
            self.cache.record(result, center, staged=staged)
        except (PersistenceError, GeometryError) as e:
            logger.warning("cell_cache_write_failed", cell_id=result.cell_id, error=str(e))

    # -------------------------------------------------------------------------
    # Run Bookkeeping
    # -------------------------------------------------------------------------

    def _claim(self, import_run_id: str) -> None:
        if self._reserved_run_id is not None and self._reserved_run_id == import_run_id:
            return
        self.reserve(import_run_id)

    def _start(self, import_run_id: str, cell_ids: list[str], estimated_calls: int) -> None:
        self._queue = deque((cell_id, None) for cell_id in cell_ids)
        self._started_at = self._clock.now()
        self._progress = RunProgress(
            import_run_id=import_run_id,
            is_running=True,
            total_cells=len(cell_ids),
            estimated_total_api_calls=estimated_calls,
        )

    def _create_import_log(
        self,
        import_run_id: str,
        total_cells: int,
        estimated_calls: int,
        city_id: Optional[str],
    ) -> Optional[ImportLog]:
        if self.import_logs is None:
            return None
        try:
            return self.import_logs.create(import_run_id, total_cells, estimated_calls, city_id=city_id)
        except PersistenceError as e:
            logger.warning("import_log_create_failed", import_run_id=import_run_id, error=str(e))
            return None

    def _with_counters(self, import_log: ImportLog, stats: RunStats) -> ImportLog:
        return import_log.model_copy(
            update={
                "total_cells": self._progress.total_cells,
                "processed_cells": stats.processed,
                "cells_cached": stats.cached,
                "cells_fetched": stats.processed - stats.cached,
                "actual_api_calls": stats.api_calls,
                "businesses_fetched": stats.businesses_found,
                "businesses_staged": stats.staged,
                "duplicates_existing": stats.duplicates,
            }
        )

    def _update_import_log(self, import_log: ImportLog, stats: RunStats) -> ImportLog:
        updated = self._with_counters(import_log, stats)
        try:
            self.import_logs.update(updated)
        except PersistenceError as e:
            logger.warning("import_log_update_failed", import_run_id=import_log.id, error=str(e))
        return updated

    def _fail_import_log(self, import_log: ImportLog, stats: RunStats, error: Exception) -> None:
        try:
            self.import_logs.fail(self._with_counters(import_log, stats), error=str(error))
        except PersistenceError as e:
            logger.warning("import_log_finish_failed", import_run_id=import_log.id, error=str(e))

    def _finish_import_log(self, import_log: ImportLog, stats: RunStats, cancelled: bool) -> None:
        final = self._with_counters(import_log, stats)
        try:
            if cancelled:
                self.import_logs.cancel(final)
            else:
                self.import_logs.complete(final)
        except PersistenceError as e:
            logger.warning("import_log_finish_failed", import_run_id=import_log.id, error=str(e))
