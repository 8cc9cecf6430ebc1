"""
Dependency Injection Container for hexsweep.

Builds the shared services (rate gate, quota tracker, store, collector) once
and wires them into the search orchestrator and cell pipeline. Services are
created lazily on first access.

Usage:
    # At application startup
    container = DependencyContainer()
    await container.initialize()

    result = await container.pipeline.plan_and_run(cell_ids)

    # At shutdown
    await container.shutdown()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from hexsweep.config.settings import Settings, get_settings
from hexsweep.core.clock import Clock, MonotonicClock
from hexsweep.core.exceptions import HexsweepError, InitializationError
from hexsweep.core.quota import QuotaTracker
from hexsweep.core.rate_limiter import RateGate

if TYPE_CHECKING:
    from hexsweep.collectors.base import BaseCollector
    from hexsweep.geo.h3_grid import H3Grid
    from hexsweep.orchestration.pipeline import CellPipeline
    from hexsweep.orchestration.search import SearchOrchestrator
    from hexsweep.storage.base import PersistentStore
    from hexsweep.storage.staging import StagingWriter

logger = structlog.get_logger(__name__)


class DependencyContainer:
    """
    Central container for all service dependencies.

    Any service may be passed in explicitly (tests do this); the rest are
    built from settings on first access.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: PersistentStore | None = None,
        collector: BaseCollector | None = None,
        clock: Clock | None = None,
    ):
        self._settings = settings or get_settings()
        self._clock = clock or MonotonicClock()
        self._store = store
        self._collector = collector
        self._grid: H3Grid | None = None
        self._rate_gate: RateGate | None = None
        self._quota: QuotaTracker | None = None
        self._orchestrator: SearchOrchestrator | None = None
        self._writer: StagingWriter | None = None
        self._pipeline: CellPipeline | None = None
        self._initialized = False

        logger.info("dependency_container_created")

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    # -------------------------------------------------------------------------
    # Shared Services
    # -------------------------------------------------------------------------

    @property
    def rate_gate(self) -> RateGate:
        if self._rate_gate is None:
            self._rate_gate = RateGate(
                per_second_limit=self._settings.rate_limit_per_second,
                daily_limit=self._settings.rate_limit_per_day,
                safety_factor=self._settings.rate_limit_safety_factor,
                min_interval_floor=self._settings.min_request_interval_seconds,
                clock=self._clock,
            )
        return self._rate_gate

    @property
    def quota(self) -> QuotaTracker:
        if self._quota is None:
            self._quota = QuotaTracker(
                daily_limit=self._settings.rate_limit_per_day,
                clock=self._clock,
            )
        return self._quota

    @property
    def grid(self) -> "H3Grid":
        if self._grid is None:
            from hexsweep.geo.h3_grid import H3Grid

            self._grid = H3Grid()
        return self._grid

    @property
    def store(self) -> "PersistentStore":
        """
        Supabase store when configured, otherwise an in-memory store.

        Raises:
            InitializationError: If the Supabase client cannot be created.
        """
        if self._store is None:
            if self._settings.has_supabase:
                try:
                    from hexsweep.storage.supabase_store import SupabaseStore

                    self._store = SupabaseStore()
                    logger.info("supabase_store_created")
                except HexsweepError as e:
                    logger.error("supabase_store_creation_failed", error=str(e))
                    raise InitializationError(
                        "SupabaseStore",
                        f"Failed to create Supabase store: {e}",
                        {"url": self._settings.supabase_url},
                    ) from e
            else:
                from hexsweep.storage.memory_store import InMemoryStore

                logger.warning("supabase_not_configured_using_memory_store")
                self._store = InMemoryStore()
        return self._store

    @property
    def collector(self) -> "BaseCollector":
        """
        Search provider (lazy initialization).

        Raises:
            InitializationError: If the Yelp API key is missing.
        """
        if self._collector is None:
            from hexsweep.collectors.registry import CollectorType, get_collector

            api_key = self._settings.yelp_api_key
            try:
                self._collector = get_collector(
                    CollectorType.YELP,
                    {
                        "api_key": api_key.get_secret_value() if api_key else None,
                        "base_url": self._settings.yelp_api_base_url,
                        "categories": self._settings.yelp_categories,
                        "timeout": self._settings.request_timeout_seconds,
                    },
                )
                logger.info("yelp_collector_created")
            except HexsweepError as e:
                logger.error("yelp_collector_creation_failed", error=str(e))
                raise InitializationError("YelpSearchCollector", str(e)) from e
        return self._collector

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    @property
    def orchestrator(self) -> "SearchOrchestrator":
        if self._orchestrator is None:
            from hexsweep.geo.coverage import CoveragePlanner
            from hexsweep.geo.density import DensityDetector
            from hexsweep.orchestration.search import SearchOrchestrator

            s = self._settings
            self._orchestrator = SearchOrchestrator(
                provider=self.collector,
                gate=self.rate_gate,
                quota=self.quota,
                planner=CoveragePlanner(self.grid),
                density=DensityDetector(
                    self.grid,
                    saturation_threshold=s.density_threshold,
                    max_resolution=s.max_resolution,
                ),
                grid=self.grid,
                clock=self._clock,
                page_size=s.page_size,
                max_results_per_probe=s.max_results_per_probe,
                retry_max_attempts=s.retry_max_attempts,
                retry_base_delay=s.retry_base_delay_seconds,
                retry_max_delay=s.retry_max_delay_seconds,
            )
        return self._orchestrator

    @property
    def writer(self) -> "StagingWriter":
        if self._writer is None:
            from hexsweep.storage.staging import StagingWriter

            self._writer = StagingWriter(
                self.store,
                table=self._settings.staging_table,
                batch_size=self._settings.staging_batch_size,
            )
        return self._writer

    @property
    def pipeline(self) -> "CellPipeline":
        if self._pipeline is None:
            from hexsweep.orchestration.pipeline import CellPipeline
            from hexsweep.storage.cell_cache import CellCache
            from hexsweep.storage.import_logs import ImportLogRepository

            s = self._settings
            self._pipeline = CellPipeline(
                orchestrator=self.orchestrator,
                writer=self.writer,
                quota=self.quota,
                cache=CellCache(self.store, table=s.hextiles_table, ttl_days=s.cache_ttl_days),
                import_logs=ImportLogRepository(self.store, table=s.import_logs_table),
                base_resolution=s.base_resolution,
                avg_pages_per_probe=s.avg_pages_per_probe,
                clock=self._clock,
            )
        return self._pipeline

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Build the store and, when a key is configured, the search pipeline.

        A missing Yelp key is tolerated outside production: the API still
        serves quota and staging routes, and run requests fail with 503.

        Raises:
            InitializationError: If a configured service fails to initialize.
        """
        if self._initialized:
            logger.warning("container_already_initialized")
            return

        logger.info("container_initializing")
        _ = self.store

        if self._collector is not None or self._settings.yelp_api_key:
            _ = self.pipeline
        elif self._settings.is_production:
            raise InitializationError("DependencyContainer", "Yelp API key is required in production")
        else:
            logger.warning("yelp_api_key_missing_runs_disabled")

        self._initialized = True
        logger.info("container_initialized")

    async def shutdown(self) -> None:
        logger.info("container_shutting_down")

        if self._pipeline is not None and self._pipeline.is_running:
            self._pipeline.cancel()

        if self._collector is not None:
            await self._collector.close()
            logger.info("collector_closed")

        self._initialized = False
        logger.info("container_shutdown_complete")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def has_pipeline(self) -> bool:
        return self._pipeline is not None


# Global container instance for convenience
# Prefer passing container explicitly via dependency injection
_container: DependencyContainer | None = None


def get_container() -> DependencyContainer:
    """Get the global container instance, creating it on first use."""
    global _container
    if _container is None:
        _container = DependencyContainer()
    return _container


def set_container(container: DependencyContainer | None) -> None:
    """Replace the global container (used by tests and app startup)."""
    global _container
    _container = container


async def initialize_container() -> DependencyContainer:
    """Initialize and return the global container."""
    container = get_container()
    await container.initialize()
    return container


async def shutdown_container() -> None:
    """Shutdown and clear the global container."""
    global _container
    if _container is not None:
        await _container.shutdown()
        _container = None
