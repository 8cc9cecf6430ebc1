"""Processed-cell cache.

Leaf cells (``fetched`` or ``dense``) are recorded with their business count.
A re-run skips any cell recorded within the TTL instead of spending calls on
it again. Store errors propagate as PersistenceError; the pipeline treats a
cache failure as a miss.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from hexsweep.models.schemas import CachedCell, CellResult, CellStatus, utc_now
from hexsweep.storage.base import PersistentStore

logger = structlog.get_logger(__name__)

DEFAULT_CACHE_TABLE = "yelp_hextiles"
DEFAULT_TTL_DAYS = 30

CACHEABLE_STATUSES = (CellStatus.FETCHED, CellStatus.DENSE)


class CellCache:
    def __init__(
        self,
        store: PersistentStore,
        table: str = DEFAULT_CACHE_TABLE,
        ttl_days: int = DEFAULT_TTL_DAYS,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.table = table
        self.ttl = timedelta(days=ttl_days)
        self._now = now

    def get_fresh(self, cell_id: str) -> Optional[CachedCell]:
        """The cached row for ``cell_id`` if it is a leaf recorded within the TTL."""
        rows = self.store.select_by_ids(self.table, [cell_id])
        if not rows:
            return None

        try:
            cached = CachedCell.model_validate(rows[0])
        except ValidationError:
            logger.warning("cell_cache_row_unreadable", cell_id=cell_id)
            return None

        if cached.status not in CACHEABLE_STATUSES:
            return None
        if self._now() - cached.updated_at > self.ttl:
            return None
        return cached

    def record(
        self,
        result: CellResult,
        center: tuple[float, float],
        staged: int = 0,
    ) -> None:
        if result.status not in CACHEABLE_STATUSES:
            return
        row = CachedCell(
            id=result.cell_id,
            status=result.status,
            resolution=result.resolution,
            center_lat=center[0],
            center_lng=center[1],
            total_businesses=result.total_businesses,
            staged=staged,
            updated_at=self._now(),
        )
        self.store.upsert_batch(self.table, [row.to_db_row()])
