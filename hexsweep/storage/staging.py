"""Deduplication and staging writer.

Turns a cell's businesses into staging rows:

1. Validate (id, name, city, coordinate ranges); invalid rows are logged with
   every reason and counted as errors.
2. Drop repeats within the input itself.
3. Drop businesses already staged, matched by exact id or by normalized
   ``name|address line 1``.
4. Insert the rest in bounded batches. A failing batch is logged and counted
   as errors; later batches still run.

Writing the same businesses twice creates nothing the second time.
"""

import asyncio
from typing import Any, Callable, Optional, Sequence

import structlog
from pydantic import ValidationError

from hexsweep.core.exceptions import PersistenceError
from hexsweep.models.schemas import (
    BulkStatusUpdateResult,
    Business,
    DuplicateInfo,
    DuplicateMatch,
    StagingRecord,
    StagingStatus,
    WriteStats,
)
from hexsweep.monitoring.metrics import record_staging_writes
from hexsweep.storage.base import PersistentStore

logger = structlog.get_logger(__name__)

DEFAULT_STAGING_TABLE = "yelp_staging"
DEFAULT_INSERT_BATCH_SIZE = 50
DEFAULT_STATUS_BATCH_SIZE = 100


def validate_business(business: Business) -> list[str]:
    """Return every reason ``business`` cannot be staged (empty when valid)."""
    errors: list[str] = []

    if not business.id.strip():
        errors.append("Missing required field: id")
    if not business.name.strip():
        errors.append("Missing required field: name")
    if not business.address.city.strip():
        errors.append("Missing required field: address.city")

    lat = business.latitude
    lng = business.longitude
    if lat is None:
        errors.append("Missing required field: coordinates.latitude")
    elif not -90.0 <= lat <= 90.0:
        errors.append(f"Invalid latitude {lat} (must be between -90 and 90)")
    if lng is None:
        errors.append("Missing required field: coordinates.longitude")
    elif not -180.0 <= lng <= 180.0:
        errors.append(f"Invalid longitude {lng} (must be between -180 and 180)")

    return errors


class StagingWriter:
    """Writes deduplicated businesses into the staging table.

    Store calls run in the default executor so a long duplicate scan does not
    hold up the event loop.
    """

    def __init__(
        self,
        store: PersistentStore,
        table: str = DEFAULT_STAGING_TABLE,
        batch_size: int = DEFAULT_INSERT_BATCH_SIZE,
        status_batch_size: int = DEFAULT_STATUS_BATCH_SIZE,
    ) -> None:
        if batch_size < 1 or status_batch_size < 1:
            raise ValueError("Batch sizes must be positive")
        self.store = store
        self.table = table
        self.batch_size = batch_size
        self.status_batch_size = status_batch_size

    async def write(
        self,
        businesses: Sequence[Business],
        cell_id: str,
        import_run_id: str,
    ) -> WriteStats:
        stats = WriteStats()
        log = logger.bind(cell_id=cell_id, import_run_id=import_run_id)

        valid = self._validate_all(businesses, stats, log)
        candidates = self._drop_input_repeats(valid, cell_id, stats)

        if candidates:
            try:
                fresh = await self._run_sync(self._drop_existing, candidates, stats)
            except PersistenceError as e:
                log.error("staging_duplicate_lookup_failed", error=str(e), business_count=len(candidates))
                stats.error_count += len(candidates)
                fresh = []

            for batch_index, start in enumerate(range(0, len(fresh), self.batch_size)):
                batch = fresh[start : start + self.batch_size]
                rows = [
                    StagingRecord.from_business(b, cell_id, import_run_id).to_db_row()
                    for b in batch
                ]
                try:
                    await self._run_sync(self.store.insert_batch, self.table, rows)
                except PersistenceError as e:
                    log.error(
                        "staging_batch_insert_failed",
                        batch_index=batch_index,
                        batch_size=len(batch),
                        error=str(e),
                    )
                    stats.error_count += len(batch)
                    continue

                stats.created_count += len(batch)
                stats.new_businesses.extend(batch)

        log.info(
            "staging_write_complete",
            created=stats.created_count,
            skipped=stats.skipped_count,
            errors=stats.error_count,
        )
        record_staging_writes(stats.created_count, stats.skipped_count, stats.error_count)
        return stats

    # -------------------------------------------------------------------------
    # Review transitions
    # -------------------------------------------------------------------------

    async def update_status(self, business_id: str, status: StagingStatus) -> bool:
        """Move one staged business to ``status``. False when it is unknown or the write fails."""
        if not business_id or not business_id.strip():
            logger.warning("staging_status_invalid_id")
            return False
        try:
            await self._run_sync(self.store.update_status, self.table, business_id, status.value)
        except PersistenceError as e:
            logger.warning(
                "staging_status_update_failed",
                business_id=business_id,
                status=status.value,
                error=str(e),
            )
            return False
        return True

    async def bulk_update_status(
        self,
        business_ids: Sequence[str],
        status: StagingStatus,
    ) -> BulkStatusUpdateResult:
        """Update many rows in batches, reporting which ids were not updated."""
        result = BulkStatusUpdateResult()
        unique_ids = list(dict.fromkeys(i for i in business_ids if i and i.strip()))

        for batch_index, start in enumerate(range(0, len(unique_ids), self.status_batch_size)):
            batch = unique_ids[start : start + self.status_batch_size]
            try:
                rows = await self._run_sync(self.store.select_by_ids, self.table, batch)
                known = {row["id"] for row in rows}
                targets = [i for i in batch if i in known]
                if targets:
                    await self._run_sync(self.store.update_status_many, self.table, targets, status.value)
            except PersistenceError as e:
                logger.error(
                    "staging_bulk_status_failed",
                    batch_index=batch_index,
                    batch_size=len(batch),
                    status=status.value,
                    error=str(e),
                )
                result.failed_ids.extend(batch)
                continue

            result.success_count += len(targets)
            result.failed_ids.extend(i for i in batch if i not in known)

        result.failed_count = len(result.failed_ids)
        logger.info(
            "staging_bulk_status_complete",
            status=status.value,
            success=result.success_count,
            failed=result.failed_count,
        )
        return result

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    @staticmethod
    async def _run_sync(func: Callable[..., Any], *args: Any) -> Any:
        # Store clients are synchronous; keep them off the event loop
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, func, *args)

    @staticmethod
    def _validate_all(businesses: Sequence[Business], stats: WriteStats, log) -> list[Business]:
        valid = []
        for business in businesses:
            errors = validate_business(business)
            if errors:
                log.warning(
                    "staging_validation_failed",
                    business_id=business.id or None,
                    business_name=business.name or None,
                    errors=errors,
                )
                stats.error_count += 1
                continue
            valid.append(business)
        return valid

    @staticmethod
    def _drop_input_repeats(
        businesses: list[Business],
        cell_id: str,
        stats: WriteStats,
    ) -> list[Business]:
        by_id: dict[str, Business] = {}
        by_key: dict[str, Business] = {}
        kept = []

        for business in businesses:
            key = business.name_address_key
            if business.id in by_id:
                first, match = by_id[business.id], DuplicateMatch.ID
            elif key is not None and key in by_key:
                first, match = by_key[key], DuplicateMatch.NAME_ADDRESS
            else:
                by_id[business.id] = business
                if key is not None:
                    by_key[key] = business
                kept.append(business)
                continue

            stats.skipped_count += 1
            stats.duplicates.append(
                DuplicateInfo(id=business.id, existing_id=first.id, existing_cell_id=cell_id, match=match)
            )

        return kept

    def _drop_existing(self, businesses: list[Business], stats: WriteStats) -> list[Business]:
        existing_by_id = {
            row["id"]: row for row in self.store.select_by_ids(self.table, [b.id for b in businesses])
        }

        needs_fuzzy = any(
            b.id not in existing_by_id and b.name_address_key is not None for b in businesses
        )
        existing_by_key = self._name_address_index() if needs_fuzzy else {}

        fresh = []
        for business in businesses:
            duplicate = self._match_existing(business, existing_by_id, existing_by_key)
            if duplicate is None:
                fresh.append(business)
                continue
            stats.skipped_count += 1
            stats.duplicates.append(duplicate)
        return fresh

    @staticmethod
    def _match_existing(
        business: Business,
        existing_by_id: dict[str, dict],
        existing_by_key: dict[str, dict],
    ) -> Optional[DuplicateInfo]:
        row = existing_by_id.get(business.id)
        if row is not None:
            return DuplicateInfo(
                id=business.id,
                existing_id=row["id"],
                existing_cell_id=row.get("cell_id"),
                match=DuplicateMatch.ID,
            )

        key = business.name_address_key
        row = existing_by_key.get(key) if key is not None else None
        if row is not None:
            return DuplicateInfo(
                id=business.id,
                existing_id=row["id"],
                existing_cell_id=row.get("cell_id"),
                match=DuplicateMatch.NAME_ADDRESS,
            )
        return None

    def _name_address_index(self) -> dict[str, dict]:
        index: dict[str, dict] = {}
        for row in self.store.select_all(self.table, "id,cell_id,data"):
            try:
                key = Business.model_validate(row.get("data") or {}).name_address_key
            except ValidationError:
                logger.warning("staging_row_unreadable", row_id=row.get("id"))
                continue
            if key is not None:
                index.setdefault(key, row)
        return index
