"""Import run bookkeeping."""

from typing import Optional

import structlog

from hexsweep.models.schemas import ImportLog, ImportLogStatus, utc_now
from hexsweep.storage.base import PersistentStore

logger = structlog.get_logger(__name__)

DEFAULT_IMPORT_LOGS_TABLE = "yelp_import_logs"


class ImportLogRepository:
    """Creates and updates one ImportLog row per run."""

    def __init__(self, store: PersistentStore, table: str = DEFAULT_IMPORT_LOGS_TABLE) -> None:
        self.store = store
        self.table = table

    def create(
        self,
        import_run_id: str,
        total_cells: int,
        estimated_api_calls: int,
        city_id: Optional[str] = None,
    ) -> ImportLog:
        log = ImportLog(
            id=import_run_id,
            city_id=city_id,
            total_cells=total_cells,
            estimated_api_calls=estimated_api_calls,
        )
        self.store.insert_batch(self.table, [log.to_db_row()])
        logger.info("import_log_created", import_run_id=import_run_id, total_cells=total_cells)
        return log

    def get(self, import_run_id: str) -> Optional[ImportLog]:
        rows = self.store.select_by_ids(self.table, [import_run_id])
        return ImportLog.model_validate(rows[0]) if rows else None

    def update(self, log: ImportLog) -> None:
        """Persist the progress counters of ``log``."""
        fields = log.to_db_row()
        fields.pop("id")
        self.store.update_fields(self.table, log.id, fields)

    def complete(self, log: ImportLog) -> ImportLog:
        return self._finish(log, ImportLogStatus.COMPLETE)

    def fail(self, log: ImportLog, error: Optional[str] = None) -> ImportLog:
        return self._finish(log.model_copy(update={"error": error}), ImportLogStatus.FAILED)

    def cancel(self, log: ImportLog) -> ImportLog:
        return self._finish(log, ImportLogStatus.CANCELLED)

    def _finish(self, log: ImportLog, status: ImportLogStatus) -> ImportLog:
        finished = log.model_copy(update={"status": status, "ended_at": utc_now()})
        self.update(finished)
        logger.info(
            "import_log_finished",
            import_run_id=log.id,
            status=status.value,
            processed_cells=finished.processed_cells,
            actual_api_calls=finished.actual_api_calls,
        )
        return finished
