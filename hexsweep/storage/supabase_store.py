"""Supabase-backed persistent store.

The supabase client is synchronous; callers run these methods from async code
the same way the API routes do. Driver and transport errors are re-raised as
PersistenceError with the table and operation attached.
"""

from contextlib import contextmanager
from typing import Generator, Iterable, Optional

import httpx
import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from hexsweep.config.settings import get_settings
from hexsweep.core.exceptions import ConfigurationError, PersistenceError
from hexsweep.storage.base import Row

logger = structlog.get_logger(__name__)

# PostgREST caps rows per response at 1000 by default
SELECT_PAGE_SIZE = 1000

# Keeps ``id=in.(...)`` filters well under URL length limits
IDS_PER_QUERY = 100


def create_supabase_client() -> Client:
    """Build a client from settings, failing loudly when unconfigured."""
    settings = get_settings()
    if not settings.has_supabase:
        raise ConfigurationError("Supabase URL and key are required", config_key="supabase_url")
    return create_client(
        settings.supabase_url,
        settings.supabase_key.get_secret_value(),
    )


class SupabaseStore:
    """PersistentStore over Supabase tables keyed by ``id``."""

    def __init__(self, client: Optional[Client] = None) -> None:
        self._client = client or create_supabase_client()

    @contextmanager
    def _operation(self, table: str, operation: str, **context) -> Generator[None, None, None]:
        try:
            yield
        except (APIError, httpx.HTTPError) as e:
            logger.error(
                "supabase_operation_failed",
                table=table,
                operation=operation,
                error=str(e),
                **context,
            )
            raise PersistenceError(table, operation, str(e), context) from e

    def insert_batch(self, table: str, rows: list[Row]) -> None:
        if not rows:
            return
        with self._operation(table, "insert", row_count=len(rows)):
            self._client.table(table).insert(rows).execute()

    def upsert_batch(self, table: str, rows: list[Row]) -> None:
        if not rows:
            return
        with self._operation(table, "upsert", row_count=len(rows)):
            self._client.table(table).upsert(rows, on_conflict="id").execute()

    def select_by_ids(self, table: str, ids: Iterable[str]) -> list[Row]:
        unique_ids = list(dict.fromkeys(ids))
        rows: list[Row] = []
        for start in range(0, len(unique_ids), IDS_PER_QUERY):
            chunk = unique_ids[start : start + IDS_PER_QUERY]
            with self._operation(table, "select", id_count=len(chunk)):
                result = self._client.table(table).select("*").in_("id", chunk).execute()
            rows.extend(result.data or [])
        return rows

    def select_all(self, table: str, columns: str = "*") -> list[Row]:
        rows: list[Row] = []
        start = 0
        while True:
            with self._operation(table, "select", offset=start):
                result = (
                    self._client.table(table)
                    .select(columns)
                    .order("id")
                    .range(start, start + SELECT_PAGE_SIZE - 1)
                    .execute()
                )
            page = result.data or []
            rows.extend(page)
            if len(page) < SELECT_PAGE_SIZE:
                return rows
            start += SELECT_PAGE_SIZE

    def update_fields(self, table: str, row_id: str, fields: Row) -> None:
        with self._operation(table, "update", row_id=row_id):
            result = self._client.table(table).update(fields).eq("id", row_id).execute()
        if not result.data:
            raise PersistenceError(table, "update", f"No row with id {row_id!r}")

    def update_status(self, table: str, row_id: str, status: str) -> None:
        self.update_fields(table, row_id, {"status": status})

    def update_status_many(self, table: str, row_ids: list[str], status: str) -> None:
        if not row_ids:
            return
        with self._operation(table, "update", id_count=len(row_ids)):
            result = self._client.table(table).update({"status": status}).in_("id", row_ids).execute()

        updated = {row.get("id") for row in result.data or []}
        missing = [row_id for row_id in row_ids if row_id not in updated]
        if missing:
            raise PersistenceError(table, "update", "Unknown ids", {"ids": missing})
