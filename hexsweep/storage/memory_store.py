"""In-process store used in tests and when Supabase is not configured.

Same contract as the Supabase store: duplicate inserts and updates of unknown
ids raise PersistenceError. Contents are lost when the process exits.
"""

import copy
from typing import Iterable

from hexsweep.core.exceptions import PersistenceError
from hexsweep.storage.base import Row


class InMemoryStore:
    """Dict-of-dicts implementation of PersistentStore."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Row]] = {}

    def _table(self, table: str) -> dict[str, Row]:
        return self._tables.setdefault(table, {})

    def insert_batch(self, table: str, rows: list[Row]) -> None:
        rows_by_id = self._table(table)
        ids = [row.get("id") for row in rows]

        missing = [i for i, row_id in enumerate(ids) if not row_id]
        if missing:
            raise PersistenceError(table, "insert", "Rows without an id", {"row_indexes": missing})

        conflicts = sorted({row_id for row_id in ids if row_id in rows_by_id})
        if conflicts or len(set(ids)) != len(ids):
            raise PersistenceError(
                table,
                "insert",
                "Duplicate key value violates unique constraint",
                {"conflicting_ids": conflicts},
            )

        for row in rows:
            rows_by_id[row["id"]] = copy.deepcopy(row)

    def upsert_batch(self, table: str, rows: list[Row]) -> None:
        rows_by_id = self._table(table)
        for row in rows:
            if not row.get("id"):
                raise PersistenceError(table, "upsert", "Row without an id")
            rows_by_id[row["id"]] = copy.deepcopy(row)

    def select_by_ids(self, table: str, ids: Iterable[str]) -> list[Row]:
        rows_by_id = self._table(table)
        return [copy.deepcopy(rows_by_id[row_id]) for row_id in dict.fromkeys(ids) if row_id in rows_by_id]

    def select_all(self, table: str, columns: str = "*") -> list[Row]:
        rows = self._table(table).values()
        if columns == "*":
            return [copy.deepcopy(row) for row in rows]
        wanted = [c.strip() for c in columns.split(",")]
        return [{c: copy.deepcopy(row.get(c)) for c in wanted} for row in rows]

    def update_fields(self, table: str, row_id: str, fields: Row) -> None:
        rows_by_id = self._table(table)
        if row_id not in rows_by_id:
            raise PersistenceError(table, "update", f"No row with id {row_id!r}")
        rows_by_id[row_id].update(copy.deepcopy(fields))

    def update_status(self, table: str, row_id: str, status: str) -> None:
        self.update_fields(table, row_id, {"status": status})

    def update_status_many(self, table: str, row_ids: list[str], status: str) -> None:
        rows_by_id = self._table(table)
        unknown = [row_id for row_id in row_ids if row_id not in rows_by_id]
        if unknown:
            raise PersistenceError(table, "update", "Unknown ids", {"ids": unknown})
        for row_id in row_ids:
            rows_by_id[row_id]["status"] = status

    def count(self, table: str) -> int:
        return len(self._table(table))
