"""Persistent store interface.

An opaque key-addressable table store: rows are plain dicts keyed by their
``id`` column. Implementations raise PersistenceError for every failure so
callers never see driver-specific exceptions.
"""

from typing import Any, Iterable, Protocol

Row = dict[str, Any]


class PersistentStore(Protocol):
    """Synchronous batch table operations."""

    def insert_batch(self, table: str, rows: list[Row]) -> None:
        """Insert rows; fails the whole batch if any id already exists."""
        ...

    def upsert_batch(self, table: str, rows: list[Row]) -> None:
        """Insert rows, replacing any existing row with the same id."""
        ...

    def select_by_ids(self, table: str, ids: Iterable[str]) -> list[Row]: ...

    def select_all(self, table: str, columns: str = "*") -> list[Row]: ...

    def update_fields(self, table: str, row_id: str, fields: Row) -> None: ...

    def update_status(self, table: str, row_id: str, status: str) -> None: ...

    def update_status_many(self, table: str, row_ids: list[str], status: str) -> None: ...
