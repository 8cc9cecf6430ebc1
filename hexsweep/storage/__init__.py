"""
Persistence layer.

- PersistentStore: protocol for key-addressable batch tables
- SupabaseStore / InMemoryStore: implementations
- StagingWriter: deduplicating writer for the staging table
- CellCache: processed-cell cache
- ImportLogRepository: per-run bookkeeping
"""

from hexsweep.storage.base import PersistentStore, Row
from hexsweep.storage.cell_cache import CellCache
from hexsweep.storage.import_logs import ImportLogRepository
from hexsweep.storage.memory_store import InMemoryStore
from hexsweep.storage.staging import StagingWriter, validate_business

__all__ = [
    "CellCache",
    "ImportLogRepository",
    "InMemoryStore",
    "PersistentStore",
    "Row",
    "StagingWriter",
    "validate_business",
]
