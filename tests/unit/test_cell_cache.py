"""Unit tests for the processed-cell cache and import logs."""

from datetime import datetime, timedelta, timezone

import pytest

from hexsweep.core.exceptions import PersistenceError
from hexsweep.models.schemas import CellResult, CellStatus, ImportLogStatus
from hexsweep.storage.cell_cache import CellCache
from hexsweep.storage.import_logs import ImportLogRepository


class MutableNow:
    def __init__(self):
        self.value = datetime(2024, 6, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.value


class TestCellCache:
    """Test TTL-bound reuse of processed cells."""

    @pytest.fixture
    def now(self):
        return MutableNow()

    @pytest.fixture
    def cache(self, store, now):
        return CellCache(store, ttl_days=30, now=now)

    def _result(self, status, cell_id="872a1072bffffff"):
        return CellResult(cell_id=cell_id, resolution=7, status=status, total_businesses=42)

    def test_records_leaf_result(self, cache):
        cache.record(self._result(CellStatus.FETCHED), (40.7, -74.0), staged=40)

        cached = cache.get_fresh("872a1072bffffff")

        assert cached is not None
        assert cached.status == CellStatus.FETCHED
        assert cached.total_businesses == 42
        assert cached.staged == 40
        assert cached.center_lat == 40.7

    def test_dense_cells_are_cached(self, cache):
        cache.record(self._result(CellStatus.DENSE), (40.7, -74.0))

        assert cache.get_fresh("872a1072bffffff").status == CellStatus.DENSE

    @pytest.mark.parametrize("status", [CellStatus.SPLIT, CellStatus.FAILED])
    def test_non_leaf_results_are_not_cached(self, cache, status):
        cache.record(self._result(status), (40.7, -74.0))

        assert cache.get_fresh("872a1072bffffff") is None

    def test_expired_entry_is_a_miss(self, cache, now):
        cache.record(self._result(CellStatus.FETCHED), (40.7, -74.0))

        now.value += timedelta(days=31)

        assert cache.get_fresh("872a1072bffffff") is None

    def test_rerecord_refreshes_entry(self, cache, now):
        cache.record(self._result(CellStatus.FETCHED), (40.7, -74.0))
        now.value += timedelta(days=31)

        cache.record(self._result(CellStatus.FETCHED), (40.7, -74.0))

        assert cache.get_fresh("872a1072bffffff") is not None

    def test_unknown_cell(self, cache):
        assert cache.get_fresh("872a1072bffffff") is None


class TestImportLogRepository:
    """Test run bookkeeping rows."""

    @pytest.fixture
    def repo(self, store):
        return ImportLogRepository(store)

    def test_create_and_get(self, repo):
        repo.create("run-1", total_cells=12, estimated_api_calls=126, city_id="nyc")

        log = repo.get("run-1")

        assert log.status == ImportLogStatus.RUNNING
        assert log.total_cells == 12
        assert log.estimated_api_calls == 126
        assert log.city_id == "nyc"
        assert log.ended_at is None

    def test_update_persists_counters(self, repo):
        log = repo.create("run-1", total_cells=12, estimated_api_calls=126)

        repo.update(log.model_copy(update={"processed_cells": 5, "actual_api_calls": 40}))

        stored = repo.get("run-1")
        assert stored.processed_cells == 5
        assert stored.actual_api_calls == 40

    @pytest.mark.parametrize(
        "method,expected",
        [
            ("complete", ImportLogStatus.COMPLETE),
            ("fail", ImportLogStatus.FAILED),
            ("cancel", ImportLogStatus.CANCELLED),
        ],
    )
    def test_finish(self, repo, method, expected):
        log = repo.create("run-1", total_cells=1, estimated_api_calls=7)

        finished = getattr(repo, method)(log)

        stored = repo.get("run-1")
        assert finished.status == expected
        assert stored.status == expected
        assert stored.ended_at is not None

    def test_duplicate_run_id_rejected(self, repo):
        repo.create("run-1", total_cells=1, estimated_api_calls=7)

        with pytest.raises(PersistenceError):
            repo.create("run-1", total_cells=1, estimated_api_calls=7)

    def test_missing_run(self, repo):
        assert repo.get("nope") is None
