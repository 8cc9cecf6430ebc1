"""Unit tests for the Supabase store adapter (client mocked)."""

from unittest.mock import MagicMock, patch

import httpx
import pytest
from postgrest.exceptions import APIError

from hexsweep.core.exceptions import ConfigurationError, PersistenceError
from hexsweep.storage.supabase_store import (
    IDS_PER_QUERY,
    SELECT_PAGE_SIZE,
    SupabaseStore,
    create_supabase_client,
)


class TestSupabaseStore:
    """Test query building and error translation."""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def store(self, client):
        return SupabaseStore(client=client)

    def test_insert_batch(self, store, client):
        rows = [{"id": "a"}, {"id": "b"}]

        store.insert_batch("yelp_staging", rows)

        client.table.assert_called_with("yelp_staging")
        client.table.return_value.insert.assert_called_once_with(rows)

    def test_insert_empty_batch_is_noop(self, store, client):
        store.insert_batch("yelp_staging", [])

        client.table.assert_not_called()

    def test_api_error_becomes_persistence_error(self, store, client):
        client.table.return_value.insert.return_value.execute.side_effect = APIError(
            {"message": "duplicate key value", "code": "23505"}
        )

        with pytest.raises(PersistenceError) as exc_info:
            store.insert_batch("yelp_staging", [{"id": "a"}])

        assert exc_info.value.table == "yelp_staging"
        assert exc_info.value.operation == "insert"

    def test_transport_error_becomes_persistence_error(self, store, client):
        client.table.return_value.select.return_value.in_.return_value.execute.side_effect = (
            httpx.ConnectError("connection refused")
        )

        with pytest.raises(PersistenceError):
            store.select_by_ids("yelp_staging", ["a"])

    def test_select_by_ids_chunks_queries(self, store, client):
        execute = client.table.return_value.select.return_value.in_.return_value.execute
        execute.return_value = MagicMock(data=[{"id": "x"}])
        ids = [f"id{i}" for i in range(IDS_PER_QUERY + 1)]

        rows = store.select_by_ids("yelp_staging", ids)

        assert execute.call_count == 2
        assert rows == [{"id": "x"}, {"id": "x"}]

    def test_select_all_pages_until_short_page(self, store, client):
        execute = (
            client.table.return_value.select.return_value.order.return_value.range.return_value.execute
        )
        execute.side_effect = [
            MagicMock(data=[{"id": str(i)} for i in range(SELECT_PAGE_SIZE)]),
            MagicMock(data=[{"id": "last"}]),
        ]

        rows = store.select_all("yelp_staging", "id,cell_id,data")

        assert len(rows) == SELECT_PAGE_SIZE + 1
        range_calls = client.table.return_value.select.return_value.order.return_value.range.call_args_list
        assert range_calls[0].args == (0, SELECT_PAGE_SIZE - 1)
        assert range_calls[1].args == (SELECT_PAGE_SIZE, 2 * SELECT_PAGE_SIZE - 1)

    def test_update_unknown_row(self, store, client):
        client.table.return_value.update.return_value.eq.return_value.execute.return_value = MagicMock(data=[])

        with pytest.raises(PersistenceError):
            store.update_status("yelp_staging", "missing", "approved")

    def test_update_status_many_reports_missing(self, store, client):
        execute = client.table.return_value.update.return_value.in_.return_value.execute
        execute.return_value = MagicMock(data=[{"id": "a"}])

        with pytest.raises(PersistenceError) as exc_info:
            store.update_status_many("yelp_staging", ["a", "b"], "approved")

        assert exc_info.value.details["ids"] == ["b"]


class TestCreateClient:
    def test_requires_configuration(self):
        settings = MagicMock(has_supabase=False)

        with patch("hexsweep.storage.supabase_store.get_settings", return_value=settings):
            with pytest.raises(ConfigurationError):
                create_supabase_client()

    def test_builds_client_from_settings(self):
        settings = MagicMock(has_supabase=True, supabase_url="https://x.supabase.co")
        settings.supabase_key.get_secret_value.return_value = "secret"

        with patch("hexsweep.storage.supabase_store.get_settings", return_value=settings), patch(
            "hexsweep.storage.supabase_store.create_client"
        ) as mock_create:
            create_supabase_client()

        mock_create.assert_called_once_with("https://x.supabase.co", "secret")
