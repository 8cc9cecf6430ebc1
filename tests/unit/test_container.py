"""Unit tests for the dependency container."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hexsweep.config.settings import Settings
from hexsweep.core.container import DependencyContainer
from hexsweep.core.exceptions import InitializationError
from hexsweep.storage.memory_store import InMemoryStore
from tests.helpers import FakeClock


def _settings(**overrides):
    values = {"yelp_api_key": None, "supabase_url": None, "supabase_key": None}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestDependencyContainer:
    """Test lazy wiring and lifecycle."""

    def test_memory_store_without_supabase(self):
        container = DependencyContainer(settings=_settings(), clock=FakeClock())

        assert isinstance(container.store, InMemoryStore)

    def test_supabase_store_when_configured(self):
        settings = _settings(supabase_url="https://x.supabase.co", supabase_key="secret")

        with patch("hexsweep.storage.supabase_store.SupabaseStore") as mock_store:
            container = DependencyContainer(settings=settings, clock=FakeClock())
            store = container.store

        assert store is mock_store.return_value

    def test_services_are_shared(self):
        container = DependencyContainer(settings=_settings(rate_limit_per_day=1234), clock=FakeClock())

        assert container.rate_gate is container.rate_gate
        assert container.rate_gate.daily_limit == 1234
        assert container.quota.daily_limit == 1234

    def test_collector_requires_api_key(self):
        container = DependencyContainer(settings=_settings(), clock=FakeClock())

        with pytest.raises(InitializationError):
            _ = container.collector

    def test_pipeline_wiring_follows_settings(self):
        settings = _settings(yelp_api_key="k", density_threshold=100, max_resolution=9)
        container = DependencyContainer(settings=settings, store=InMemoryStore(), clock=FakeClock())

        pipeline = container.pipeline

        assert pipeline.orchestrator.gate is container.rate_gate
        assert pipeline.orchestrator.density.saturation_threshold == 100
        assert pipeline.orchestrator.density.max_resolution == 9
        assert pipeline.writer is container.writer

    @pytest.mark.asyncio
    async def test_initialize_without_key_disables_runs(self):
        container = DependencyContainer(settings=_settings(), store=InMemoryStore(), clock=FakeClock())

        await container.initialize()

        assert container.is_initialized is True
        assert container.has_pipeline is False

    @pytest.mark.asyncio
    async def test_initialize_with_injected_collector(self):
        collector = MagicMock()
        container = DependencyContainer(
            settings=_settings(),
            store=InMemoryStore(),
            collector=collector,
            clock=FakeClock(),
        )

        await container.initialize()

        assert container.has_pipeline is True
        assert container.pipeline.orchestrator.provider is collector

    @pytest.mark.asyncio
    async def test_shutdown_closes_collector(self):
        collector = MagicMock()
        collector.close = AsyncMock()
        container = DependencyContainer(
            settings=_settings(),
            store=InMemoryStore(),
            collector=collector,
            clock=FakeClock(),
        )
        await container.initialize()

        await container.shutdown()

        collector.close.assert_awaited_once()
        assert container.is_initialized is False
