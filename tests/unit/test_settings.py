"""Unit tests for application settings."""

import pytest
from pydantic import ValidationError

from hexsweep.config.settings import Settings


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


class TestSettings:
    """Test defaults and cross-field validation."""

    def test_defaults(self):
        settings = _settings(yelp_api_key=None, supabase_url=None, supabase_key=None)

        assert settings.rate_limit_per_second == 10
        assert settings.rate_limit_per_day == 5000
        assert settings.density_threshold == 240
        assert settings.max_resolution == 10
        assert settings.staging_batch_size == 50
        assert settings.has_supabase is False

    def test_has_supabase(self):
        settings = _settings(supabase_url="https://x.supabase.co", supabase_key="secret")

        assert settings.has_supabase is True

    def test_max_resolution_below_base(self):
        with pytest.raises(ValidationError, match="max_resolution"):
            _settings(base_resolution=9, max_resolution=8)

    def test_production_requires_credentials(self):
        with pytest.raises(ValidationError, match="yelp_api_key must be set"):
            _settings(app_env="production", debug=False, yelp_api_key=None)

    def test_production_rejects_debug(self):
        with pytest.raises(ValidationError, match="debug must be False"):
            _settings(
                app_env="production",
                debug=True,
                yelp_api_key="k",
                supabase_url="https://x.supabase.co",
                supabase_key="secret",
            )

    def test_page_size_capped_at_fifty(self):
        with pytest.raises(ValidationError):
            _settings(page_size=51)
