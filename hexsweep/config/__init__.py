"""
Configuration Management.

Centralized configuration using Pydantic Settings.

Configuration sources (in order of precedence):
1. Environment variables
2. .env file
3. Default values

Example:
    from hexsweep.config import get_settings

    settings = get_settings()
    threshold = settings.density_threshold
"""

from hexsweep.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
