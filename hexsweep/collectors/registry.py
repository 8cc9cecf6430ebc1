"""Collector registry for runtime collector selection.

Provides decorator-based registration and factory function for collectors.
"""

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hexsweep.collectors.base import BaseCollector


class CollectorType(Enum):
    """Supported search providers."""

    YELP = "yelp"


_collectors: dict[CollectorType, type["BaseCollector"]] = {}


def register_collector(collector_type: CollectorType):
    """Decorator to register a collector class.

    Example:
        @register_collector(CollectorType.YELP)
        class YelpSearchCollector(BaseCollector):
            ...
    """

    def decorator(cls: type["BaseCollector"]):
        _collectors[collector_type] = cls
        return cls

    return decorator


def get_collector(collector_type: CollectorType, config: dict) -> "BaseCollector":
    """Instantiate the collector registered for ``collector_type``.

    Raises:
        ValueError: If the collector type is not registered.
    """
    if collector_type not in _collectors:
        raise ValueError(f"Unknown collector type: {collector_type}")
    return _collectors[collector_type](config)
