"""Search provider collectors."""

from hexsweep.collectors.base import BaseCollector, BusinessSearchProvider
from hexsweep.collectors.registry import (
    CollectorType,
    get_collector,
    register_collector,
)
from hexsweep.collectors.yelp import YelpSearchCollector

__all__ = [
    "BaseCollector",
    "BusinessSearchProvider",
    "CollectorType",
    "YelpSearchCollector",
    "get_collector",
    "register_collector",
]
