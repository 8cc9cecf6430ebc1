"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- clock: manually advanced FakeClock
- grid: H3 adapter
- store: empty InMemoryStore
- nyc_cell: resolution 7 cell over lower Manhattan
- sample_business: valid Business located in nyc_cell
"""

import pytest

from hexsweep.geo.h3_grid import H3Grid
from hexsweep.models.schemas import Business
from hexsweep.storage.memory_store import InMemoryStore
from tests.helpers import NYC, FakeClock, make_business


@pytest.fixture
def clock() -> FakeClock:
    """Return a clock starting at t=0."""
    return FakeClock()


@pytest.fixture
def grid() -> H3Grid:
    return H3Grid()


@pytest.fixture
def store() -> InMemoryStore:
    """Return an empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def nyc_cell(grid) -> str:
    """Return the resolution 7 cell containing lower Manhattan."""
    return grid.point_to_cell(NYC[0], NYC[1], 7)


@pytest.fixture
def sample_business(grid, nyc_cell) -> Business:
    """Return a sample business at the center of nyc_cell."""
    lat, lng = grid.cell_center(nyc_cell)
    return make_business(
        "test_business_123",
        latitude=lat,
        longitude=lng,
        name="Test Restaurant",
        address="123 Test Street",
    )
