"""Test doubles shared across the unit and integration suites."""

import asyncio
from typing import Callable, Optional

from hexsweep.collectors.base import BaseCollector
from hexsweep.geo.h3_grid import H3Grid
from hexsweep.models.schemas import (
    Address,
    Business,
    CellSizeClass,
    Coordinates,
    CoveragePlan,
    ProbePoint,
    SearchPage,
)

NYC = (40.7128, -74.0060)


class FakeClock:
    """Manually advanced clock. ``sleep`` yields once, then jumps forward."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(0)
        seconds = max(0.0, seconds)
        self.sleeps.append(seconds)
        self._now += seconds

    def advance(self, seconds: float) -> None:
        self._now += seconds


def make_business(
    business_id: str,
    latitude: Optional[float] = NYC[0],
    longitude: Optional[float] = NYC[1],
    name: Optional[str] = None,
    address: Optional[str] = None,
    city: str = "New York",
) -> Business:
    return Business(
        id=business_id,
        name=name if name is not None else f"Business {business_id}",
        coordinates=Coordinates(latitude=latitude, longitude=longitude),
        address=Address(
            line1=address if address is not None else f"{business_id} Main St",
            city=city,
        ),
    )


class FixedProbePlanner:
    """Planner stand-in that puts ``probe_count`` probes on the cell center."""

    def __init__(self, probe_count: int = 3, grid: Optional[H3Grid] = None) -> None:
        self.probe_count = probe_count
        self.grid = grid or H3Grid()

    def plan(self, cell_id: str) -> CoveragePlan:
        lat, lng = self.grid.cell_center(cell_id)
        return CoveragePlan(
            cell_id=cell_id,
            resolution=self.grid.resolution(cell_id),
            size_class=CellSizeClass.MEDIUM,
            area_km2=self.grid.cell_area_km2(cell_id),
            probe_points=[
                ProbePoint(latitude=lat, longitude=lng, radius_meters=500)
                for _ in range(self.probe_count)
            ],
        )


class FakeSearchProvider(BaseCollector):
    """Scripted provider.

    ``respond`` receives ``(call_index, latitude, longitude, offset, limit)``
    and returns a SearchPage or raises.
    """

    def __init__(self, respond: Callable[..., SearchPage]) -> None:
        super().__init__({})
        self._respond = respond
        self.calls: list[dict] = []
        self.closed = False

    async def search(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        offset: int = 0,
        limit: int = 50,
    ) -> SearchPage:
        index = len(self.calls)
        self.calls.append(
            {
                "latitude": latitude,
                "longitude": longitude,
                "radius_meters": radius_meters,
                "offset": offset,
                "limit": limit,
            }
        )
        return self._respond(index, latitude, longitude, offset, limit)

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True
