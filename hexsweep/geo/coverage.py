"""Coverage planner.

Turns a cell into the set of probe points whose search discs jointly cover
the whole cell. The hexagon (or pentagon) is fanned into triangles from its
center; each satellite probe sits at a triangle centroid with a radius that
reaches all three vertices, so every triangle, and therefore the cell, lies
inside the union of the discs.

    small  (< 1 km2)   center probe only
    medium (< 10 km2)  center + one probe per fan triangle
    large              center + four probes per fan triangle (midpoint split)

The planner is pure: the same cell always yields the same plan.
"""

import math
from typing import Optional

import structlog

from hexsweep.core.exceptions import GeometryError
from hexsweep.geo.distance import haversine_meters
from hexsweep.geo.h3_grid import H3Grid, LatLng
from hexsweep.models.schemas import CellSizeClass, CoveragePlan, ProbePoint

logger = structlog.get_logger(__name__)

Triangle = tuple[LatLng, LatLng, LatLng]

SMALL_MAX_KM2 = 1.0
MEDIUM_MAX_KM2 = 10.0
MIN_RADIUS_M = 50


def _midpoint(a: LatLng, b: LatLng) -> LatLng:
    return (a[0] + b[0]) / 2, (a[1] + b[1]) / 2


def _centroid(triangle: Triangle) -> LatLng:
    return (
        sum(v[0] for v in triangle) / 3,
        sum(v[1] for v in triangle) / 3,
    )


def _split_triangle(triangle: Triangle) -> list[Triangle]:
    a, b, c = triangle
    ab, bc, ca = _midpoint(a, b), _midpoint(b, c), _midpoint(c, a)
    return [(a, ab, ca), (ab, b, bc), (ca, bc, c), (ab, bc, ca)]


class CoveragePlanner:
    """
    Generates probe points for a cell.

    Args:
        grid: H3 adapter
        small_max_km2: Upper area bound (exclusive) of the small bucket
        medium_max_km2: Upper area bound (exclusive) of the medium bucket
        min_radius_m: Smallest radius ever requested
    """

    def __init__(
        self,
        grid: Optional[H3Grid] = None,
        small_max_km2: float = SMALL_MAX_KM2,
        medium_max_km2: float = MEDIUM_MAX_KM2,
        min_radius_m: int = MIN_RADIUS_M,
    ) -> None:
        if not 0 < small_max_km2 < medium_max_km2:
            raise ValueError("Size buckets must satisfy 0 < small < medium")
        if min_radius_m < 1:
            raise ValueError("min_radius_m must be at least 1")

        self.grid = grid or H3Grid()
        self.small_max_km2 = small_max_km2
        self.medium_max_km2 = medium_max_km2
        self.min_radius_m = min_radius_m

    def classify(self, area_km2: float) -> CellSizeClass:
        if area_km2 <= 0:
            return CellSizeClass.DEGENERATE
        if area_km2 < self.small_max_km2:
            return CellSizeClass.SMALL
        if area_km2 < self.medium_max_km2:
            return CellSizeClass.MEDIUM
        return CellSizeClass.LARGE

    def plan(self, cell_id: str) -> CoveragePlan:
        """Build the coverage plan for one cell. Raises GeometryError on bad ids."""
        resolution = self.grid.resolution(cell_id)
        center = self.grid.cell_center(cell_id)
        boundary = self.grid.cell_boundary(cell_id)
        area_km2 = self.grid.cell_area_km2(cell_id)

        size_class = self.classify(area_km2)
        if len(boundary) < 3:
            size_class = CellSizeClass.DEGENERATE

        if size_class is CellSizeClass.DEGENERATE:
            logger.warning("coverage_degenerate_cell", cell_id=cell_id, area_km2=area_km2)
            probes = [self._probe(center, self.min_radius_m)]
        elif size_class is CellSizeClass.SMALL:
            probes = [self._probe(center, self._reach(center, boundary))]
        else:
            probes = self._fan_probes(center, boundary, split=size_class is CellSizeClass.LARGE)

        plan = CoveragePlan(
            cell_id=cell_id,
            resolution=resolution,
            size_class=size_class,
            area_km2=area_km2,
            probe_points=probes,
        )

        if size_class is not CellSizeClass.DEGENERATE and not validate_coverage(plan, boundary):
            raise GeometryError(
                f"Coverage plan for {cell_id} leaves boundary vertices uncovered",
                details={"cell_id": cell_id, "probe_count": plan.probe_count},
            )

        return plan

    def _fan_probes(self, center: LatLng, boundary: list[LatLng], split: bool) -> list[ProbePoint]:
        triangles: list[Triangle] = [
            (center, boundary[i], boundary[(i + 1) % len(boundary)])
            for i in range(len(boundary))
        ]
        if split:
            triangles = [part for triangle in triangles for part in _split_triangle(triangle)]

        satellites = []
        for triangle in triangles:
            centroid = _centroid(triangle)
            satellites.append(self._probe(centroid, self._reach(centroid, triangle)))

        # Center probe sweeps the core out to the farthest satellite origin
        core_reach = self._reach(center, [(p.latitude, p.longitude) for p in satellites])
        return [self._probe(center, core_reach)] + satellites

    def _probe(self, origin: LatLng, radius_m: float) -> ProbePoint:
        return ProbePoint(
            latitude=origin[0],
            longitude=origin[1],
            radius_meters=max(self.min_radius_m, math.ceil(radius_m)),
        )

    @staticmethod
    def _reach(origin: LatLng, points) -> float:
        return max(haversine_meters(origin[0], origin[1], p[0], p[1]) for p in points)


def validate_coverage(plan: CoveragePlan, boundary: list[LatLng]) -> bool:
    """True when every boundary vertex lies within some probe's radius."""
    for lat, lng in boundary:
        if not any(
            haversine_meters(p.latitude, p.longitude, lat, lng) <= p.radius_meters
            for p in plan.probe_points
        ):
            return False
    return True
