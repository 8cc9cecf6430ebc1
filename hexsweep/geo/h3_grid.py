"""H3 grid adapter.

Thin wrapper over the ``h3`` (v4) bindings and ``shapely`` that the planner,
orchestrator and density detector depend on. All coordinates are
``(latitude, longitude)`` tuples in degrees; shapely geometries use GeoJSON
``(x=lng, y=lat)`` order.

Invalid cell ids and malformed polygons raise ``GeometryError``.
"""

from collections import deque
from typing import Any, Iterable

import h3
import structlog
from shapely.geometry import MultiPolygon, Polygon, shape
from shapely.geometry.base import BaseGeometry

from hexsweep.core.exceptions import GeometryError

logger = structlog.get_logger(__name__)

MIN_RESOLUTION = 0
MAX_RESOLUTION = 15

LatLng = tuple[float, float]


class H3Grid:
    """Geometry operations over H3 cell ids."""

    def is_valid_cell(self, cell_id: str) -> bool:
        try:
            return bool(h3.is_valid_cell(cell_id))
        except (h3.H3BaseException, TypeError, ValueError):
            return False

    def resolution(self, cell_id: str) -> int:
        self._require_valid(cell_id)
        return h3.get_resolution(cell_id)

    def cell_center(self, cell_id: str) -> LatLng:
        self._require_valid(cell_id)
        lat, lng = h3.cell_to_latlng(cell_id)
        return lat, lng

    def cell_boundary(self, cell_id: str) -> list[LatLng]:
        """Boundary vertices in order, without repeating the first vertex."""
        self._require_valid(cell_id)
        return [(lat, lng) for lat, lng in h3.cell_to_boundary(cell_id)]

    def cell_polygon(self, cell_id: str) -> Polygon:
        return Polygon([(lng, lat) for lat, lng in self.cell_boundary(cell_id)])

    def cell_area_km2(self, cell_id: str) -> float:
        self._require_valid(cell_id)
        return h3.cell_area(cell_id, unit="km^2")

    def point_to_cell(self, latitude: float, longitude: float, resolution: int) -> str:
        self._require_resolution(resolution)
        try:
            return h3.latlng_to_cell(latitude, longitude, resolution)
        except (h3.H3BaseException, ValueError) as e:
            raise GeometryError(
                f"Cannot index point ({latitude}, {longitude}) at resolution {resolution}",
                details={"latitude": latitude, "longitude": longitude, "error": str(e)},
            ) from e

    def subdivide_cell(self, cell_id: str, to_resolution: int) -> list[str]:
        """Exact H3 children of ``cell_id`` at ``to_resolution``, sorted."""
        current = self.resolution(cell_id)
        self._require_resolution(to_resolution)
        if to_resolution <= current:
            raise GeometryError(
                f"Target resolution {to_resolution} must be finer than {current}",
                details={"cell_id": cell_id},
            )
        return sorted(h3.cell_to_children(cell_id, to_resolution))

    def tile_cells_in_polygon(self, geojson: dict[str, Any], resolution: int) -> list[str]:
        """
        Every cell at ``resolution`` that intersects the polygon.

        ``h3.polygon_to_cells`` only returns cells whose centers fall inside
        the polygon, which leaves slivers along the edge uncovered. Those
        cells seed a flood fill over neighbours that keeps any cell whose
        hexagon intersects the shape.
        """
        self._require_resolution(resolution)
        geometry = self.parse_polygon(geojson)

        parts = list(geometry.geoms) if isinstance(geometry, MultiPolygon) else [geometry]
        seeds: set[str] = set()
        for part in parts:
            point = part.representative_point()
            seeds.add(self.point_to_cell(point.y, point.x, resolution))
            seeds.update(h3.polygon_to_cells(self._to_h3_shape(part), resolution))

        cells = self._flood_fill(seeds, geometry)
        logger.info(
            "polygon_tiled",
            resolution=resolution,
            seed_cells=len(seeds),
            cell_count=len(cells),
        )
        return sorted(cells)

    def parse_polygon(self, geojson: dict[str, Any]) -> BaseGeometry:
        """Parse a GeoJSON Polygon, MultiPolygon or Feature into shapely."""
        if geojson.get("type") == "Feature":
            geojson = geojson.get("geometry") or {}

        if geojson.get("type") not in ("Polygon", "MultiPolygon"):
            raise GeometryError(
                "Expected a GeoJSON Polygon or MultiPolygon",
                details={"type": geojson.get("type")},
            )

        try:
            geometry = shape(geojson)
        except (ValueError, TypeError, IndexError, AttributeError) as e:
            raise GeometryError(f"Malformed polygon: {e}") from e

        if not geometry.is_valid:
            logger.warning("polygon_invalid_repairing")
            geometry = geometry.buffer(0)

        if geometry.is_empty:
            raise GeometryError("Polygon is empty")

        return geometry

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _flood_fill(self, seeds: Iterable[str], geometry: BaseGeometry) -> set[str]:
        accepted: set[str] = set()
        visited: set[str] = set()
        frontier = deque(seeds)

        while frontier:
            cell = frontier.popleft()
            if cell in visited:
                continue
            visited.add(cell)

            if not geometry.intersects(self.cell_polygon(cell)):
                continue

            accepted.add(cell)
            for neighbor in h3.grid_disk(cell, 1):
                if neighbor not in visited:
                    frontier.append(neighbor)

        return accepted

    @staticmethod
    def _to_h3_shape(polygon: Polygon) -> "h3.LatLngPoly":
        outer = [(lat, lng) for lng, lat in polygon.exterior.coords[:-1]]
        holes = [[(lat, lng) for lng, lat in ring.coords[:-1]] for ring in polygon.interiors]
        return h3.LatLngPoly(outer, *holes)

    def _require_valid(self, cell_id: str) -> None:
        if not self.is_valid_cell(cell_id):
            raise GeometryError(f"Invalid H3 cell id: {cell_id!r}", details={"cell_id": cell_id})

    @staticmethod
    def _require_resolution(resolution: int) -> None:
        if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
            raise GeometryError(
                f"Resolution {resolution} outside {MIN_RESOLUTION}..{MAX_RESOLUTION}",
                details={"resolution": resolution},
            )
