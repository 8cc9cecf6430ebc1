"""Unit tests for the coverage planner."""

import random

import pytest
from shapely.geometry import Point

from hexsweep.core.exceptions import GeometryError
from hexsweep.geo.coverage import CoveragePlanner, validate_coverage
from hexsweep.geo.distance import haversine_meters
from hexsweep.geo.h3_grid import H3Grid
from hexsweep.models.schemas import CellSizeClass
from tests.helpers import NYC

LOCATIONS = [
    NYC,
    (51.5074, -0.1278),
    (-33.8688, 151.2093),
    (1.3521, 103.8198),
]


def _sample_points(polygon, count, seed):
    """Uniform random points inside a shapely polygon, as (lat, lng)."""
    rng = random.Random(seed)
    min_x, min_y, max_x, max_y = polygon.bounds
    points = []
    while len(points) < count:
        x = rng.uniform(min_x, max_x)
        y = rng.uniform(min_y, max_y)
        if polygon.contains(Point(x, y)):
            points.append((y, x))
    return points


def _covered(plan, lat, lng):
    return any(
        haversine_meters(p.latitude, p.longitude, lat, lng) <= p.radius_meters
        for p in plan.probe_points
    )


class TestClassification:
    """Test area buckets."""

    @pytest.fixture
    def planner(self):
        return CoveragePlanner()

    @pytest.mark.parametrize(
        "area,expected",
        [
            (0.0, CellSizeClass.DEGENERATE),
            (-1.0, CellSizeClass.DEGENERATE),
            (0.5, CellSizeClass.SMALL),
            (1.0, CellSizeClass.MEDIUM),
            (5.2, CellSizeClass.MEDIUM),
            (10.0, CellSizeClass.LARGE),
            (36.0, CellSizeClass.LARGE),
        ],
    )
    def test_classify(self, planner, area, expected):
        assert planner.classify(area) == expected

    def test_rejects_inverted_buckets(self):
        with pytest.raises(ValueError):
            CoveragePlanner(small_max_km2=10.0, medium_max_km2=1.0)


class TestPlan:
    """Test probe generation per size class."""

    @pytest.fixture
    def grid(self):
        return H3Grid()

    @pytest.fixture
    def planner(self, grid):
        return CoveragePlanner(grid)

    def test_small_cell_single_probe(self, planner, grid):
        cell = grid.point_to_cell(NYC[0], NYC[1], 8)

        plan = planner.plan(cell)

        assert plan.size_class == CellSizeClass.SMALL
        assert plan.probe_count == 1
        lat, lng = grid.cell_center(cell)
        assert plan.probe_points[0].latitude == pytest.approx(lat)
        assert plan.probe_points[0].longitude == pytest.approx(lng)

    def test_medium_cell_center_plus_fan(self, planner, grid, nyc_cell):
        plan = planner.plan(nyc_cell)

        assert plan.size_class == CellSizeClass.MEDIUM
        assert plan.probe_count == len(grid.cell_boundary(nyc_cell)) + 1
        assert plan.resolution == 7

    def test_large_cell_splits_triangles(self, planner, grid):
        cell = grid.point_to_cell(NYC[0], NYC[1], 6)

        plan = planner.plan(cell)

        assert plan.size_class == CellSizeClass.LARGE
        assert plan.probe_count == 4 * len(grid.cell_boundary(cell)) + 1

    def test_center_probe_comes_first(self, planner, grid, nyc_cell):
        plan = planner.plan(nyc_cell)
        lat, lng = grid.cell_center(nyc_cell)

        assert plan.probe_points[0].latitude == pytest.approx(lat)
        assert plan.probe_points[0].longitude == pytest.approx(lng)

    def test_radii_are_integers_above_minimum(self, planner, nyc_cell):
        plan = planner.plan(nyc_cell)

        assert all(isinstance(p.radius_meters, int) for p in plan.probe_points)
        assert all(p.radius_meters >= planner.min_radius_m for p in plan.probe_points)

    def test_plan_is_deterministic(self, planner, nyc_cell):
        assert planner.plan(nyc_cell) == planner.plan(nyc_cell)

    def test_invalid_cell(self, planner):
        with pytest.raises(GeometryError):
            planner.plan("zzz")


class TestCoverageCompleteness:
    """Every point of a cell lies inside at least one probe disc."""

    @pytest.fixture
    def grid(self):
        return H3Grid()

    @pytest.fixture
    def planner(self, grid):
        return CoveragePlanner(grid)

    @pytest.mark.parametrize("resolution", [6, 7, 8])
    @pytest.mark.parametrize("location", LOCATIONS)
    def test_random_points_are_covered(self, planner, grid, resolution, location):
        cell = grid.point_to_cell(location[0], location[1], resolution)
        plan = planner.plan(cell)

        points = _sample_points(grid.cell_polygon(cell), 300, seed=resolution)

        uncovered = [p for p in points if not _covered(plan, *p)]
        assert uncovered == []

    @pytest.mark.parametrize("resolution", [6, 7, 8])
    def test_vertices_are_covered(self, planner, grid, resolution):
        cell = grid.point_to_cell(NYC[0], NYC[1], resolution)

        plan = planner.plan(cell)

        assert validate_coverage(plan, grid.cell_boundary(cell))

    def test_validate_detects_gap(self, planner, grid, nyc_cell):
        plan = planner.plan(nyc_cell)
        shrunk = plan.model_copy(update={"probe_points": plan.probe_points[:1]})

        assert validate_coverage(shrunk, grid.cell_boundary(nyc_cell)) is False
