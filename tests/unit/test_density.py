"""Unit tests for density detection and subdivision."""

import h3
import pytest

from hexsweep.core.exceptions import SubdivisionLimitError
from hexsweep.geo.density import DensityDetector
from hexsweep.models.schemas import CellStatus
from tests.helpers import NYC


class TestDensityDetector:
    """Test split decisions."""

    @pytest.fixture
    def detector(self, grid):
        return DensityDetector(grid, saturation_threshold=240, max_resolution=10)

    def test_threshold_is_inclusive(self, detector):
        assert detector.is_dense(239) is False
        assert detector.is_dense(240) is True

    def test_below_threshold_is_fetched(self, detector, nyc_cell):
        decision = detector.decide(nyc_cell, 7, 120)

        assert decision.status == CellStatus.FETCHED
        assert decision.child_cell_ids == []

    def test_dense_cell_splits_into_children(self, detector, nyc_cell):
        decision = detector.decide(nyc_cell, 7, 240)

        assert decision.status == CellStatus.SPLIT
        assert len(decision.child_cell_ids) == 7
        assert all(h3.get_resolution(c) == 8 for c in decision.child_cell_ids)

    def test_saturated_probe_splits_below_threshold(self, detector, nyc_cell):
        decision = detector.decide(nyc_cell, 7, 12, saturated=True)

        assert decision.status == CellStatus.SPLIT
        assert len(decision.child_cell_ids) == 7

    def test_saturated_probe_at_max_resolution(self, detector, grid):
        cell = grid.point_to_cell(NYC[0], NYC[1], 10)

        assert detector.decide(cell, 10, 12, saturated=True).status == CellStatus.DENSE

    def test_dense_at_max_resolution(self, detector, grid):
        cell = grid.point_to_cell(NYC[0], NYC[1], 10)

        decision = detector.decide(cell, 10, 500)

        assert decision.status == CellStatus.DENSE
        assert decision.child_cell_ids == []

    def test_subdivide_past_max_raises(self, detector, grid):
        cell = grid.point_to_cell(NYC[0], NYC[1], 10)

        with pytest.raises(SubdivisionLimitError) as exc_info:
            detector.subdivide(cell)

        assert exc_info.value.resolution == 11
        assert exc_info.value.max_resolution == 10

    def test_subdivide_to_explicit_resolution(self, detector, nyc_cell):
        children = detector.subdivide(nyc_cell, to_resolution=9)

        assert len(children) == 49

    def test_rejects_non_positive_threshold(self):
        with pytest.raises(ValueError):
            DensityDetector(saturation_threshold=0)
