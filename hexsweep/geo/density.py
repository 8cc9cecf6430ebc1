"""Density detection and subdivision.

A probe can return at most ``max_results_per_probe`` businesses, so a cell
whose merged count reaches that ceiling, or one of whose probes was cut off
at that ceiling, may be hiding more. Such a cell is split into its H3
children, which are processed as independent work items.
At the maximum resolution the split is refused and the cell is terminal
``dense``.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from hexsweep.core.exceptions import SubdivisionLimitError
from hexsweep.geo.h3_grid import H3Grid
from hexsweep.models.schemas import CellStatus

logger = structlog.get_logger(__name__)

DEFAULT_SATURATION_THRESHOLD = 240
DEFAULT_MAX_RESOLUTION = 10


@dataclass
class DensityDecision:
    status: CellStatus
    child_cell_ids: list[str] = field(default_factory=list)


class DensityDetector:
    """Classifies merged cell results and subdivides saturated cells."""

    def __init__(
        self,
        grid: Optional[H3Grid] = None,
        saturation_threshold: int = DEFAULT_SATURATION_THRESHOLD,
        max_resolution: int = DEFAULT_MAX_RESOLUTION,
    ) -> None:
        if saturation_threshold < 1:
            raise ValueError("saturation_threshold must be positive")
        self.grid = grid or H3Grid()
        self.saturation_threshold = saturation_threshold
        self.max_resolution = max_resolution

    def is_dense(self, business_count: int) -> bool:
        return business_count >= self.saturation_threshold

    def can_subdivide(self, resolution: int) -> bool:
        return resolution < self.max_resolution

    def subdivide(
        self,
        cell_id: str,
        from_resolution: Optional[int] = None,
        to_resolution: Optional[int] = None,
    ) -> list[str]:
        """Children of ``cell_id`` one level down (or at ``to_resolution``)."""
        current = from_resolution if from_resolution is not None else self.grid.resolution(cell_id)
        target = to_resolution if to_resolution is not None else current + 1

        if target > self.max_resolution:
            raise SubdivisionLimitError(cell_id, target, self.max_resolution)

        return self.grid.subdivide_cell(cell_id, target)

    def decide(
        self,
        cell_id: str,
        resolution: int,
        business_count: int,
        saturated: bool = False,
    ) -> DensityDecision:
        """
        Classify a searched cell.

        ``saturated`` is set when some probe ran into the per-probe result
        cap. Its circle may reach past the cell, so the in-cell count alone
        can stay under the threshold while results were still cut off.
        """
        if not saturated and not self.is_dense(business_count):
            return DensityDecision(status=CellStatus.FETCHED)

        if not self.can_subdivide(resolution):
            logger.warning(
                "cell_dense_at_max_resolution",
                cell_id=cell_id,
                resolution=resolution,
                business_count=business_count,
                saturated=saturated,
            )
            return DensityDecision(status=CellStatus.DENSE)

        children = self.subdivide(cell_id, from_resolution=resolution)
        logger.info(
            "cell_split",
            cell_id=cell_id,
            resolution=resolution,
            business_count=business_count,
            saturated=saturated,
            child_count=len(children),
        )
        return DensityDecision(status=CellStatus.SPLIT, child_cell_ids=children)
