"""
Geometry layer.

- H3Grid: cell ids, boundaries, polygon tiling and subdivision
- CoveragePlanner: probe points that cover a cell
- DensityDetector: saturation check and split decisions
"""

from hexsweep.geo.coverage import CoveragePlanner, validate_coverage
from hexsweep.geo.density import DensityDecision, DensityDetector
from hexsweep.geo.distance import haversine_meters
from hexsweep.geo.h3_grid import H3Grid

__all__ = [
    "CoveragePlanner",
    "DensityDecision",
    "DensityDetector",
    "H3Grid",
    "haversine_meters",
    "validate_coverage",
]
