"""
terrain_precision — View-Relative Positions on a Cube-Sphere Planet
====================================================================

Tracks surface locations, the view and the planet transform in double
precision, and reconstructs view-relative vertex positions in single
precision through a per-face second-order Taylor expansion.

Modules:
    constants       — Warp constant, face count, WGS84 radii, default anchor LOD
    logging_config  — Package logger factory
    connectivity    — Face matrices, 12 shared cube edges, face re-projection table
    coordinates     — Warp (uv ↔ st), Coordinate, world ↔ cube-sphere mapping
    tiles           — Quadtree tile addressing
    model           — Ellipsoid placement and local ↔ world transforms
    approximation   — Per-face Taylor coefficients and position queries
    tracker         — Whole-snapshot publication of the current view approximation
    error_study     — Empirical error characterisation of the approximation
"""

import jax
jax.config.update("jax_enable_x64", True)

from .model import EllipsoidModel
from .coordinates import Coordinate
from .tiles import TileCoordinate, tile_count
from .approximation import (
    PrecisionContractError, SurfaceApproximation, ViewApproximation,
)
from .tracker import ViewTracker

__all__ = [
    "EllipsoidModel", "Coordinate", "TileCoordinate", "tile_count",
    "PrecisionContractError", "SurfaceApproximation", "ViewApproximation",
    "ViewTracker",
]
