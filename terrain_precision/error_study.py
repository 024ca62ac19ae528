"""
error_study.py — Empirical Error of the View-Relative Approximation
=====================================================================

Samples random views and random surface points around each view and
measures the world-space error of four ways to obtain a surface position:

    first_order   c + c_du·s + c_dv·t                     (float32)
    second_order  full Taylor series                      (float32)
    float32       warp, face matrix and model transform   (float32)
    cast          exact float64 position rounded to float32

Typical result for an Earth-sized ellipsoid, anchor LOD 10 and samples
within 0.001 × radius: second order ≈ 1 cm at the maximum, plain float32
around a metre.
"""

from typing import NamedTuple

import jax.numpy as jnp
import numpy as np

from .approximation import ViewApproximation
from .connectivity import FACE_MATRICES
from .constants import (
    DEFAULT_ANCHOR_LOD, EARTH_EQUATORIAL_RADIUS, EARTH_POLAR_RADIUS, FACE_COUNT,
)
from .coordinates import Coordinate, warp_to_cube
from .logging_config import get_logger
from .model import EllipsoidModel
from .tiles import TileCoordinate, tile_count

logger = get_logger(__name__)


class ErrorStudyConfig(NamedTuple):
    """Sampling parameters of an error study."""
    view_samples: int = 10000
    surface_samples: int = 100
    anchor_lod: int = DEFAULT_ANCHOR_LOD
    threshold_factor: float = 0.001   # sample radius / model.scale()
    seed: int = 0


class ErrorStats(NamedTuple):
    mean: float
    max: float


class ErrorReport(NamedTuple):
    """Errors in metres, aggregated over all samples."""
    threshold: float
    anchor_lod: int
    first_order: ErrorStats
    second_order: ErrorStats
    float32: ErrorStats
    cast: ErrorStats
    view_positions: np.ndarray      # (V, 3)
    view_max_errors: np.ndarray     # (V,) max second-order error per view


# ============================================================
# Sampling
# ============================================================

def random_view_position(rng, model, max_height):
    """View at a random face, st and height in [0, max_height)."""
    coordinate = Coordinate(int(rng.integers(FACE_COUNT)), jnp.asarray(rng.random(2)))
    return coordinate.world_position(model, rng.uniform(0.0, max_height))


def random_surface_positions(rng, model, threshold, view_position, n):
    """
    n surface points below random offsets of length < threshold from the view.

    Returns:
        (n, 3) float64 world positions on the surface
    """
    directions = rng.uniform(-1.0, 1.0, size=(n, 3))
    directions /= np.linalg.norm(directions, axis=-1, keepdims=True)
    radii = rng.random(n)[:, None] * threshold
    offsets = np.asarray(view_position)[None, :] + radii * directions
    return model.local_to_world(model.world_to_local(jnp.asarray(offsets)))


# ============================================================
# Reference paths
# ============================================================

def float32_world_position(tile, vertex_offset, model):
    """
    World position of a tile vertex computed entirely in float32.

    Returns:
        (..., 3) float64 (the float32 result, widened)
    """
    f32 = jnp.float32
    st = (tile.xy.astype(f32) + jnp.asarray(vertex_offset, dtype=f32)) / f32(tile_count(tile.lod))
    uv = warp_to_cube(st)

    abc = jnp.concatenate([jnp.ones_like(uv[..., 0:1]), uv], axis=-1)
    M_face = FACE_MATRICES.astype(f32)[jnp.asarray(tile.face)]
    local = (M_face @ abc[..., None])[..., 0]
    local = local / jnp.linalg.norm(local, axis=-1, keepdims=True)

    M = model.world_from_local.astype(f32)
    return (local @ M[:3, :3].T + M[:3, 3]).astype(jnp.float64)


def _distance(a, b):
    return np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64), axis=-1)


def measure_view(model, view_position, surface_positions, anchor_lod, tile_lod=None):
    """
    Per-sample errors of all four methods for one view.

    Returns:
        dict of (n,) error arrays keyed by method name
    """
    tile_lod = anchor_lod if tile_lod is None else tile_lod
    approximation = ViewApproximation.compute(model, view_position, anchor_lod)
    tile, offset = TileCoordinate.from_world_position(surface_positions, tile_lod, model)

    relative_st = approximation.approximate_relative_st(tile, offset)
    first = approximation.approximate_relative_position(relative_st, tile.face, second_order=False)
    second = approximation.approximate_relative_position(relative_st, tile.face)

    view = np.asarray(view_position, dtype=np.float64)
    surface = np.asarray(surface_positions, dtype=np.float64)
    return {
        'first_order': _distance(surface, view + np.asarray(first, dtype=np.float64)),
        'second_order': _distance(surface, view + np.asarray(second, dtype=np.float64)),
        'float32': _distance(surface, float32_world_position(tile, offset, model)),
        'cast': _distance(surface, surface.astype(np.float32)),
    }


# ============================================================
# Studies
# ============================================================

def run_error_study(model, config=ErrorStudyConfig()):
    """
    Error statistics over config.view_samples random views.

    Returns:
        ErrorReport
    """
    rng = np.random.default_rng(config.seed)
    threshold = config.threshold_factor * model.scale()

    errors = {name: [] for name in ('first_order', 'second_order', 'float32', 'cast')}
    view_positions = []
    view_max_errors = []

    for _ in range(config.view_samples):
        view_position = random_view_position(rng, model, threshold)
        surface = random_surface_positions(rng, model, threshold, view_position,
                                           config.surface_samples)
        view_errors = measure_view(model, view_position, surface, config.anchor_lod)

        for name, values in view_errors.items():
            errors[name].append(values)
        view_positions.append(np.asarray(view_position))
        view_max_errors.append(float(np.max(view_errors['second_order'])))

    stats = {}
    for name, chunks in errors.items():
        values = np.concatenate(chunks)
        stats[name] = ErrorStats(float(np.mean(values)), float(np.max(values)))

    logger.info(
        f"Sample distance {threshold:.4f} m ({config.threshold_factor} x scale), "
        f"anchor lod {config.anchor_lod}")
    for name, s in stats.items():
        logger.info(f"{name:>12s}: mean {s.mean:.4f} m, max {s.max:.4f} m")

    return ErrorReport(
        threshold=threshold,
        anchor_lod=config.anchor_lod,
        first_order=stats['first_order'],
        second_order=stats['second_order'],
        float32=stats['float32'],
        cast=stats['cast'],
        view_positions=np.array(view_positions),
        view_max_errors=np.array(view_max_errors),
    )


def error_bound_scenario(view_samples=16, surface_samples=64, anchor_lod=10,
                         height=1000.0, threshold_factor=0.001, seed=0):
    """
    Maximum |approximate_relative_position − relative_position| for views
    `height` above a WGS84 ellipsoid, sampling within
    threshold_factor × scale() of the view.

    Returns:
        float, metres
    """
    model = EllipsoidModel.new((0.0, 0.0, 0.0), EARTH_EQUATORIAL_RADIUS, EARTH_POLAR_RADIUS)
    rng = np.random.default_rng(seed)
    threshold = threshold_factor * model.scale()

    max_error = 0.0
    for _ in range(view_samples):
        coordinate = Coordinate(int(rng.integers(FACE_COUNT)), jnp.asarray(rng.random(2)))
        view_position = coordinate.world_position(model, height)
        surface = random_surface_positions(rng, model, threshold, view_position, surface_samples)

        approximation = ViewApproximation.compute(model, view_position, anchor_lod)
        tile, offset = TileCoordinate.from_world_position(surface, anchor_lod, model)
        relative_st = approximation.approximate_relative_st(tile, offset)

        exact = approximation.relative_position(relative_st, tile.face)
        approximate = approximation.approximate_relative_position(relative_st, tile.face)
        max_error = max(max_error, float(np.max(_distance(exact, approximate))))

    logger.info(f"Error bound scenario: max error {max_error:.6f} m "
                f"within {threshold:.1f} m at anchor lod {anchor_lod}")
    return max_error
