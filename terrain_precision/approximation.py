"""
approximation.py — View-Relative Position Approximation
=========================================================

For each of the six faces, the function

    f(s, t) = world_position(face, view_st + (s, t)) − view_position

is expanded into a second-order Taylor series around the view's projection
onto that face:

    f(s, t) ≈ c + c_du·s + c_dv·t + c_duu·s² + c_duv·s·t + c_dvv·t²

(c_duu and c_dvv carry the factor ½).  The coefficients are computed once
per view update in float64 and stored in float32; evaluating the series
needs only float32 multiply-adds and never touches absolute world
coordinates.

The local direction on a face is d(s,t) = FACE_MATRIX @ (1, u, v) / l with
u = u(s), v = v(t) from the inverse warp and l = √(1 + u² + v²).  Writing
(a, b, c) for the numerators,

    ∂d   = FACE_MATRIX @ (a', b', c') / l²
    ∂²d  = FACE_MATRIX @ (a'', b'', c'') / l³

Sample positions are addressed relative to an anchor ("origin") tile at
anchor_lod: the tile of that LOD closest to the view.  The integer offset
between a tile and the origin tile is exact, which keeps relative st
accurate even at LODs where absolute st no longer fits in float32.

Operating envelope: the Taylor remainder grows with the cube of the
sample distance from the view.  For an Earth-sized body, anchor_lod 10 and
samples within 0.001 × radius (≈ 6.4 km) the error stays near 1 cm; at
0.005 × radius (≈ 30 km) it reaches the ~2 m error of a plain float32
computation.  Moving the view without recomputing degrades accuracy
silently.
"""

from typing import NamedTuple, Tuple

import jax
import jax.numpy as jnp
import numpy as np

from .constants import FACE_COUNT
from .connectivity import FACE_MATRICES
from .coordinates import Coordinate, warp_derivatives
from .logging_config import get_logger
from .tiles import tile_count

logger = get_logger(__name__)


class PrecisionContractError(ValueError):
    """A tile coarser than the anchor LOD was passed to the integer fast path."""

    def __init__(self, lod, anchor_lod):
        self.lod = lod
        self.anchor_lod = anchor_lod
        super().__init__(
            f"tile lod {lod} is smaller than the anchor lod {anchor_lod}; "
            f"the integer tile offset is undefined")


class SurfaceApproximation(NamedTuple):
    """Taylor expansion of the view-relative position on one face."""
    view_st: jnp.ndarray            # (2,) float64, view projected to this face
    origin_xy: jnp.ndarray          # (2,) int64, origin tile index at anchor_lod
    origin_st: jnp.ndarray          # (2,) float64, origin tile corner
    delta_relative_st: jnp.ndarray  # (2,) float32, origin_st - view_st
    c: jnp.ndarray                  # (3,) float32 constant term
    c_du: jnp.ndarray               # (3,) float32 ∂/∂s
    c_dv: jnp.ndarray               # (3,) float32 ∂/∂t
    c_duu: jnp.ndarray              # (3,) float32 ½ ∂²/∂s²
    c_duv: jnp.ndarray              # (3,) float32 ∂²/∂s∂t
    c_dvv: jnp.ndarray              # (3,) float32 ½ ∂²/∂t²


# ============================================================
# Taylor coefficients (float64)
# ============================================================

@jax.jit
def taylor_terms(st, face_matrix, world_from_local):
    """
    World position on the surface and its partials at st.

    Args:
        st:               (2,) float64 face coordinate
        face_matrix:      (3, 3) FACE_MATRIX of the face
        world_from_local: (4, 4) model transform

    Returns:
        p, p_ds, p_dt, p_dss, p_dst, p_dtt: (3,) float64 each;
        p is a world point, the partials are world directions
    """
    s, t = st[0], st[1]
    u, u_ds, u_dss = warp_derivatives(s)
    v, v_dt, v_dtt = warp_derivatives(t)

    l = jnp.sqrt(1.0 + u * u + v * v)
    l_ds = u * u_ds / l
    l_dt = v * v_dt / l
    l_dss = (u * u_dss * l * l + (v * v + 1.0) * u_ds * u_ds) / l**3
    l_dst = -(u * v * u_ds * v_dt) / l**3
    l_dtt = (v * v_dtt * l * l + (u * u + 1.0) * v_dt * v_dt) / l**3

    a = 1.0
    a_ds = -l_ds
    a_dt = -l_dt
    a_dss = 2.0 * l_ds * l_ds - l * l_dss
    a_dst = 2.0 * l_ds * l_dt - l * l_dst
    a_dtt = 2.0 * l_dt * l_dt - l * l_dtt

    b = u
    b_ds = -u * l_ds + l * u_ds
    b_dt = -u * l_dt
    b_dss = 2.0 * u * l_ds * l_ds - l * (2.0 * u_ds * l_ds + u * l_dss) + u_dss * l * l
    b_dst = 2.0 * u * l_ds * l_dt - l * (u_ds * l_dt + u * l_dst)
    b_dtt = 2.0 * u * l_dt * l_dt - l * u * l_dtt

    c = v
    c_ds = -v * l_ds
    c_dt = -v * l_dt + l * v_dt
    c_dss = 2.0 * v * l_ds * l_ds - l * v * l_dss
    c_dst = 2.0 * v * l_ds * l_dt - l * (v_dt * l_ds + v * l_dst)
    c_dtt = 2.0 * v * l_dt * l_dt - l * (2.0 * v_dt * l_dt + v * l_dtt) + v_dtt * l * l

    # points take the translation, derivatives are directions
    linear = world_from_local[:3, :3] @ face_matrix
    translation = world_from_local[:3, 3]

    def direction(x, y, z, power):
        return linear @ jnp.stack([jnp.asarray(x, dtype=s.dtype), y, z]) / l**power

    p = direction(a, b, c, 1) + translation
    p_ds = direction(a_ds, b_ds, c_ds, 2)
    p_dt = direction(a_dt, b_dt, c_dt, 2)
    p_dss = direction(a_dss, b_dss, c_dss, 3)
    p_dst = direction(a_dst, b_dst, c_dst, 3)
    p_dtt = direction(a_dtt, b_dtt, c_dtt, 3)
    return p, p_ds, p_dt, p_dss, p_dst, p_dtt


def origin_coordinate(coordinate, anchor_lod):
    """Corner of the anchor_lod tile grid closest to `coordinate`."""
    count = tile_count(anchor_lod)
    return Coordinate(coordinate.face, jnp.round(coordinate.st * count) / count)


def approximate_face(face, view_coordinate, origin, model, view_position, anchor_lod):
    """SurfaceApproximation of one face; pure function of its arguments."""
    view_st = view_coordinate.project_to_face(face).st
    origin_st = origin.project_to_face(face).st
    # origin_st is a multiple of 1 / tile_count, so rounding is exact
    origin_xy = jnp.round(origin_st * tile_count(anchor_lod)).astype(jnp.int64)

    p, p_ds, p_dt, p_dss, p_dst, p_dtt = taylor_terms(
        view_st, FACE_MATRICES[face], model.world_from_local)

    f32 = jnp.float32
    return SurfaceApproximation(
        view_st=view_st,
        origin_xy=origin_xy,
        origin_st=origin_st,
        delta_relative_st=(origin_st - view_st).astype(f32),
        c=(p - view_position).astype(f32),
        c_du=p_ds.astype(f32),
        c_dv=p_dt.astype(f32),
        c_duu=(p_dss / 2.0).astype(f32),
        c_duv=p_dst.astype(f32),
        c_dvv=(p_dtt / 2.0).astype(f32),
    )


# ============================================================
# View approximation snapshot
# ============================================================

class ViewApproximation(NamedTuple):
    """
    Per-frame snapshot: view, anchor LOD and one SurfaceApproximation
    per face.  `stacked` holds the same fields as (6, ...) arrays so
    queries gather per-vertex parameters with one index.  Read-only once
    computed; queries may run concurrently.
    """
    view_position: jnp.ndarray          # (3,) float64
    view_coordinate: Coordinate
    model: object                       # EllipsoidModel
    anchor_lod: int
    faces: Tuple[SurfaceApproximation, ...]
    stacked: SurfaceApproximation

    @classmethod
    def compute(cls, model, view_position, anchor_lod):
        """
        Build the snapshot for a view.

        Args:
            model:         EllipsoidModel
            view_position: (3,) world position of the view (float64)
            anchor_lod:    LOD of the origin tile

        Returns:
            ViewApproximation
        """
        if anchor_lod < 0:
            raise ValueError(f"anchor_lod must be non-negative, got {anchor_lod}")
        view_position = jnp.asarray(view_position, dtype=jnp.float64)
        view_coordinate = Coordinate.from_world_position(view_position, model)
        origin = origin_coordinate(view_coordinate, anchor_lod)

        faces = tuple(
            approximate_face(face, view_coordinate, origin, model, view_position, anchor_lod)
            for face in range(FACE_COUNT)
        )

        logger.debug(
            f"View approximation: face {int(view_coordinate.face)}, "
            f"st ({float(view_coordinate.st[0]):.9f}, {float(view_coordinate.st[1]):.9f}), "
            f"anchor lod {anchor_lod}")

        stacked = SurfaceApproximation(*(jnp.stack(field) for field in zip(*faces)))
        return cls(view_position, view_coordinate, model, anchor_lod, faces, stacked)

    def _face_parameter(self, name, face):
        """Field `name` of the face approximation(s) selected by `face`."""
        return getattr(self.stacked, name)[jnp.asarray(face)]

    # ============================================================
    # Relative st
    # ============================================================

    def relative_st(self, tile, vertex_offset):
        """
        st of a vertex relative to the origin tile, computed in float64.

        Reference path; loses precision once tile indices get large.

        Returns:
            (..., 2) float32
        """
        count = tile_count(tile.lod)
        origin_st = self._face_parameter('origin_st', tile.face)
        st = tile.xy.astype(jnp.float64) + jnp.asarray(vertex_offset, dtype=jnp.float64)
        return ((st - origin_st * count) / count).astype(jnp.float32)

    def approximate_relative_st(self, tile, vertex_offset):
        """
        st of a vertex relative to the origin tile, using integer tile
        offsets aligned by a left shift.

        Raises:
            PrecisionContractError: tile.lod < anchor_lod

        Returns:
            (..., 2) float32
        """
        lod_difference = tile.lod - self.anchor_lod
        if np.any(np.asarray(lod_difference) < 0):
            logger.warning(
                f"Rejected tile at lod {tile.lod} below anchor lod {self.anchor_lod}")
            raise PrecisionContractError(tile.lod, self.anchor_lod)

        origin_xy = self._face_parameter('origin_xy', tile.face)
        tile_offset = tile.xy - jnp.left_shift(origin_xy, lod_difference)

        f32 = jnp.float32
        return (tile_offset.astype(f32) + jnp.asarray(vertex_offset, dtype=f32)) \
            / f32(tile_count(tile.lod))

    # ============================================================
    # Relative position
    # ============================================================

    def relative_position(self, relative_st, face):
        """
        Exact view-relative world position of a relative st (float64).

        Returns:
            (..., 3) float64
        """
        origin_st = self._face_parameter('origin_st', face)
        st = origin_st + jnp.asarray(relative_st, dtype=jnp.float64)
        return Coordinate(face, st).world_position(self.model) - self.view_position

    def approximate_relative_position(self, relative_st, face, second_order=True):
        """
        Taylor-series view-relative world position, float32 only.

        Args:
            relative_st:  (..., 2) st relative to the origin tile
            face:         Face index (int or integer array (...))
            second_order: Include the quadratic terms

        Returns:
            (..., 3) float32
        """
        f32 = jnp.float32
        st = jnp.asarray(relative_st, dtype=f32) \
            + self._face_parameter('delta_relative_st', face)
        s = st[..., 0:1]
        t = st[..., 1:2]

        c = self._face_parameter('c', face)
        c_du = self._face_parameter('c_du', face)
        c_dv = self._face_parameter('c_dv', face)
        result = c + c_du * s + c_dv * t
        if not second_order:
            return result

        c_duu = self._face_parameter('c_duu', face)
        c_duv = self._face_parameter('c_duv', face)
        c_dvv = self._face_parameter('c_dvv', face)
        return result + c_duu * s * s + c_duv * s * t + c_dvv * t * t
