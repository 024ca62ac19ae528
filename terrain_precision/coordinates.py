"""
coordinates.py — Cube-Sphere Coordinates and the uv ↔ st Warp
===============================================================

A location on the planet surface is a face index plus a face-local
coordinate.  Two face-local parametrisations are used:

    uv ∈ [-1, 1]²   spaced equally on the cube face
    st ∈ [ 0, 1]²   spaced (nearly) equally on the sphere

They are related by an algebraic sigmoid with a single constant k = C_SQR:

    st = 0.5 · uv √((1 + k) / (1 + k·uv²)) + 0.5
    uv = w / √(1 + k − k·w²),   w = 2·st − 1

Face selection uses the dominant local axis.  Ties are broken by a fixed
precedence: X wins only when strictly larger than both Y and Z, Z wins
when strictly larger than Y, otherwise Y wins.  The centre of the body
(zero direction) therefore lands on face 5 at st = (0.5, 0.5).
"""

from typing import NamedTuple

import jax.numpy as jnp
import numpy as np

from .constants import C_SQR
from .connectivity import FACE_MATRICES, check_face, project_st


# ============================================================
# Warp between cube spacing (uv) and sphere spacing (st)
# ============================================================

def warp_to_sphere(uv):
    """uv in [-1,1] → st in [0,1] (elementwise)."""
    w = uv * jnp.sqrt((1.0 + C_SQR) / (1.0 + C_SQR * uv * uv))
    return 0.5 * w + 0.5


def warp_to_cube(st):
    """st in [0,1] → uv in [-1,1] (elementwise)."""
    w = (st - 0.5) / 0.5
    return w / jnp.sqrt(1.0 + C_SQR - C_SQR * w * w)


def warp_derivatives(s):
    """
    Inverse warp u(s) and its first two derivatives.

        D(s)    = √(1 − 4k·s(s − 1))
        u(s)    = (2s − 1) / D
        u'(s)   = 2(k + 1) / D³
        u''(s)  = 12k(k + 1)(2s − 1) / D⁵

    Returns:
        u, du/ds, d²u/ds²
    """
    D = jnp.sqrt(1.0 - 4.0 * C_SQR * s * (s - 1.0))
    u = (2.0 * s - 1.0) / D
    u_ds = 2.0 * (C_SQR + 1.0) / D**3
    u_dss = 12.0 * C_SQR * (C_SQR + 1.0) * (2.0 * s - 1.0) / D**5
    return u, u_ds, u_dss


# ============================================================
# Local direction ↔ (face, uv)
# ============================================================

def select_face(local_position):
    """
    Face index for (..., 3) local directions by dominant axis.

    Returns:
        Integer array of shape (...)
    """
    x = local_position[..., 0]
    y = local_position[..., 1]
    z = local_position[..., 2]
    ax, ay, az = jnp.abs(x), jnp.abs(y), jnp.abs(z)

    x_dominant = (ax > ay) & (ax > az)
    z_dominant = az > ay
    return jnp.where(x_dominant, jnp.where(x < 0.0, 0, 3),
           jnp.where(z_dominant, jnp.where(z > 0.0, 1, 4),
                                 jnp.where(y > 0.0, 2, 5)))


def local_to_face_uv(local_position):
    """
    Split (..., 3) local directions into face index and uv.

    Uses the transpose of the face matrix: (a, b, c) ∝ FACE_MATRIX^T @ n,
    u = b / a, v = c / a.
    """
    local_position = jnp.asarray(local_position)
    face = select_face(local_position)
    M = FACE_MATRICES[face]
    abc = (jnp.swapaxes(M, -1, -2) @ local_position[..., None])[..., 0]
    a = abc[..., 0:1]
    safe_a = jnp.where(a > 0.0, a, 1.0)
    uv = jnp.where(a > 0.0, abc[..., 1:] / safe_a, 0.0)
    return face, uv


def face_uv_to_local(face, uv):
    """(face, (..., 2) uv) → (..., 3) unit local directions."""
    uv = jnp.asarray(uv)
    abc = jnp.concatenate([jnp.ones_like(uv[..., 0:1]), uv], axis=-1)
    local = (FACE_MATRICES[jnp.asarray(face)] @ abc[..., None])[..., 0]
    return local / jnp.linalg.norm(local, axis=-1, keepdims=True)


# ============================================================
# Coordinate
# ============================================================

class Coordinate(NamedTuple):
    """Location on the unit cube-sphere: face index and st ∈ [0,1]²."""
    face: jnp.ndarray   # int or integer array (...)
    st: jnp.ndarray     # (..., 2) float64

    @classmethod
    def from_world_position(cls, world_position, model):
        """
        Coordinate of the surface point below (..., 3) world positions.

        Args:
            world_position: (..., 3) float64 world positions
            model:          EllipsoidModel

        Returns:
            Coordinate with face (...) and st (..., 2)
        """
        local = model.world_to_local(world_position)
        face, uv = local_to_face_uv(local)
        return cls(face, warp_to_sphere(uv))

    def world_position(self, model, height=0.0):
        """
        World position of the coordinate, lifted by `height` along the
        transformed local direction.

        Returns:
            (..., 3) float64 world positions
        """
        check_face(self.face)
        local = face_uv_to_local(self.face, warp_to_cube(jnp.asarray(self.st)))
        world = model.local_to_world(local)
        if np.all(np.asarray(height) == 0.0):
            return world
        normal = model.local_to_world_normal(local)
        return world + jnp.asarray(height)[..., None] * normal

    def project_to_face(self, face):
        """Closest coordinate on `face`; identity for the own face."""
        return Coordinate(face, project_st(self.face, self.st, face))
