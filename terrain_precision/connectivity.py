"""
connectivity.py — Cube-Sphere Face Frames and Face Re-Projection
=================================================================

Face layout (axis of each face centre in model-local space):

  Face 0: -X      Face 3: +X
  Face 1: +Z      Face 4: -Z
  Face 2: +Y      Face 5: -Y

Opposite faces differ by 3.  Each face maps its internal direction
(a, b, c) = (1, u, v) to local XYZ through a signed permutation:

    (X, Y, Z) = FACE_MATRIX[face] @ (1, u, v)

u follows s and v follows t, both in [-1, 1] on the cube.

Re-projection of a coordinate onto another face picks the closest point
on that face.  For neighbouring faces this is a point on the shared edge,
so each target axis is one of:
    '0' = fixed at 0,  '1' = fixed at 1,
    's' = source s,    't' = source t
The table only depends on the source face parity and the cyclic face
distance (target - source) mod 6.
"""

import jax.numpy as jnp
import numpy as np

from .constants import FACE_COUNT


# ============================================================
# Face geometry: (X,Y,Z) = FACE_MATRIX[face] @ (1, u, v)
# ============================================================

FACE_MATRIX = [
    [[-1, 0, 0], [ 0, 0,-1], [ 0, 1, 0]],  # 0 -X: (-1,  -v,   u)
    [[ 0, 1, 0], [ 0, 0,-1], [ 1, 0, 0]],  # 1 +Z: ( u,  -v,   1)
    [[ 0, 1, 0], [ 1, 0, 0], [ 0, 0, 1]],  # 2 +Y: ( u,   1,   v)
    [[ 1, 0, 0], [ 0,-1, 0], [ 0, 0, 1]],  # 3 +X: ( 1,  -u,   v)
    [[ 0, 0, 1], [ 0,-1, 0], [-1, 0, 0]],  # 4 -Z: ( v,  -u,  -1)
    [[ 0, 0, 1], [-1, 0, 0], [ 0, 1, 0]],  # 5 -Y: ( v,  -1,   u)
]

FACE_MATRICES = jnp.array(FACE_MATRIX, dtype=jnp.float64)   # (6, 3, 3)


def check_face(face):
    """Raise ValueError unless every entry of face is a valid face index."""
    f = np.asarray(face)
    if f.size == 0 or np.any(f < 0) or np.any(f >= FACE_COUNT):
        raise ValueError(f"face must be 0-5, got {face}")


def face_axis(face):
    """Local unit vector through the centre of the face."""
    check_face(face)
    return np.array([row[0] for row in FACE_MATRIX[face]], dtype=np.float64)


# ============================================================
# 12 shared edges, derived from FACE_MATRIX
# ============================================================

def _edge_on(face, other):
    """
    Which boundary of `face` touches `other`.

    Returns:
        ('s' | 't', 0 | 1), or None for the face itself / its opposite
    """
    M = np.array(FACE_MATRIX[face], dtype=np.float64)
    r = M.T @ face_axis(other)
    if r[0] != 0:
        return None
    k = 1 if r[1] != 0 else 2
    return ('s' if k == 1 else 't', 1 if r[k] > 0 else 0)


def build_edges():
    """
    Shared-edge list (face_a, axis_a, value_a, face_b, axis_b, value_b).

    axis_a = value_a is the boundary of face_a touching face_b, e.g.
    (0, 's', 1, 1, 's', 0): s=1 on face 0 is s=0 on face 1.
    """
    edges = []
    for fa in range(FACE_COUNT):
        for fb in range(fa + 1, FACE_COUNT):
            ea = _edge_on(fa, fb)
            if ea is None:
                continue
            eb = _edge_on(fb, fa)
            edges.append((fa,) + ea + (fb,) + eb)
    return edges


EDGES = build_edges()


# ============================================================
# Face re-projection table
# ============================================================

# Indexed by (target - source) mod 6.
_EVEN_ROLES = [
    ('s', 't'),
    ('0', 't'),
    ('0', 's'),
    ('t', 's'),
    ('t', '0'),
    ('s', '0'),
]
_ODD_ROLES = [
    ('s', 't'),
    ('s', '1'),
    ('t', '1'),
    ('t', 's'),
    ('1', 's'),
    ('1', 't'),
]

PROJECTION_TABLE = [
    [(_EVEN_ROLES if source % 2 == 0 else _ODD_ROLES)[(target - source) % FACE_COUNT]
     for target in range(FACE_COUNT)]
    for source in range(FACE_COUNT)
]

_ROLE_CODE = {'0': 0, '1': 1, 's': 2, 't': 3}

# (6, 6, 2) integer version of PROJECTION_TABLE
PROJECTION_CODES = np.array(
    [[[_ROLE_CODE[r] for r in roles] for roles in row] for row in PROJECTION_TABLE],
    dtype=np.int32,
)


def project_st(face, st, target_face):
    """
    Closest st coordinate on target_face to the point (face, st).

    Args:
        face:        Source face index (int or integer array)
        st:          (..., 2) source st coordinates
        target_face: Target face index (int)

    Returns:
        (..., 2) st coordinates on target_face
    """
    check_face(face)
    check_face(target_face)
    st = jnp.asarray(st)
    roles = jnp.asarray(PROJECTION_CODES[np.asarray(face), target_face])
    s = st[..., 0:1]
    t = st[..., 1:2]
    return jnp.where(roles == 0, 0.0,
           jnp.where(roles == 1, 1.0,
           jnp.where(roles == 2, s, t))).astype(st.dtype)
