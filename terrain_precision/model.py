"""
model.py — Ellipsoid Placement and Local ↔ World Transforms
=============================================================

The planet is the unit cube-sphere scaled per axis, rotated and moved
into world space:

    world = R @ diag(scale) @ local + position

Local Y is the polar axis, so an ellipsoid with equatorial radius a and
polar radius b has scale (a, b, a).  Both 4×4 transforms are built once
at construction and never change afterwards.
"""

import jax.numpy as jnp
import numpy as np


def rotation_matrix(latitude=0.0, longitude=0.0):
    """
    Rotation about local X by `latitude`, followed by rotation about
    world Y by `longitude` (radians).

    Returns:
        (3, 3) float64 rotation matrix
    """
    cl, sl = np.cos(latitude), np.sin(latitude)
    co, so = np.cos(longitude), np.sin(longitude)
    Rx = np.array([[1.0, 0.0, 0.0],
                   [0.0,  cl, -sl],
                   [0.0,  sl,  cl]])
    Ry = np.array([[ co, 0.0,  so],
                   [0.0, 1.0, 0.0],
                   [-so, 0.0,  co]])
    return Ry @ Rx


def _normalize(v):
    """Normalize along the last axis; zero vectors stay zero."""
    n = jnp.linalg.norm(v, axis=-1, keepdims=True)
    return jnp.where(n > 0.0, v / jnp.where(n > 0.0, n, 1.0), 0.0)


class EllipsoidModel:
    """Placement and shape of the planet in world space."""

    def __init__(self, position, scale, rotation=None):
        """
        Args:
            position: (3,) world position of the planet centre
            scale:    (3,) semi-axis lengths along local X, Y, Z
            rotation: (3, 3) rotation matrix, identity if None

        Raises:
            ValueError: non-finite parameters, non-positive axis length,
                        or a rotation that is not orthonormal
        """
        position = np.asarray(position, dtype=np.float64)
        scale = np.asarray(scale, dtype=np.float64)
        rotation = np.eye(3) if rotation is None else np.asarray(rotation, dtype=np.float64)

        if position.shape != (3,) or scale.shape != (3,) or rotation.shape != (3, 3):
            raise ValueError(
                f"expected position (3,), scale (3,), rotation (3, 3); got "
                f"{position.shape}, {scale.shape}, {rotation.shape}")
        if not (np.all(np.isfinite(position)) and np.all(np.isfinite(scale))
                and np.all(np.isfinite(rotation))):
            raise ValueError("ellipsoid parameters must be finite")
        if np.any(scale <= 0.0):
            raise ValueError(f"ellipsoid axis lengths must be positive, got {scale}")
        if np.max(np.abs(rotation.T @ rotation - np.eye(3))) > 1e-9:
            raise ValueError("rotation matrix is not orthonormal")

        world_from_local = np.eye(4)
        world_from_local[:3, :3] = rotation @ np.diag(scale)
        world_from_local[:3, 3] = position

        self.position = jnp.asarray(position)
        self.axes = jnp.asarray(scale)
        self.rotation = jnp.asarray(rotation)
        self.world_from_local = jnp.asarray(world_from_local)
        self.local_from_world = jnp.asarray(np.linalg.inv(world_from_local))

    # ============================================================
    # Constructors
    # ============================================================

    @classmethod
    def new(cls, position, major_axis, minor_axis):
        """Axis-aligned ellipsoid with equatorial `major_axis` and polar `minor_axis`."""
        return cls(position, (major_axis, minor_axis, major_axis))

    @classmethod
    def ellipsoid(cls, position, major_axis, minor_axis, latitude=0.0, longitude=0.0):
        """Ellipsoid tilted by `latitude` and turned by `longitude` (radians)."""
        return cls(position, (major_axis, minor_axis, major_axis),
                   rotation_matrix(latitude, longitude))

    @classmethod
    def sphere(cls, position, radius, latitude=0.0, longitude=0.0):
        return cls.ellipsoid(position, radius, radius, latitude, longitude)

    # ============================================================
    # Transforms
    # ============================================================

    def local_to_world(self, local_position):
        """(..., 3) local points → world points."""
        M = self.world_from_local
        return jnp.asarray(local_position) @ M[:3, :3].T + M[:3, 3]

    def world_to_local(self, world_position):
        """(..., 3) world points → unit directions in local space."""
        M = self.local_from_world
        local = jnp.asarray(world_position) @ M[:3, :3].T + M[:3, 3]
        return _normalize(local)

    def local_to_world_normal(self, local_direction):
        """(..., 3) local directions → unit world directions (no translation)."""
        M = self.world_from_local
        return _normalize(jnp.asarray(local_direction) @ M[:3, :3].T)

    def scale(self):
        """Mean of equatorial and polar radius; used for tolerances only."""
        return float(self.axes[0] + self.axes[1]) / 2.0

    def __repr__(self):
        return (f"EllipsoidModel(position={np.asarray(self.position).tolist()}, "
                f"axes={np.asarray(self.axes).tolist()})")
