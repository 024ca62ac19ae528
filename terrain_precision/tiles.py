"""
tiles.py — Quadtree Tile Addressing
====================================

Each face is split into tile_count(lod) × tile_count(lod) tiles at a given
level of detail.  A tile plus an in-tile vertex offset in [0,1)² resolves
to the st coordinate

    st = (xy + offset) / tile_count(lod)
"""

from typing import NamedTuple

import jax.numpy as jnp
import numpy as np

from .coordinates import Coordinate


def tile_count(lod):
    """Number of tiles along one face edge at `lod`."""
    if np.any(np.asarray(lod) < 0):
        raise ValueError(f"lod must be non-negative, got {lod}")
    return 1 << lod


class TileCoordinate(NamedTuple):
    """One quadtree cell: face, lod and integer tile index (x, y)."""
    face: jnp.ndarray   # int or integer array (...)
    lod: int
    x: jnp.ndarray      # int or integer array (...)
    y: jnp.ndarray

    @property
    def xy(self):
        """(..., 2) int64 tile index."""
        return jnp.stack([jnp.asarray(self.x, dtype=jnp.int64),
                          jnp.asarray(self.y, dtype=jnp.int64)], axis=-1)

    @classmethod
    def from_world_position(cls, world_position, lod, model):
        """
        Tile containing the surface point below `world_position`.

        The far boundary st = 1 belongs to the last tile, so the offset
        there is exactly 1.

        Returns:
            tile:   TileCoordinate
            offset: (..., 2) float32 vertex offset inside the tile
        """
        coordinate = Coordinate.from_world_position(world_position, model)
        count = tile_count(lod)
        st = coordinate.st * count
        xy = jnp.clip(jnp.floor(st), 0, count - 1).astype(jnp.int64)
        offset = (st - xy).astype(jnp.float32)
        return cls(coordinate.face, lod, xy[..., 0], xy[..., 1]), offset

    def coordinate(self, offset=(0.0, 0.0)):
        """Coordinate of the vertex at `offset` inside this tile."""
        st = (self.xy.astype(jnp.float64) + jnp.asarray(offset, dtype=jnp.float64)) \
            / tile_count(self.lod)
        return Coordinate(self.face, st)

    def parent(self, lod):
        """Ancestor tile at the coarser `lod`."""
        if lod < 0:
            raise ValueError(f"lod must be non-negative, got {lod}")
        if lod > self.lod:
            raise ValueError(f"parent lod {lod} is finer than tile lod {self.lod}")
        shift = self.lod - lod
        xy = jnp.right_shift(self.xy, shift)
        return TileCoordinate(self.face, lod, xy[..., 0], xy[..., 1])
