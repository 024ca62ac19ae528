"""
constants.py — Shared Numerical Constants
==========================================
"""

# Square of the algebraic sigmoid parameter used by the uv ↔ st warp.
C_SQR = 0.87 * 0.87

FACE_COUNT = 6

# WGS84 reference ellipsoid (metres)
EARTH_EQUATORIAL_RADIUS = 6378137.0
EARTH_POLAR_RADIUS = 6356752.314245

# Anchor LOD used when the caller does not pick one.
DEFAULT_ANCHOR_LOD = 10
