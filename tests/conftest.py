"""
conftest.py — Shared pytest fixtures for the terrain_precision test suite
"""

import pytest
import jax
jax.config.update("jax_enable_x64", True)
import jax.numpy as jnp
import numpy as np

from terrain_precision.constants import EARTH_EQUATORIAL_RADIUS, EARTH_POLAR_RADIUS
from terrain_precision.model import EllipsoidModel


@pytest.fixture
def unit_sphere():
    """Unit sphere at the origin: local and world space coincide."""
    return EllipsoidModel.sphere((0.0, 0.0, 0.0), 1.0)


@pytest.fixture
def earth():
    """WGS84 ellipsoid at the origin."""
    return EllipsoidModel.new((0.0, 0.0, 0.0), EARTH_EQUATORIAL_RADIUS, EARTH_POLAR_RADIUS)


@pytest.fixture
def tilted_ellipsoid():
    """Earth-sized ellipsoid, tilted, turned and far from the world origin."""
    return EllipsoidModel.ellipsoid(
        (1.5e7, -2.0e6, 3.0e6), EARTH_EQUATORIAL_RADIUS, EARTH_POLAR_RADIUS,
        latitude=0.4, longitude=-1.1)


@pytest.fixture
def st_grid():
    """(121, 2) st samples on [0.02, 0.98]², away from face boundaries."""
    s = jnp.linspace(0.02, 0.98, 11)
    S, T = jnp.meshgrid(s, s, indexing='ij')
    return jnp.stack([S.ravel(), T.ravel()], axis=-1)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
