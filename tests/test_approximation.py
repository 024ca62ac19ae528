"""
test_approximation.py — View-Relative Approximation Tests
===========================================================

Verifies:
  - Taylor coefficients equal autodiff derivatives of the exact mapping
  - Series is exact (to float32 rounding) at the view's own coordinate
  - Anchor/origin tile is the anchor-LOD grid corner closest to the view
  - Integer fast path for relative st matches the float64 reference
  - Tiles coarser than the anchor LOD are rejected
  - Approximate vs exact relative position stays below 2 cm near the view
"""

import pytest
import jax
jax.config.update("jax_enable_x64", True)
import jax.numpy as jnp
import numpy as np

from terrain_precision.approximation import (
    PrecisionContractError, ViewApproximation, origin_coordinate, taylor_terms,
)
from terrain_precision.connectivity import FACE_MATRICES
from terrain_precision.coordinates import Coordinate
from terrain_precision.error_study import error_bound_scenario, random_surface_positions
from terrain_precision.tiles import TileCoordinate, tile_count


ANCHOR_LOD = 10


def _view(model, face=1, st=(0.31, 0.62), height=1000.0):
    return Coordinate(face, jnp.array(st)).world_position(model, height)


def _rel_err(a, b):
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    return float(np.linalg.norm(a - b) / max(np.linalg.norm(b), 1e-300))


class TestTaylorCoefficients:
    """Coefficients against jax.jacfwd / jax.hessian of the exact mapping."""

    @pytest.mark.parametrize("model_name", ["earth", "tilted_ellipsoid"])
    def test_match_autodiff(self, model_name, request):
        model = request.getfixturevalue(model_name)
        view_position = _view(model)
        approx = ViewApproximation.compute(model, view_position, ANCHOR_LOD)

        for face in range(6):
            side = approx.faces[face]
            f = lambda st: Coordinate(face, st).world_position(model)
            J = jax.jacfwd(f)(side.view_st)       # (3, 2)
            H = jax.hessian(f)(side.view_st)      # (3, 2, 2)

            checks = {
                'c': (side.c, f(side.view_st) - view_position),
                'c_du': (side.c_du, J[:, 0]),
                'c_dv': (side.c_dv, J[:, 1]),
                'c_duu': (side.c_duu, 0.5 * H[:, 0, 0]),
                'c_duv': (side.c_duv, H[:, 0, 1]),
                'c_dvv': (side.c_dvv, 0.5 * H[:, 1, 1]),
            }
            for name, (got, expected) in checks.items():
                err = _rel_err(got, expected)
                assert err < 1e-6, f"{model_name} face {face} {name}: rel err {err:.2e}"

    def test_translation_only_in_constant_term(self, earth):
        """Moving the planet shifts p but none of its derivatives."""
        st = jnp.array([0.4, 0.7])
        W = earth.world_from_local
        W_moved = W.at[:3, 3].add(jnp.array([1e8, -3e7, 2e6]))
        a = taylor_terms(st, FACE_MATRICES[3], W)
        b = taylor_terms(st, FACE_MATRICES[3], W_moved)
        assert _rel_err(b[0] - a[0], jnp.array([1e8, -3e7, 2e6])) < 1e-12
        for da, db in zip(a[1:], b[1:]):
            assert float(jnp.max(jnp.abs(da - db))) == 0.0

    def test_coefficients_are_float32(self, earth):
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        for side in approx.faces:
            for name in ('delta_relative_st', 'c', 'c_du', 'c_dv', 'c_duu', 'c_duv', 'c_dvv'):
                assert getattr(side, name).dtype == jnp.float32, name
            assert side.origin_xy.dtype == jnp.int64
            assert side.origin_st.dtype == jnp.float64


class TestOrigin:

    def test_origin_closest_grid_corner(self, earth):
        view_position = _view(earth)
        approx = ViewApproximation.compute(earth, view_position, ANCHOR_LOD)
        face = int(approx.view_coordinate.face)
        side = approx.faces[face]
        count = tile_count(ANCHOR_LOD)

        gap = np.abs(np.asarray(side.origin_st - approx.view_coordinate.st))
        assert np.all(gap <= 0.5 / count + 1e-15), f"Origin too far: {gap}"
        assert np.array_equal(np.asarray(side.origin_xy),
                              np.asarray(side.origin_st * count).astype(np.int64))

    def test_origin_coordinate_rounding(self):
        c = Coordinate(0, jnp.array([0.1234, 0.99999]))
        o = origin_coordinate(c, 2)
        assert np.allclose(np.asarray(o.st), [0.0, 1.0])

    def test_delta_relative_st(self, earth):
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        for side in approx.faces:
            expected = np.asarray(side.origin_st - side.view_st, dtype=np.float32)
            assert np.array_equal(np.asarray(side.delta_relative_st), expected)


class TestExactAtView:
    """At the view's own coordinate the series reduces to c."""

    @pytest.mark.parametrize("model_name", ["earth", "tilted_ellipsoid"])
    def test_series_equals_constant(self, model_name, request):
        model = request.getfixturevalue(model_name)
        approx = ViewApproximation.compute(model, _view(model), ANCHOR_LOD)
        for face in range(6):
            side = approx.faces[face]
            relative_st = -side.delta_relative_st
            got = approx.approximate_relative_position(relative_st, face)
            assert np.array_equal(np.asarray(got), np.asarray(side.c)), f"Face {face}"

    @pytest.mark.parametrize("model_name", ["earth", "tilted_ellipsoid"])
    def test_matches_exact(self, model_name, request):
        """approximate == exact at the view, up to float32 rounding of delta."""
        model = request.getfixturevalue(model_name)
        approx = ViewApproximation.compute(model, _view(model), ANCHOR_LOD)
        face = int(approx.view_coordinate.face)
        relative_st = -approx.faces[face].delta_relative_st

        exact = approx.relative_position(relative_st, face)
        got = approx.approximate_relative_position(relative_st, face)
        err = float(jnp.linalg.norm(exact - got.astype(jnp.float64)))
        assert err < 5e-3, f"{model_name}: error at view {err:.2e} m"

    def test_constant_term_is_height(self, earth):
        """View straight above its coordinate: |c| is the height."""
        approx = ViewApproximation.compute(earth, _view(earth, height=1000.0), ANCHOR_LOD)
        face = int(approx.view_coordinate.face)
        height = float(jnp.linalg.norm(approx.faces[face].c))
        assert abs(height - 1000.0) < 1e-3, f"|c| = {height}"


class TestRelativeSt:
    """Integer fast path against the float64 reference."""

    @pytest.mark.parametrize("extra_lod", [1, 3, 8])
    def test_fast_path_equivalence(self, earth, rng, extra_lod):
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        face = int(approx.view_coordinate.face)
        origin_xy = np.asarray(approx.faces[face].origin_xy)
        lod = ANCHOR_LOD + extra_lod
        n = 2**extra_lod

        # tiles covering the four anchor tiles around the origin corner
        k = rng.integers(-n, n, size=(64, 2))
        xy = (origin_xy << extra_lod) + k
        tile = TileCoordinate(face, lod, xy[:, 0], xy[:, 1])
        offset = rng.random((64, 2)).astype(np.float32)

        exact = approx.relative_st(tile, offset)
        fast = approx.approximate_relative_st(tile, offset)
        assert fast.dtype == jnp.float32
        err = float(jnp.max(jnp.abs(exact - fast)))
        tol = 1e-5 / tile_count(ANCHOR_LOD)
        assert err < tol, f"lod {lod}: relative st mismatch {err:.2e}"

    def test_same_lod(self, earth):
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        face = int(approx.view_coordinate.face)
        ox, oy = (int(v) for v in approx.faces[face].origin_xy)
        tile = TileCoordinate(face, ANCHOR_LOD, ox + 2, oy - 1)
        fast = approx.approximate_relative_st(tile, (0.25, 0.5))
        count = tile_count(ANCHOR_LOD)
        assert np.allclose(np.asarray(fast), [2.25 / count, -0.5 / count], rtol=0, atol=1e-12)

    def test_high_lod_precision(self, earth, rng):
        """At lod 26 the fast path still resolves sub-tile offsets."""
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        face = int(approx.view_coordinate.face)
        origin_xy = np.asarray(approx.faces[face].origin_xy)
        lod = 26
        shift = lod - ANCHOR_LOD
        xy = (origin_xy << shift) + np.array([3, -7])
        tile = TileCoordinate(face, lod, xy[0], xy[1])
        offset = np.array([0.125, 0.75], dtype=np.float32)

        fast = np.asarray(approx.approximate_relative_st(tile, offset), dtype=np.float64)
        expected = (np.array([3, -7]) + offset) / 2.0**lod
        err = float(np.max(np.abs(fast - expected) / np.abs(expected)))
        assert err < 1e-7, f"relative error {err:.2e}"

    def test_coarser_tile_rejected(self, earth):
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        tile = TileCoordinate(1, ANCHOR_LOD - 1, 3, 4)
        with pytest.raises(PrecisionContractError) as info:
            approx.approximate_relative_st(tile, (0.5, 0.5))
        assert isinstance(info.value, ValueError)
        assert (info.value.lod, info.value.anchor_lod) == (ANCHOR_LOD - 1, ANCHOR_LOD)

    def test_negative_anchor_lod(self, earth):
        with pytest.raises(ValueError):
            ViewApproximation.compute(earth, _view(earth), -1)


class TestApproximationError:
    """Approximate vs exact relative position around the view."""

    def test_error_bound_scenario(self):
        """WGS84, view 1000 m up, samples within 0.001 R, anchor lod 10: < 2 cm."""
        max_error = error_bound_scenario(view_samples=12, surface_samples=64)
        assert max_error < 0.02, f"Max approximation error {max_error:.4f} m"

    def test_far_from_world_origin(self, tilted_ellipsoid, rng):
        """Accuracy does not depend on the planet's absolute world position."""
        model = tilted_ellipsoid
        view_position = _view(model, face=4, st=(0.7, 0.2))
        approx = ViewApproximation.compute(model, view_position, ANCHOR_LOD)
        surface = random_surface_positions(rng, model, 0.001 * model.scale(), view_position, 128)

        tile, offset = TileCoordinate.from_world_position(surface, ANCHOR_LOD + 4, model)
        relative_st = approx.approximate_relative_st(tile, offset)
        exact = approx.relative_position(relative_st, tile.face)
        got = approx.approximate_relative_position(relative_st, tile.face)
        err = float(jnp.max(jnp.linalg.norm(exact - got.astype(jnp.float64), axis=-1)))
        assert err < 0.02, f"Max approximation error {err:.4f} m"

    def test_error_grows_with_distance(self, earth, rng):
        """Taylor remainder: larger sample radius → larger error."""
        view_position = _view(earth)
        approx = ViewApproximation.compute(earth, view_position, ANCHOR_LOD)

        errors = []
        for factor in [0.0005, 0.005]:
            surface = random_surface_positions(rng, earth, factor * earth.scale(), view_position, 128)
            tile, offset = TileCoordinate.from_world_position(surface, ANCHOR_LOD, earth)
            relative_st = approx.approximate_relative_st(tile, offset)
            exact = approx.relative_position(relative_st, tile.face)
            got = approx.approximate_relative_position(relative_st, tile.face)
            errors.append(float(jnp.max(jnp.linalg.norm(exact - got.astype(jnp.float64), axis=-1))))
        assert errors[1] > errors[0], f"Errors {errors}"

    def test_batched_faces_match_single(self, earth):
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        faces = jnp.array([0, 1, 2, 3, 4, 5])
        relative_st = jnp.full((6, 2), 1e-4, dtype=jnp.float32)
        batched = approx.approximate_relative_position(relative_st, faces)
        for face in range(6):
            single = approx.approximate_relative_position(relative_st[face], face)
            assert np.allclose(np.asarray(batched[face]), np.asarray(single), rtol=1e-6, atol=1e-6)


class TestSnapshot:

    def test_immutable_snapshot(self, earth):
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        assert len(approx.faces) == 6
        with pytest.raises(AttributeError):
            approx.anchor_lod = 3
        with pytest.raises(AttributeError):
            approx.faces[0].c = jnp.zeros(3, dtype=jnp.float32)

    def test_stacked_fields_match_faces(self, earth):
        """Stacked (6, ...) fields equal the per-face approximations."""
        approx = ViewApproximation.compute(earth, _view(earth), ANCHOR_LOD)
        assert approx.stacked.c.shape == (6, 3)
        assert approx.stacked.origin_xy.shape == (6, 2)
        for name in approx.stacked._fields:
            stacked = getattr(approx.stacked, name)
            for face, side in enumerate(approx.faces):
                assert np.array_equal(np.asarray(stacked[face]), np.asarray(getattr(side, name))), \
                    f"{name} differs on face {face}"
            assert stacked.dtype == getattr(approx.faces[0], name).dtype
