#!/usr/bin/env python
# -*- encoding: utf-8 -*-
"""Tests for surface utilities"""

import os

try:
    os.environ.pop("ROUGHSCAPE_CACHE_DIR")
except KeyError:
    pass

import numpy as np
import pytest

import roughscape


@pytest.fixture
def plane(make_grid):
    # values = x + 2 y on a linear grid
    xs = roughscape.build_axis(1.0, 2.0, 5, False)
    ys = roughscape.build_axis(1.0, 2.0, 3, False)
    return make_grid(xs[np.newaxis, :] + 2 * ys[:, np.newaxis], xs=xs, ys=ys)


@pytest.mark.parametrize(
    "kind, attr",
    [
        (roughscape.AxisKind.X, "xs"),
        (roughscape.AxisKind.Y, "ys"),
        (roughscape.AxisKind.LOG_X, "log_x"),
        (roughscape.AxisKind.LOG_Y, "log_y"),
        (roughscape.AxisKind.CELL_WIDTH, "cell_width"),
        (roughscape.AxisKind.CELL_HEIGHT, "cell_height"),
        ("x", "xs"),
        ("log_y", "log_y"),
        ("cell_height", "cell_height"),
    ],
)
def test_axis_values(plane, kind, attr):
    assert roughscape.axis_values(plane, kind) is getattr(plane, attr)


@pytest.mark.xfail(raises=roughscape.ParameterError)
@pytest.mark.parametrize("kind", ["z", "X", 3, None])
def test_axis_values_fail(plane, kind):
    roughscape.axis_values(plane, kind)


def test_select_values(plane):
    values = roughscape.select_values(plane)
    assert values.shape == (3, 5)
    assert np.allclose(values[1], plane.xs + 3.0)
    assert np.array_equal(roughscape.select_values(plane, "raw"), values)


@pytest.mark.xfail(raises=roughscape.ParameterError)
def test_select_values_fail(plane):
    roughscape.select_values(plane, "energy")


@pytest.mark.parametrize("boundary", ["skip", "mirror"])
def test_smooth_constant(make_grid, boundary):
    grid = make_grid(np.full((4, 6), 0.3))
    assert np.allclose(roughscape.smooth_grid(grid, 3, boundary=boundary), 0.3)


def test_smooth_zero_iterations(plane):
    out = roughscape.smooth_grid(plane, 0)
    assert np.array_equal(out, plane.values())
    # A copy, not a view
    out[0, 0] = -1
    assert plane.values()[0, 0] != -1


def test_smooth_spike(make_grid):
    values = np.zeros((5, 5))
    values[2, 2] = 9.0
    out = roughscape.smooth_grid(make_grid(values))
    assert np.allclose(out[1:4, 1:4], 1.0)
    assert np.allclose(out[0], 0.0)
    assert np.isclose(out.sum(), 9.0)


def test_smooth_plane_interior(plane):
    # A box filter leaves a linear field unchanged away from the edges
    out = roughscape.smooth_grid(plane, 1, boundary="mirror")
    assert np.allclose(out[1, 1:-1], plane.values()[1, 1:-1])


@pytest.mark.xfail(raises=roughscape.ParameterError)
def test_smooth_fail(plane):
    roughscape.smooth_grid(plane, 1, boundary="wrap")


def test_sample_grid_nodes(plane):
    for ix in range(len(plane.xs)):
        for iy in range(len(plane.ys)):
            v = roughscape.sample_grid(plane, plane.xs[ix], plane.ys[iy])
            assert isinstance(v, float)
            assert np.isclose(v, plane.values()[iy, ix])


def test_sample_grid_linear(plane):
    x = np.array([1.1, 1.33, 1.9])
    y = np.array([1.2, 1.75, 1.01])
    assert np.allclose(roughscape.sample_grid(plane, x, y), x + 2 * y)


def test_sample_grid_broadcast(plane):
    out = roughscape.sample_grid(plane, np.array([1.1, 1.2, 1.3]), 1.5)
    assert out.shape == (3,)
    assert np.allclose(out, [4.1, 4.2, 4.3])


def test_sample_grid_clamp(plane):
    assert np.isclose(roughscape.sample_grid(plane, 3.0, 1.0), 2.0 + 2.0)
    assert np.isclose(roughscape.sample_grid(plane, 0.5, 5.0), 1.0 + 4.0)
    assert np.isnan(roughscape.sample_grid(plane, 3.0, 1.0, clamp=False))


def test_sample_grid_log(make_grid):
    xs = roughscape.build_axis(1.0, 2.0, 5, True)
    ys = roughscape.build_axis(1.0, 2.0, 4, True)
    grid = make_grid(
        np.log(xs)[np.newaxis, :] - np.log(ys)[:, np.newaxis], xs=xs, ys=ys, log_sampling=True
    )
    x = np.sqrt(xs[1] * xs[2])
    y = 1.3
    assert np.isclose(roughscape.sample_grid(grid, x, y), np.log(x) - np.log(y))


def test_symmetry_check_symmetric(make_grid):
    xs = roughscape.build_axis(1.0, 2.0, 9, False)
    grid = make_grid(xs[np.newaxis, :] + xs[:, np.newaxis], xs=xs, ys=xs)
    report = roughscape.symmetry_check(grid, samples=50)
    assert report.samples == 50
    assert report.passed
    assert report.max_error <= 1e-12
    assert report.tolerance == 1e-6


def test_symmetry_check_asymmetric(plane):
    report = roughscape.symmetry_check(plane, samples=10)
    assert not report.passed
    assert report.max_error > report.mean_error > 0


def test_symmetry_check_seeded(plane):
    a = roughscape.symmetry_check(plane, samples=10, seed=4)
    b = roughscape.symmetry_check(plane, samples=10, seed=4)
    assert a == b


def test_symmetry_check_disjoint(make_grid):
    xs = roughscape.build_axis(1.0, 1.2, 4, True)
    ys = roughscape.build_axis(1.5, 2.0, 4, True)
    report = roughscape.symmetry_check(make_grid(np.zeros((4, 4)), xs=xs, ys=ys))
    assert report.samples == 0
    assert report.passed


def test_symmetry_check_landscape():
    grid = roughscape.compute_grid(
        roughscape.TimbreConfig(preset="saw", partial_count=5),
        roughscape.SamplingConfig(x_steps=16, y_steps=16),
    )
    report = roughscape.symmetry_check(grid)
    assert report.samples == 24
    assert report.passed
