#!/usr/bin/env python
# -*- encoding: utf-8 -*-
"""Tests for landscape minima"""

import os

try:
    os.environ.pop("ROUGHSCAPE_CACHE_DIR")
except KeyError:
    pass

import dataclasses
from fractions import Fraction

import numpy as np
import pytest

import roughscape


def bowl(n=5):
    k = np.arange(n) - n // 2
    return k[np.newaxis, :] ** 2 + k[:, np.newaxis] ** 2


def pits(shape, *points):
    values = np.ones(shape)
    for (iy, ix), v in points:
        values[iy, ix] = v
    return values


@pytest.mark.parametrize("connectivity, depth", [(4, 1.0), (8, 1.5)])
def test_bowl(make_grid, connectivity, depth):
    grid = make_grid(bowl())
    minima = roughscape.find_minima(grid, connectivity=connectivity)
    assert len(minima) == 1

    m = minima[0]
    assert (m.ix, m.iy) == (2, 2)
    assert m.x == 1.5 and m.y == 1.5
    assert m.roughness == 0.0
    assert np.isclose(m.depth, depth)
    assert m.plateau_size == 1
    assert not m.refined
    assert m.rational_x is None


def test_plateau(make_grid):
    values = np.ones((5, 5))
    values[2, 1:4] = 0.0
    minima = roughscape.find_minima(make_grid(values))
    assert len(minima) == 1
    assert minima[0].plateau_size == 3
    assert minima[0].iy == 2
    assert np.isclose(minima[0].depth, 1.0)


def test_plateau_tie_tolerance(make_grid):
    values = np.ones((5, 5))
    values[2, 1] = 0.0
    values[2, 2] = 1e-9
    # Within the tolerance the two cells form one plateau
    minima = roughscape.find_minima(make_grid(values), tie_tolerance=1e-6)
    assert len(minima) == 1
    assert minima[0].plateau_size == 2

    # Otherwise only the lower cell is a minimum
    minima = roughscape.find_minima(make_grid(values), tie_tolerance=0.0)
    assert len(minima) == 1
    assert minima[0].plateau_size == 1
    assert minima[0].ix == 1


def test_flat(make_grid):
    assert roughscape.find_minima(make_grid(np.zeros((6, 6))), boundary="mirror") == []


def test_boundary(make_grid):
    values = np.add.outer(np.arange(5), np.arange(5)).astype(float)
    grid = make_grid(values)

    # The corner minimum touches the edge
    assert roughscape.find_minima(grid, boundary="skip") == []

    minima = roughscape.find_minima(grid, boundary="mirror")
    assert len(minima) == 1
    assert (minima[0].ix, minima[0].iy) == (0, 0)
    assert minima[0].depth > 0


def test_order(make_grid):
    grid = make_grid(pits((7, 9), ((2, 2), 0.0), ((4, 6), 0.5)))
    minima = roughscape.find_minima(grid)
    assert [(m.iy, m.ix) for m in minima] == [(2, 2), (4, 6)]
    assert np.allclose([m.depth for m in minima], [1.0, 0.5])


def test_order_tie(make_grid):
    # Equal depths: the lower value comes first
    values = pits((9, 13), ((2, 2), 0.5), ((5, 9), 0.0))
    values[4:7, 8:11] = np.where(values[4:7, 8:11] == 0.0, 0.0, 0.5)
    minima = roughscape.find_minima(make_grid(values))
    assert [(m.iy, m.ix) for m in minima] == [(5, 9), (2, 2)]
    assert np.allclose([m.depth for m in minima], [0.5, 0.5])


def test_depth_non_increasing(make_grid):
    rng = np.random.default_rng(3)
    grid = make_grid(rng.uniform(size=(20, 24)))
    minima = roughscape.find_minima(grid)
    assert len(minima) > 1
    depths = [m.depth for m in minima]
    assert all(a >= b for a, b in zip(depths, depths[1:]))


def test_min_depth(make_grid):
    grid = make_grid(pits((7, 9), ((2, 2), 0.0), ((4, 6), 0.5)))
    minima = roughscape.find_minima(grid, min_depth=0.6)
    assert [(m.iy, m.ix) for m in minima] == [(2, 2)]


def test_max_count(make_grid):
    grid = make_grid(pits((7, 9), ((2, 2), 0.0), ((4, 6), 0.5)))
    minima = roughscape.find_minima(grid, max_count=1)
    assert [(m.iy, m.ix) for m in minima] == [(2, 2)]


def test_neighborhood(make_grid):
    grid = make_grid(pits((9, 9), ((4, 4), 0.0), ((4, 6), 0.8)))
    assert len(roughscape.find_minima(grid, neighborhood=1)) == 2

    minima = roughscape.find_minima(grid, neighborhood=2)
    assert [(m.iy, m.ix) for m in minima] == [(4, 4)]


def test_dedupe(make_grid):
    grid = make_grid(pits((9, 9), ((4, 4), 0.0), ((4, 6), 0.8)))
    assert len(roughscape.find_minima(grid)) == 2

    # Pits are log(1.75 / 1.5) ~ 0.154 apart
    minima = roughscape.find_minima(grid, dedupe_tolerance=0.2)
    assert [(m.iy, m.ix) for m in minima] == [(4, 4)]


def test_smoothing(make_grid):
    grid = make_grid(bowl(7))
    minima = roughscape.find_minima(grid, smoothing=2)
    assert len(minima) == 1
    assert (minima[0].ix, minima[0].iy) == (3, 3)
    # The reported value is taken from the unsmoothed field
    assert minima[0].roughness == 0.0


@pytest.mark.parametrize("threshold, cells", [(0.5, 1), (1.0, 5)])
def test_basin(make_grid, threshold, cells):
    grid = make_grid(bowl())
    m = roughscape.find_minima(grid, basin_threshold=threshold)[0]

    # Every cell of the unit square's 5x5 grid is 0.25 x 0.25
    assert np.isclose(m.basin_area, cells * 0.0625)
    assert np.isclose(m.basin_radius, np.sqrt(m.basin_area / np.pi))
    assert np.isclose(m.basin_threshold, threshold * 1.5)


def test_basin_max_radius(make_grid):
    grid = make_grid(bowl())
    m = roughscape.find_minima(grid, basin_threshold=1.0, max_radius=1e-9)[0]
    assert np.isclose(m.basin_area, 0.0625)


def test_refine(make_grid):
    grid = make_grid(bowl())
    m = roughscape.find_minima(grid, refine=True)[0]
    assert m.refined
    assert m.rational_x == Fraction(3, 2)
    assert m.rational_y == Fraction(3, 2)
    assert m.rational_error_x == 0.0
    assert m.rational_error_y == 0.0
    assert m.refine_steps == 2
    assert m.refine_passes == 0


def test_refine_log_grid(make_grid):
    xs = roughscape.build_axis(1.0, 2.0, 9, True)
    grid = make_grid(bowl(9), xs=xs, ys=xs, log_sampling=True)
    m = roughscape.find_minima(grid, refine=True, max_den=8)[0]
    # sqrt(2) ~ 7/5, about 17 cents flat
    assert m.rational_x == Fraction(7, 5)
    assert np.isclose(m.rational_error_x, 1200 * np.log2(np.sqrt(2) / 1.4))


@pytest.mark.xfail(raises=roughscape.ParameterError)
@pytest.mark.parametrize(
    "kwargs",
    [
        dict(connectivity=6),
        dict(boundary="wrap"),
        dict(field="smoothed"),
        dict(neighborhood=0),
        dict(refine=True, rational_method="stern-brocot"),
    ],
)
def test_find_minima_fail(make_grid, kwargs):
    roughscape.find_minima(make_grid(bowl()), **kwargs)


@pytest.mark.parametrize(
    "ratio, kwargs, fraction",
    [
        (1.4983, dict(), Fraction(3, 2)),
        (1.26, dict(max_den=8), Fraction(5, 4)),
        (1.26, dict(max_den=64), Fraction(63, 50)),
        (1.26, dict(max_den=64, tolerance_cents=20.0), Fraction(5, 4)),
        (1.26, dict(max_den=8, method="denominator"), Fraction(5, 4)),
        (2.0, dict(max_den=1), Fraction(2, 1)),
        (1.618034, dict(max_den=5), Fraction(8, 5)),
    ],
)
def test_approximate_ratio(ratio, kwargs, fraction):
    assert roughscape.approximate_ratio(ratio, **kwargs) == fraction


@pytest.mark.parametrize("ratio", [1.1, 1.2345, 1.5, 1.9])
@pytest.mark.parametrize("max_den", [4, 16, 64])
def test_approximate_ratio_methods_agree(ratio, max_den):
    # Both methods find the closest fraction
    a = roughscape.approximate_ratio(ratio, max_den=max_den)
    b = roughscape.approximate_ratio(ratio, max_den=max_den, method="denominator")
    assert a.denominator <= max_den
    assert b.denominator <= max_den
    assert np.isclose(abs(float(a) - ratio), abs(float(b) - ratio))


@pytest.mark.xfail(raises=roughscape.ParameterError)
@pytest.mark.parametrize(
    "ratio, kwargs",
    [(0.0, dict()), (-1.5, dict()), (np.nan, dict()), (1.5, dict(max_den=0)), (1.5, dict(method="farey"))],
)
def test_approximate_ratio_fail(ratio, kwargs):
    roughscape.approximate_ratio(ratio, **kwargs)


def test_label_minima():
    minima = [
        roughscape.MinimaPoint(x=1.5, y=1.26, ix=0, iy=0, roughness=0.0, depth=1.0),
        roughscape.MinimaPoint(x=1.41, y=2.0, ix=0, iy=0, roughness=0.0, depth=0.5),
    ]
    labeled = roughscape.label_minima(minima)
    assert [(m.label_x, m.label_y) for m in labeled] == [("P5", "M3"), (None, "Octave")]
    # The input is left untouched
    assert minima[0].label_x is None


def test_label_minima_custom():
    minima = [roughscape.MinimaPoint(x=1.4, y=1.25, ix=0, iy=0, roughness=0.0, depth=1.0)]
    intervals = [roughscape.IntervalLabel("7:5", 7 / 5)]
    labeled = roughscape.label_minima(minima, intervals, tolerance_cents=5.0)
    assert labeled[0].label_x == "7:5"
    assert labeled[0].label_y is None


def test_default_intervals():
    names = [i.name for i in roughscape.DEFAULT_INTERVALS]
    assert names == ["m3", "M3", "P4", "P5", "m6", "M6", "Octave"]
    ratios = [i.ratio for i in roughscape.DEFAULT_INTERVALS]
    assert ratios == sorted(ratios)


def test_landscape_minima():
    timbre = roughscape.TimbreConfig(preset="saw", partial_count=6)
    sampling = roughscape.SamplingConfig(x_steps=48, y_steps=48, refine_fixed=False)
    grid = roughscape.compute_grid(timbre, sampling)

    minima = roughscape.find_minima(grid, refine=True, max_count=10)
    assert 0 < len(minima) <= 10
    depths = [m.depth for m in minima]
    assert all(a >= b for a, b in zip(depths, depths[1:]))
    for m in minima:
        assert grid.xs[m.ix] == m.x
        assert grid.ys[m.iy] == m.y
        assert m.depth >= 0
        assert m.rational_x.denominator <= 32


def test_find_maxima(make_grid):
    grid = make_grid(-bowl())
    maxima = roughscape.find_maxima(grid)
    assert len(maxima) == 1

    m = maxima[0]
    assert (m.ix, m.iy) == (2, 2)
    assert m.roughness == 0.0
    # Lowest cell of the 3x3 window is a corner at -2
    assert np.isclose(m.depth, 2.0)
    assert m.plateau_size == 1


def test_find_maxima_order(make_grid):
    values = pits((7, 7), ((1, 1), 3.0), ((5, 5), 4.0), ((1, 5), 2.0))
    maxima = roughscape.find_maxima(make_grid(values))
    assert [(m.iy, m.ix) for m in maxima] == [(5, 5), (1, 1), (1, 5)]
    assert [m.roughness for m in maxima] == [4.0, 3.0, 2.0]
    assert np.allclose([m.depth for m in maxima], [3.0, 2.0, 1.0])

    maxima = roughscape.find_maxima(make_grid(values), max_count=2)
    assert [m.roughness for m in maxima] == [4.0, 3.0]


def test_find_maxima_plateau(make_grid):
    # Ties are not strict maxima
    values = np.zeros((5, 5))
    values[2, 1:3] = 1.0
    assert roughscape.find_maxima(make_grid(values)) == []
    assert roughscape.find_maxima(make_grid(np.ones((4, 4)))) == []


def test_find_maxima_edge(make_grid):
    values = np.add.outer(np.arange(5), np.arange(5)).astype(float)
    maxima = roughscape.find_maxima(make_grid(values))
    assert len(maxima) == 1
    assert (maxima[0].iy, maxima[0].ix) == (4, 4)
    assert np.isclose(maxima[0].depth, 2.0)


def test_find_maxima_neighborhood(make_grid):
    values = pits((7, 7), ((1, 1), 3.0), ((1, 3), 2.0))
    maxima = roughscape.find_maxima(make_grid(values), neighborhood=1)
    assert len(maxima) == 2

    # A wider window puts the lower peak in the shadow of the higher one
    maxima = roughscape.find_maxima(make_grid(values), neighborhood=2)
    assert len(maxima) == 1
    assert (maxima[0].iy, maxima[0].ix) == (1, 1)


def test_find_maxima_smoothing(make_grid):
    values = -bowl(7).astype(float)
    values[0, 0] = 10.0
    # The spike sits on the rim and stays a maximum without smoothing
    maxima = roughscape.find_maxima(make_grid(values))
    assert (maxima[0].iy, maxima[0].ix) == (0, 0)

    maxima = roughscape.find_maxima(make_grid(values), smoothing=1)
    assert all(m.roughness == values[m.iy, m.ix] for m in maxima)


def test_find_maxima_field(make_grid):
    grid = make_grid(-bowl())
    grid = dataclasses.replace(grid, normalized=grid.raw[::-1].copy() - 1.0)
    assert roughscape.find_maxima(grid, field="raw")[0].roughness == 0.0
    assert roughscape.find_maxima(grid, field="normalized")[0].roughness == -1.0


@pytest.mark.xfail(raises=roughscape.ParameterError)
def test_find_maxima_bad_neighborhood(make_grid):
    roughscape.find_maxima(make_grid(bowl()), neighborhood=0)
