#!/usr/bin/env python
# -*- encoding: utf-8 -*-
"""Tests for sampling axes"""

import os

try:
    os.environ.pop("ROUGHSCAPE_CACHE_DIR")
except KeyError:
    pass

import warnings

import numpy as np
import pytest

import roughscape


def test_validate_default():
    assert roughscape.validate_sampling(roughscape.DEFAULT_SAMPLING)


def test_refine_pass_budget():
    assert roughscape.DEFAULT_SAMPLING.refine_pass_budget == 3
    assert roughscape.SamplingConfig(refine_base_steps=1).refine_pass_budget == 1
    assert roughscape.SamplingConfig(refine_base_steps=1000).refine_pass_budget == 8


@pytest.mark.xfail(raises=roughscape.ParameterError)
@pytest.mark.parametrize(
    "kwargs",
    [
        dict(x_steps=0),
        dict(y_steps=-4),
        dict(x_steps=12.5),
        dict(x_steps=True),
        dict(progressive_steps=0),
        dict(refine_density=0),
        dict(refine_base_steps=0),
        dict(max_steps=64),
        dict(auto_low_steps=300, auto_high_steps=256),
        dict(resolution_mode="adaptive"),
        dict(x_range=(2.0, 1.0)),
        dict(y_range=(0.0, 2.0)),
        dict(y_range=(1.0, np.inf)),
        dict(progressive_window=0.0),
        dict(refine_band_cents=-1.0),
        dict(gradient_threshold=-0.1),
        dict(minima_neighborhood=-1),
        dict(minima_smoothing=0.5),
    ],
)
def test_validate_fail(kwargs):
    roughscape.validate_sampling(roughscape.SamplingConfig(**kwargs))


def test_validate_zero_smoothing():
    assert roughscape.validate_sampling(
        roughscape.SamplingConfig(minima_neighborhood=0, minima_smoothing=0)
    )


@pytest.mark.parametrize("log_sampling", [False, True])
@pytest.mark.parametrize("steps", [2, 3, 17, 256])
def test_build_axis(steps, log_sampling):
    axis = roughscape.build_axis(1.0, 2.0, steps, log_sampling)
    assert len(axis) == steps
    assert axis[0] == 1.0
    assert axis[-1] == 2.0
    assert np.all(np.diff(axis) > 0)

    if log_sampling:
        assert np.allclose(np.diff(np.log(axis)), np.log(2.0) / (steps - 1))
    else:
        assert np.allclose(np.diff(axis), 1.0 / (steps - 1))


def test_build_axis_examples():
    assert np.allclose(roughscape.build_axis(1, 4, 3, True), [1, 2, 4])
    assert np.allclose(roughscape.build_axis(1, 2, 3, False), [1, 1.5, 2])


@pytest.mark.parametrize("steps", [-1, 0, 1])
def test_build_axis_min_steps(steps):
    axis = roughscape.build_axis(1.0, 2.0, steps, True)
    assert np.allclose(axis, [1.0, 2.0])


def test_resolve_steps_fixed():
    cfg = roughscape.SamplingConfig(x_steps=30, y_steps=40)
    assert roughscape.core.resolve_steps(cfg, 1000) == (30, 40)

    cfg = roughscape.SamplingConfig(x_steps=1, y_steps=600)
    assert roughscape.core.resolve_steps(cfg, 4) == (2, 512)


@pytest.mark.parametrize("n_partials, steps", [(4, 64), (30, 64), (31, 16), (200, 16)])
def test_resolve_steps_auto(n_partials, steps):
    cfg = roughscape.SamplingConfig(
        resolution_mode="auto", auto_low_steps=16, auto_high_steps=64, max_steps=128
    )
    assert roughscape.core.resolve_steps(cfg, n_partials) == (steps, steps)


def test_resolve_steps_auto_capped():
    cfg = roughscape.SamplingConfig(
        resolution_mode="auto", auto_low_steps=8, auto_high_steps=64, max_steps=32
    )
    assert roughscape.core.resolve_steps(cfg, 4) == (32, 32)


def test_fold_axis():
    folded = roughscape.core.fold_axis([0.75, 3.0, 1.25, 4.0, 1.0])
    assert np.allclose(folded, [1.0, 1.25, 1.5, 2.0])


def test_refine_axis_fixed():
    axis = roughscape.build_axis(1.0, 2.0, 2, True)
    refined = roughscape.core.refine_axis_fixed(axis, [1.5], 14.0, 3)

    band = 2 ** (14.0 / 1200)
    extra = refined[1:-1]
    assert len(refined) == 6
    assert np.all(np.diff(refined) > 0)
    assert np.isclose(extra[0], 1.5 / band)
    assert np.isclose(extra[-1], 1.5 * band)
    assert np.allclose(np.diff(np.log(extra)), np.log(band) * 2 / 3)


def test_refine_axis_fixed_bounds():
    axis = roughscape.build_axis(1.0, 2.0, 5, False)

    # The band around the octave only fits below 2
    refined = roughscape.core.refine_axis_fixed(axis, [2.0], 14.0, 4)
    assert np.isclose(refined[-1], 2.0)
    assert len(refined) == 5 + 2

    refined = roughscape.core.refine_axis_fixed(axis, [1.5], 14.0, 4, bounds=(1.5, 2.0))
    assert np.all(refined[~np.isin(refined, axis)] >= 1.5)


def test_refine_axis_fixed_density_clipped():
    axis = roughscape.build_axis(1.0, 2.0, 2, True)
    refined = roughscape.core.refine_axis_fixed(axis, [1.5], 14.0, 100)
    assert len(refined) == 2 + 13


def test_refine_axis_fixed_noop():
    axis = roughscape.build_axis(1.0, 2.0, 8, True)
    assert np.array_equal(roughscape.core.refine_axis_fixed(axis, [], 14.0, 3), axis)
    assert np.array_equal(roughscape.core.refine_axis_fixed(axis, [-1.0, np.nan], 14.0, 3), axis)
    assert np.array_equal(roughscape.core.refine_axis_fixed(axis, [3.0], 14.0, 3), axis)


def test_refine_axis_window():
    axis = roughscape.build_axis(1.0, 2.0, 4, True)
    refined = roughscape.core.refine_axis_window(axis, [1.25, 1.5], 0.01, 8)

    extra = refined[~np.isin(refined, axis)]
    assert len(extra) == 8
    near = np.minimum(np.abs(np.log(extra / 1.25)), np.abs(np.log(extra / 1.5)))
    assert np.all(near <= 0.01 + 1e-12)


def test_refine_axis_window_outside():
    axis = roughscape.build_axis(1.0, 2.0, 4, True)
    assert np.array_equal(roughscape.core.refine_axis_window(axis, [3.0], 0.01, 8), axis)
    assert np.array_equal(roughscape.core.refine_axis_window(axis, [1.5], 0.0, 8), axis)


@pytest.mark.parametrize("log_sampling, mid", [(True, 2.0), (False, 2.5)])
def test_refine_axis_midpoints(log_sampling, mid):
    axis = np.array([1.0, 4.0])
    refined = roughscape.core.refine_axis_midpoints(axis, [0, 1, -1, 7], log_sampling)
    assert np.allclose(refined, [1.0, mid, 4.0])


def test_merge_axes():
    merged = roughscape.core.merge_axes([1.0, 2.0], [1.5, 2.0 + 1e-9], np.array([1.25]))
    assert np.allclose(merged, [1.0, 1.25, 1.5, 2.0])
    assert roughscape.core.merge_axes().size == 0


def test_cap_axis():
    axis = roughscape.build_axis(1.0, 2.0, 100, True)
    keep = axis[[10, 20, 30]]

    with pytest.warns(UserWarning):
        capped = roughscape.core.cap_axis(axis, 10, keep=keep)

    assert len(capped) == 10
    assert capped[0] == 1.0
    assert capped[-1] == 2.0
    assert np.all(np.isin(keep, capped))
    assert np.all(np.diff(capped) > 0)


def test_cap_axis_noop():
    axis = roughscape.build_axis(1.0, 2.0, 10, True)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert np.array_equal(roughscape.core.cap_axis(axis, 10), axis)


def test_cell_metrics():
    xs = np.array([1.0, 2.0, 4.0])
    ys = np.array([1.0, 1.5])
    width, height, area = roughscape.core.cell_metrics(xs, ys)

    assert np.allclose(width, [1.0, 1.5, 2.0])
    assert np.allclose(height, [0.5, 0.5])
    assert area.shape == (6,)
    assert np.allclose(area.reshape(2, 3), np.outer(height, width))


def test_cell_metrics_single():
    width, height, area = roughscape.core.cell_metrics([1.5], [1.0, 2.0])
    assert np.allclose(width, [0.0])
    assert np.allclose(area, [0.0, 0.0])
