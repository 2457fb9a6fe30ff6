#!/usr/bin/env python
# -*- encoding: utf-8 -*-
"""Tests for scales"""

import os

try:
    os.environ.pop("ROUGHSCAPE_CACHE_DIR")
except KeyError:
    pass

import numpy as np
import pytest

import roughscape


FIVE_LIMIT = (1.0, 9 / 8, 5 / 4, 4 / 3, 3 / 2, 5 / 3, 15 / 8)


@pytest.fixture
def sum_grid(make_grid):
    # values = x + y, which bilinear lookup reproduces exactly
    xs = roughscape.build_axis(1.0, 2.0, 11, False)
    return make_grid(xs[np.newaxis, :] + xs[:, np.newaxis], xs=xs, ys=xs)


@pytest.mark.parametrize("steps", [1, 5, 12, 31])
def test_edo_scale(steps):
    scale = roughscape.edo_scale(steps)
    assert len(scale) == steps
    assert scale.kind == "edo"
    assert scale.name == "{}-EDO".format(steps)
    assert scale.ratios[0] == 1.0
    assert np.allclose(np.diff(np.log2(scale.ratios)), 1.0 / steps)
    assert max(scale.ratios) < 2.0


@pytest.mark.xfail(raises=roughscape.ParameterError)
@pytest.mark.parametrize("steps", [0, -12, 12.0])
def test_edo_scale_fail(steps):
    roughscape.edo_scale(steps)


def test_presets():
    names = [s.name for s in roughscape.SCALE_PRESETS]
    assert names == ["12-EDO", "19-EDO", "31-EDO", "5-limit just", "7-limit just"]

    just = {s.name: s for s in roughscape.SCALE_PRESETS}
    assert just["5-limit just"].ratios == FIVE_LIMIT
    assert len(just["7-limit just"]) == 12
    assert just["7-limit just"].ratios[1:3] == (9 / 8, 8 / 7)
    for scale in roughscape.SCALE_PRESETS:
        assert list(scale.ratios) == sorted(scale.ratios)
        assert all(1.0 <= r < 2.0 for r in scale.ratios)


def test_parse_scale_text():
    assert roughscape.parse_scale_text("1/1, 9/8 5/4 3 foo") == [1.0, 1.125, 1.25, 1.5]


def test_parse_scale_text_folding():
    assert roughscape.parse_scale_text("2/1 0.75\n\t5") == [1.25, 1.5, 2.0]


@pytest.mark.parametrize("text", ["", "  ", "0 -1 1/0 a/b 1/2/3 nan"])
def test_parse_scale_text_empty(text):
    assert roughscape.parse_scale_text(text) == []


def test_scale_from_minima():
    minima = [
        roughscape.MinimaPoint(x=1.5, y=1.25, ix=0, iy=0, roughness=0.0, depth=1.0),
        roughscape.MinimaPoint(x=1.2, y=1.5, ix=0, iy=0, roughness=0.0, depth=0.5),
    ]
    scale = roughscape.scale_from_minima(minima, name="found")
    assert scale.name == "found"
    assert scale.kind == "custom"
    assert scale.ratios == (1.0, 1.2, 1.25, 1.5)


def test_compare_scale(sum_grid):
    result = roughscape.compare_scale(sum_grid, FIVE_LIMIT)
    assert result.count == 21
    assert len(result.worst) == 5

    worst = result.worst[0]
    assert np.isclose(worst.x, 5 / 3)
    assert np.isclose(worst.y, 15 / 8)
    assert np.isclose(worst.roughness, 5 / 3 + 15 / 8)
    assert result.max_roughness == worst.roughness

    values = [p.roughness for p in result.worst]
    assert values == sorted(values, reverse=True)
    for p in result.worst:
        assert p.x < p.y

    i, j = np.triu_indices(len(FIVE_LIMIT), k=1)
    expected = np.mean(np.asarray(FIVE_LIMIT)[i] + np.asarray(FIVE_LIMIT)[j])
    assert np.isclose(result.average, expected)


def test_compare_scale_unsorted(sum_grid):
    a = roughscape.compare_scale(sum_grid, FIVE_LIMIT)
    b = roughscape.compare_scale(sum_grid, FIVE_LIMIT[::-1])
    assert a == b


def test_compare_scale_worst_count(sum_grid):
    result = roughscape.compare_scale(sum_grid, roughscape.edo_scale(12).ratios, worst_count=0)
    assert result.count == 66
    assert len(result.worst) == 1


@pytest.mark.parametrize("ratios", [(), (1.0,), (np.nan, -1.0, 1.5)])
def test_compare_scale_empty(sum_grid, ratios):
    result = roughscape.compare_scale(sum_grid, ratios)
    assert result.count == 0
    assert result.worst == ()
    assert result.max_roughness == 0.0


def test_compare_scale_landscape():
    grid = roughscape.compute_grid(
        roughscape.TimbreConfig(preset="saw", partial_count=6),
        roughscape.SamplingConfig(x_steps=24, y_steps=24),
    )
    just = roughscape.compare_scale(grid, FIVE_LIMIT)
    edo = roughscape.compare_scale(grid, roughscape.edo_scale(12).ratios)
    assert just.count == 21
    assert edo.count == 66
    assert 0 <= just.average <= just.max_roughness <= 1.0 + 1e-12
    assert 0 <= edo.average <= edo.max_roughness <= 1.0 + 1e-12
