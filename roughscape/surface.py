#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Surface utilities
=================

Field access
------------
.. autosummary::
    :toctree: generated/

    AxisKind
    axis_values
    select_values

Smoothing and interpolation
---------------------------
.. autosummary::
    :toctree: generated/

    smooth_grid
    sample_grid

Checks
------
.. autosummary::
    :toctree: generated/

    symmetry_check
"""

import enum
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import scipy.interpolate
import scipy.ndimage

from ._typing import _BoundaryPolicy, _ensure_not_reachable, _ScalarField
from .core.grid import GridData
from .util.exceptions import ParameterError
from .util.utils import tiny, valid_choice

__all__ = [
    "AxisKind",
    "SymmetryReport",
    "axis_values",
    "select_values",
    "smooth_grid",
    "sample_grid",
    "symmetry_check",
]

BOUNDARY_MODES = {"skip": "nearest", "mirror": "mirror"}


class AxisKind(enum.Enum):
    """Per-axis quantities stored on a `GridData`."""

    X = "x"
    Y = "y"
    LOG_X = "log_x"
    LOG_Y = "log_y"
    CELL_WIDTH = "cell_width"
    CELL_HEIGHT = "cell_height"


@dataclass(frozen=True)
class SymmetryReport:
    samples: int
    max_error: float
    mean_error: float
    tolerance: float
    passed: bool


def axis_values(grid: GridData, kind: Union[AxisKind, str]) -> np.ndarray:
    """Look up an axis quantity of a grid.

    Parameters
    ----------
    grid : GridData
    kind : AxisKind or str
        An `AxisKind` member or its value, e.g. ``'log_x'``

    Returns
    -------
    values : np.ndarray

    Raises
    ------
    ParameterError
        If ``kind`` is not an `AxisKind`

    Examples
    --------
    >>> roughscape.axis_values(grid, roughscape.AxisKind.LOG_X)
    >>> roughscape.axis_values(grid, 'cell_height')
    """
    if not isinstance(kind, AxisKind):
        try:
            kind = AxisKind(kind)
        except ValueError as exc:
            raise ParameterError(f"Unknown axis kind={kind!r}") from exc

    if kind is AxisKind.X:
        return grid.xs
    elif kind is AxisKind.Y:
        return grid.ys
    elif kind is AxisKind.LOG_X:
        return grid.log_x
    elif kind is AxisKind.LOG_Y:
        return grid.log_y
    elif kind is AxisKind.CELL_WIDTH:
        return grid.cell_width
    elif kind is AxisKind.CELL_HEIGHT:
        return grid.cell_height
    else:
        _ensure_not_reachable(kind)
        raise ParameterError(f"Unknown axis kind={kind!r}")


def select_values(grid: GridData, field: Optional[_ScalarField] = None) -> np.ndarray:
    """Values of ``field`` (default: ``grid.scalar_field``), shaped ``(len(ys), len(xs))``"""
    return grid.values(field)


def _smooth(values: np.ndarray, iterations: int, boundary: str) -> np.ndarray:
    valid_choice("boundary", boundary, BOUNDARY_MODES)
    out = np.array(values, dtype=float)
    for _ in range(max(0, int(iterations))):
        out = scipy.ndimage.uniform_filter(out, size=3, mode=BOUNDARY_MODES[boundary])
    return out


def smooth_grid(
    grid: GridData,
    iterations: int = 1,
    *,
    field: Optional[_ScalarField] = None,
    boundary: _BoundaryPolicy = "mirror",
) -> np.ndarray:
    """Apply a 3x3 box filter to a grid field.

    Parameters
    ----------
    grid : GridData
    iterations : int >= 0
        Number of filter passes.  0 returns a copy.
    field : {'raw', 'normalized'} [optional]
    boundary : {'skip', 'mirror'}
        ``'mirror'`` reflects across the edges;
        ``'skip'`` repeats the edge values.

    Returns
    -------
    smoothed : np.ndarray [shape=(len(ys), len(xs))]

    See Also
    --------
    scipy.ndimage.uniform_filter
    """
    return _smooth(grid.values(field), iterations, boundary)


def sample_grid(
    grid: GridData,
    x,
    y,
    *,
    field: Optional[_ScalarField] = None,
    clamp: bool = True,
):
    """Bilinear lookup of a grid field at arbitrary ratios.

    Log-sampled grids are interpolated in log-ratio space, others in
    linear ratio space.

    Parameters
    ----------
    grid : GridData
    x, y : float or np.ndarray
        Query ratios
    field : {'raw', 'normalized'} [optional]
    clamp : bool
        If ``True``, queries outside the grid are clamped to its edge.
        Otherwise they return NaN.

    Returns
    -------
    value : float or np.ndarray
    """
    values = grid.values(field)
    x, y = np.broadcast_arrays(np.asarray(x, dtype=float), np.asarray(y, dtype=float))

    if grid.log_sampling:
        ax_x, ax_y = grid.log_x, grid.log_y
        with np.errstate(divide="ignore", invalid="ignore"):
            qx, qy = np.log(x), np.log(y)
    else:
        ax_x, ax_y = grid.xs, grid.ys
        qx, qy = x, y

    if clamp:
        qx = np.clip(qx, ax_x[0], ax_x[-1])
        qy = np.clip(qy, ax_y[0], ax_y[-1])

    if len(ax_x) < 2 or len(ax_y) < 2:
        # Degenerate axis: nearest sample
        ix = np.clip(np.searchsorted(ax_x, qx), 0, len(ax_x) - 1)
        iy = np.clip(np.searchsorted(ax_y, qy), 0, len(ax_y) - 1)
        out = values[iy, ix]
    else:
        interp = scipy.interpolate.RegularGridInterpolator(
            (ax_y, ax_x), values, method="linear", bounds_error=False, fill_value=np.nan
        )
        out = interp(np.stack([qy.ravel(), qx.ravel()], axis=-1)).reshape(qx.shape)

    if out.ndim == 0:
        return float(out)
    return out


def symmetry_check(
    grid: GridData,
    samples: int = 24,
    tolerance: float = 1e-6,
    *,
    field: Optional[_ScalarField] = None,
    seed: int = 0,
) -> SymmetryReport:
    """Compare the landscape at ``(x, y)`` and ``(y, x)``.

    With the same timbre on both transposed tones, a triad landscape is
    symmetric under swapping the x-tone and the y-tone.  Points are
    drawn uniformly (in log-ratio) from the square where the x and y
    ranges overlap.

    Parameters
    ----------
    grid : GridData
    samples : int > 0
    tolerance : float >= 0
        Largest relative error for the check to pass
    field : {'raw', 'normalized'} [optional]
    seed : int
        Seed of the sampling generator

    Returns
    -------
    report : SymmetryReport
        An empty report (``samples == 0``, passed) if the ranges
        do not overlap
    """
    lo = max(grid.xs[0], grid.ys[0])
    hi = min(grid.xs[-1], grid.ys[-1])
    if not hi > lo or samples <= 0:
        return SymmetryReport(
            samples=0, max_error=0.0, mean_error=0.0, tolerance=tolerance, passed=True
        )

    rng = np.random.default_rng(seed)
    pts = np.exp(rng.uniform(np.log(lo), np.log(hi), size=(int(samples), 2)))
    a = sample_grid(grid, pts[:, 0], pts[:, 1], field=field)
    b = sample_grid(grid, pts[:, 1], pts[:, 0], field=field)

    scale = np.maximum(np.maximum(np.abs(a), np.abs(b)), tiny(a))
    err = np.abs(a - b) / scale
    max_error = float(np.max(err))
    return SymmetryReport(
        samples=int(samples),
        max_error=max_error,
        mean_error=float(np.mean(err)),
        tolerance=tolerance,
        passed=max_error <= tolerance,
    )
