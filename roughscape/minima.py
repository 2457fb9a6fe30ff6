#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Minima
======

Local minima of a roughness landscape: candidate consonant triads.
Local maxima mark the roughest triads.

.. autosummary::
    :toctree: generated/

    find_minima
    find_maxima
    approximate_ratio
    label_minima
"""

import dataclasses
from dataclasses import dataclass
from fractions import Fraction
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import scipy.ndimage
from numba import jit

from ._typing import _BoundaryPolicy, _Connectivity, _RationalMethod, _ScalarField
from .core.grid import GridData
from .surface import _smooth
from .util.exceptions import ParameterError
from .util.utils import (
    log_distance,
    mirror_index,
    neighbor_offsets,
    ratio_to_cents,
    valid_choice,
)

__all__ = [
    "MinimaPoint",
    "IntervalLabel",
    "DEFAULT_INTERVALS",
    "find_minima",
    "find_maxima",
    "approximate_ratio",
    "label_minima",
]


class IntervalLabel(NamedTuple):
    name: str
    ratio: float


DEFAULT_INTERVALS = (
    IntervalLabel("m3", 6 / 5),
    IntervalLabel("M3", 5 / 4),
    IntervalLabel("P4", 4 / 3),
    IntervalLabel("P5", 3 / 2),
    IntervalLabel("m6", 8 / 5),
    IntervalLabel("M6", 5 / 3),
    IntervalLabel("Octave", 2.0),
)


@dataclass(frozen=True)
class MinimaPoint:
    """A local minimum of a roughness landscape.

    Attributes
    ----------
    x, y : float
        Ratios of the x-tone and y-tone
    ix, iy : int
        Grid indices
    roughness : float
        Field value at the minimum
    depth : float
        Mean value of the cells bordering the plateau minus ``roughness``
    plateau_size : int
        Number of tied cells forming the minimum
    basin_area : float
        Linear-ratio area of the connected region below ``basin_threshold``
    basin_radius : float
        ``sqrt(basin_area / pi)``
    basin_threshold : float
        Field value bounding the basin
    refined : bool
        Whether rational approximations were computed
    refine_passes : int
        Refinement passes of the grid the minimum was found on
    refine_steps : int
        Candidate fractions examined by the rational approximation
    rational_x, rational_y : Fraction or None
    rational_error_x, rational_error_y : float or None
        Signed error of the approximations in cents
    label_x, label_y : str or None
        Names of the nearest known intervals, see `label_minima`
    """

    x: float
    y: float
    ix: int
    iy: int
    roughness: float
    depth: float
    plateau_size: int = 1
    basin_area: float = 0.0
    basin_radius: float = 0.0
    basin_threshold: float = 0.0
    refined: bool = False
    refine_passes: int = 0
    refine_steps: int = 0
    rational_x: Optional[Fraction] = None
    rational_y: Optional[Fraction] = None
    rational_error_x: Optional[float] = None
    rational_error_y: Optional[float] = None
    label_x: Optional[str] = None
    label_y: Optional[str] = None


@jit(nopython=True, nogil=True, cache=True)
def __plateaus(values, offsets, mirror, tol):  # pragma: no cover
    """Label tie-connected plateaus and measure their neighbor rings.

    Flood fill with an explicit stack.  A plateau is a minimum if none
    of the cells bordering it is strictly lower.
    """
    n_rows, n_cols = values.shape
    n_cells = n_rows * n_cols

    labels = np.full((n_rows, n_cols), -1, dtype=np.int64)
    ring = np.full((n_rows, n_cols), -1, dtype=np.int64)
    stack = np.empty(n_cells, dtype=np.int64)

    seeds = np.zeros(n_cells, dtype=np.int64)
    sizes = np.zeros(n_cells, dtype=np.int64)
    ring_mean = np.zeros(n_cells)
    is_min = np.zeros(n_cells, dtype=np.bool_)
    on_edge = np.zeros(n_cells, dtype=np.bool_)

    n_labels = 0
    for start in range(n_cells):
        r0 = start // n_cols
        c0 = start % n_cols
        if labels[r0, c0] >= 0:
            continue

        lab = n_labels
        n_labels += 1
        center = values[r0, c0]
        eps = tol * max(1.0, abs(center))

        labels[r0, c0] = lab
        seeds[lab] = start
        stack[0] = start
        top = 1

        size = 0
        ring_sum = 0.0
        ring_count = 0
        lowest = True
        edge = False

        while top > 0:
            top -= 1
            cell = stack[top]
            r = cell // n_cols
            c = cell % n_cols
            size += 1

            for k in range(offsets.shape[0]):
                rr = r + offsets[k, 0]
                cc = c + offsets[k, 1]
                if rr < 0 or rr >= n_rows or cc < 0 or cc >= n_cols:
                    edge = True
                    if not mirror:
                        continue
                    rr = mirror_index(rr, n_rows)
                    cc = mirror_index(cc, n_cols)

                if labels[rr, cc] == lab:
                    continue

                v = values[rr, cc]
                if labels[rr, cc] < 0 and abs(v - center) <= eps:
                    labels[rr, cc] = lab
                    stack[top] = rr * n_cols + cc
                    top += 1
                    continue

                if v < center - eps:
                    lowest = False
                if ring[rr, cc] != lab:
                    ring[rr, cc] = lab
                    ring_sum += v
                    ring_count += 1

        sizes[lab] = size
        on_edge[lab] = edge
        if ring_count > 0:
            ring_mean[lab] = ring_sum / ring_count
            is_min[lab] = lowest
        else:
            ring_mean[lab] = center

    return (
        seeds[:n_labels],
        sizes[:n_labels],
        ring_mean[:n_labels],
        is_min[:n_labels],
        on_edge[:n_labels],
    )


@jit(nopython=True, nogil=True, cache=True)
def __basin(values, seed, offsets, limit, area, log_x, log_y, max_radius):  # pragma: no cover
    """Flood fill from ``seed`` over cells at or below ``limit``.

    Cells farther than ``max_radius`` (log-ratio distance) from the seed
    are not entered.  Returns the summed cell area and the cell count.
    """
    n_rows, n_cols = values.shape
    visited = np.zeros((n_rows, n_cols), dtype=np.bool_)
    stack = np.empty(n_rows * n_cols, dtype=np.int64)

    r0 = seed // n_cols
    c0 = seed % n_cols
    visited[r0, c0] = True
    stack[0] = seed
    top = 1

    total = 0.0
    count = 0
    while top > 0:
        top -= 1
        cell = stack[top]
        r = cell // n_cols
        c = cell % n_cols
        total += area[r, c]
        count += 1

        for k in range(offsets.shape[0]):
            rr = r + offsets[k, 0]
            cc = c + offsets[k, 1]
            if rr < 0 or rr >= n_rows or cc < 0 or cc >= n_cols:
                continue
            if visited[rr, cc] or values[rr, cc] > limit:
                continue
            dist = np.sqrt((log_x[cc] - log_x[c0]) ** 2 + (log_y[rr] - log_y[r0]) ** 2)
            if dist > max_radius:
                continue
            visited[rr, cc] = True
            stack[top] = rr * n_cols + cc
            top += 1

    return total, count


def _approximate(
    ratio: float, max_den: int, method: str, tolerance_cents: Optional[float]
) -> Tuple[Fraction, int]:
    if not (np.isfinite(ratio) and ratio > 0):
        raise ParameterError(f"ratio={ratio} must be finite and strictly positive")
    if max_den < 1:
        raise ParameterError(f"max_den={max_den} must be at least 1")
    valid_choice("method", method, ("continued", "denominator"))

    def _err(f):
        return abs(float(ratio_to_cents(ratio / float(f))))

    steps = 0
    if method == "continued":
        if tolerance_cents is not None:
            for den in range(1, max_den + 1):
                steps += 1
                f = Fraction(ratio).limit_denominator(den)
                if _err(f) <= tolerance_cents:
                    return f, steps
        steps += 1
        return Fraction(ratio).limit_denominator(max_den), steps

    best, best_err = None, np.inf
    for den in range(1, max_den + 1):
        steps += 1
        f = Fraction(max(1, int(round(ratio * den))), den)
        err = _err(f)
        if tolerance_cents is not None and err <= tolerance_cents:
            return f, steps
        if err < best_err:
            best, best_err = f, err
    return best, steps


def approximate_ratio(
    ratio: float,
    max_den: int = 32,
    method: _RationalMethod = "continued",
    *,
    tolerance_cents: Optional[float] = None,
) -> Fraction:
    """Approximate a frequency ratio by a fraction with a bounded denominator.

    Parameters
    ----------
    ratio : float > 0
    max_den : int >= 1
        Largest allowed denominator
    method : {'continued', 'denominator'}
        ``'continued'`` uses the best continued-fraction approximation;
        ``'denominator'`` tries every denominator up to ``max_den``
        with the nearest numerator.
    tolerance_cents : float [optional]
        If given, return the first (smallest denominator) fraction
        within this many cents instead of the closest one.

    Returns
    -------
    fraction : fractions.Fraction

    Raises
    ------
    ParameterError
        If ``ratio`` is not strictly positive, ``max_den < 1``, or
        ``method`` is unknown

    Examples
    --------
    >>> roughscape.approximate_ratio(1.4983)
    Fraction(3, 2)
    >>> roughscape.approximate_ratio(1.26, max_den=8)
    Fraction(5, 4)
    >>> roughscape.approximate_ratio(1.26, max_den=64)
    Fraction(63, 50)
    """
    return _approximate(ratio, max_den, method, tolerance_cents)[0]


def find_minima(
    grid: GridData,
    *,
    field: Optional[_ScalarField] = None,
    connectivity: _Connectivity = 8,
    boundary: _BoundaryPolicy = "skip",
    neighborhood: int = 1,
    smoothing: int = 0,
    tie_tolerance: float = 1e-12,
    min_depth: float = 0.0,
    basin_threshold: float = 0.5,
    max_radius: Optional[float] = None,
    refine: bool = False,
    max_den: int = 32,
    rational_method: _RationalMethod = "continued",
    dedupe_tolerance: float = 1e-3,
    max_count: Optional[int] = None,
) -> List[MinimaPoint]:
    """Locate the local minima of a roughness landscape.

    Cells whose values agree within ``tie_tolerance`` (relative to
    ``max(1, |value|)``) are grouped into plateaus by flood fill.  A
    plateau is a minimum if no cell bordering it is lower.  Its depth
    is the mean of the bordering cells minus the plateau value.

    The basin of a minimum is the connected region, grown from the
    minimum, whose values stay at or below
    ``value + basin_threshold * depth``.  Its area is the sum of the
    linear-ratio cell areas.

    Parameters
    ----------
    grid : GridData
    field : {'raw', 'normalized'} [optional]
        Defaults to ``grid.scalar_field``
    connectivity : {4, 8}
        Neighborhood used for plateaus and basins
    boundary : {'skip', 'mirror'}
        ``'skip'`` discards plateaus touching the grid edge;
        ``'mirror'`` reflects out-of-bounds neighbors back inside.
    neighborhood : int >= 1
        A minimum must also be the lowest value within this many cells
    smoothing : int >= 0
        Box-filter passes applied before searching
    tie_tolerance : float >= 0
    min_depth : float
        Minima shallower than this are discarded
    basin_threshold : float >= 0
        Basin limit as a fraction of the depth
    max_radius : float [optional]
        Largest log-ratio distance of a basin cell from the minimum
    refine : bool
        Compute rational approximations of each minimum
    max_den : int >= 1
        Denominator bound for ``refine``
    rational_method : {'continued', 'denominator'}
        See `approximate_ratio`
    dedupe_tolerance : float >= 0
        Minima within this log-ratio distance of a deeper minimum are
        dropped
    max_count : int [optional]
        Keep at most this many minima

    Returns
    -------
    minima : list of MinimaPoint
        Sorted by descending depth, then ascending roughness

    Raises
    ------
    ParameterError
        For an unknown connectivity, boundary, or field

    See Also
    --------
    roughscape.smooth_grid
    label_minima

    Examples
    --------
    >>> minima = roughscape.find_minima(grid, refine=True, max_count=5)
    >>> [str(m.rational_x) for m in minima]
    """
    valid_choice("boundary", boundary, ("skip", "mirror"))
    offsets = neighbor_offsets(connectivity)
    if neighborhood < 1:
        raise ParameterError(f"neighborhood={neighborhood} must be at least 1")

    values = grid.values(field)
    search = _smooth(values, smoothing, boundary) if smoothing > 0 else values
    search = np.ascontiguousarray(search, dtype=np.float64)
    mirror = boundary == "mirror"

    seeds, sizes, ring_mean, is_min, on_edge = __plateaus(
        search, offsets, mirror, float(tie_tolerance)
    )

    candidates = np.flatnonzero(is_min if mirror else is_min & ~on_edge)

    if neighborhood > 1 and candidates.size:
        lowest = scipy.ndimage.minimum_filter(
            search, size=2 * neighborhood + 1, mode="mirror" if mirror else "nearest"
        ).ravel()
        flat = search.ravel()
        eps = tie_tolerance * np.maximum(1.0, np.abs(flat[seeds[candidates]]))
        candidates = candidates[flat[seeds[candidates]] <= lowest[seeds[candidates]] + eps]

    n_cols = len(grid.xs)
    area = np.ascontiguousarray(grid.cell_area.reshape(grid.shape), dtype=np.float64)
    radius = np.inf if max_radius is None else float(max_radius)

    found = []
    for lab in candidates:
        seed = int(seeds[lab])
        iy, ix = divmod(seed, n_cols)
        center = search[iy, ix]
        depth = float(ring_mean[lab] - center)
        if depth < min_depth:
            continue

        limit = float(center + basin_threshold * depth)
        basin_area, _ = __basin(
            search, seed, offsets, limit, area, grid.log_x, grid.log_y, radius
        )
        found.append((depth, float(values[iy, ix]), iy, ix, int(sizes[lab]), basin_area, limit))

    found.sort(key=lambda m: (-m[0], m[1], m[2], m[3]))

    minima: List[MinimaPoint] = []
    for depth, value, iy, ix, size, basin_area, limit in found:
        x = float(grid.xs[ix])
        y = float(grid.ys[iy])
        if any(log_distance(x, y, m.x, m.y) <= dedupe_tolerance for m in minima):
            continue

        extra = {}
        if refine:
            rx, steps_x = _approximate(x, max_den, rational_method, None)
            ry, steps_y = _approximate(y, max_den, rational_method, None)
            extra = dict(
                refined=True,
                refine_steps=steps_x + steps_y,
                rational_x=rx,
                rational_y=ry,
                rational_error_x=float(ratio_to_cents(x / float(rx))),
                rational_error_y=float(ratio_to_cents(y / float(ry))),
            )

        minima.append(
            MinimaPoint(
                x=x,
                y=y,
                ix=int(ix),
                iy=int(iy),
                roughness=value,
                depth=depth,
                plateau_size=size,
                basin_area=float(basin_area),
                basin_radius=float(np.sqrt(basin_area / np.pi)),
                basin_threshold=limit,
                refine_passes=grid.refine_passes,
                **extra,
            )
        )
        if max_count is not None and len(minima) >= max_count:
            break

    return minima


def find_maxima(
    grid: GridData,
    *,
    field: Optional[_ScalarField] = None,
    neighborhood: int = 1,
    smoothing: int = 0,
    max_count: Optional[int] = None,
) -> List[MinimaPoint]:
    """Locate the roughest points of a landscape.

    A cell is a maximum if it is strictly greater than every other cell
    within ``neighborhood`` cells (a square window, truncated at the grid
    edge).  Its ``depth`` is its height above the lowest cell of that
    window.

    Parameters
    ----------
    grid : GridData
    field : {'raw', 'normalized'} [optional]
        Defaults to ``grid.scalar_field``
    neighborhood : int >= 1
        Half-width of the search window
    smoothing : int >= 0
        Box-filter passes applied before searching
    max_count : int [optional]
        Keep at most this many maxima

    Returns
    -------
    maxima : list of MinimaPoint
        Sorted by descending roughness.  ``roughness`` is the value of
        ``field`` before smoothing.

    See Also
    --------
    find_minima
    scipy.ndimage.maximum_filter

    Examples
    --------
    >>> peaks = roughscape.find_maxima(grid, neighborhood=2, max_count=3)
    >>> [(m.x, m.y) for m in peaks]
    """
    if neighborhood < 1:
        raise ParameterError(f"neighborhood={neighborhood} must be at least 1")
    radius = int(round(neighborhood))

    values = grid.values(field)
    if values.size == 0:
        return []
    search = _smooth(values, smoothing, "mirror") if smoothing > 0 else np.asarray(values, dtype=float)

    footprint = np.ones((2 * radius + 1, 2 * radius + 1), dtype=bool)
    footprint[radius, radius] = False
    around_max = scipy.ndimage.maximum_filter(
        search, footprint=footprint, mode="constant", cval=-np.inf
    )
    around_min = scipy.ndimage.minimum_filter(
        search, footprint=footprint, mode="constant", cval=np.inf
    )
    depth = search - np.minimum(search, around_min)

    peaks = np.flatnonzero(search > around_max)
    peaks = peaks[np.argsort(-values.ravel()[peaks], kind="stable")]
    if max_count is not None:
        peaks = peaks[: max(0, int(max_count))]

    n_cols = len(grid.xs)
    maxima = []
    for k in peaks:
        iy, ix = divmod(int(k), n_cols)
        maxima.append(
            MinimaPoint(
                x=float(grid.xs[ix]),
                y=float(grid.ys[iy]),
                ix=ix,
                iy=iy,
                roughness=float(values[iy, ix]),
                depth=float(depth[iy, ix]),
                refine_passes=grid.refine_passes,
            )
        )
    return maxima


def _nearest_label(
    ratio: float, intervals: Sequence[IntervalLabel], tolerance_cents: float
) -> Optional[str]:
    best, best_err = None, np.inf
    for interval in intervals:
        err = abs(float(ratio_to_cents(ratio / interval.ratio)))
        if err < best_err:
            best, best_err = interval.name, err
    return best if best_err <= tolerance_cents else None


def label_minima(
    minima: Sequence[MinimaPoint],
    intervals: Sequence[IntervalLabel] = DEFAULT_INTERVALS,
    tolerance_cents: float = 20.0,
) -> List[MinimaPoint]:
    """Name each minimum's coordinates after the nearest known interval.

    Returns new `MinimaPoint` objects with ``label_x`` and ``label_y``
    set, or ``None`` where no interval lies within ``tolerance_cents``.

    Examples
    --------
    >>> labeled = roughscape.label_minima(minima)
    >>> [(m.label_x, m.label_y) for m in labeled]
    """
    return [
        dataclasses.replace(
            m,
            label_x=_nearest_label(m.x, intervals, tolerance_cents),
            label_y=_nearest_label(m.y, intervals, tolerance_cents),
        )
        for m in minima
    ]
