#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Sampling axes and their refinement"""

import warnings
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .._typing import _Range, _ResolutionMode
from ..util.exceptions import ParameterError
from ..util.utils import cents_to_ratio, fold_ratio, is_positive_int, unique_sorted, valid_range

__all__ = [
    "SamplingConfig",
    "DEFAULT_SAMPLING",
    "COMMON_INTERVALS",
    "validate_sampling",
    "build_axis",
    "resolve_steps",
    "fold_axis",
    "refine_axis_fixed",
    "refine_axis_window",
    "refine_axis_midpoints",
    "merge_axes",
    "cap_axis",
    "cell_metrics",
]

# Just intervals that receive extra samples
COMMON_INTERVALS = (6 / 5, 5 / 4, 4 / 3, 3 / 2, 5 / 3, 2.0)

# Combined partial count above which auto mode picks the coarse resolution
AUTO_HEAVY_PARTIALS = 90

MIN_AXIS_VALUE = 1e-6

# Samples closer than this are the same sample
MERGE_TOLERANCE = 1e-6


@dataclass(frozen=True)
class SamplingConfig:
    """Domain, resolution and refinement settings of a landscape grid.

    Attributes
    ----------
    x_range, y_range : (float, float)
        Ratio ranges of the x-tone and the y-tone
    x_steps, y_steps : int > 0
        Resolution in ``'fixed'`` mode
    log_sampling : bool
        Space samples geometrically instead of linearly
    fold_octave : bool
        Wrap every sample into the octave ``[1, 2]``
    resolution_mode : {'fixed', 'auto'}
    auto_low_steps, auto_high_steps : int > 0
        Resolutions chosen by ``'auto'`` mode for heavy and light timbres
    max_steps : int > 0
        Hard cap on samples per axis
    progressive_refine : bool
        Run the refinement loop after the baseline pass
    progressive_window : float > 0
        Half-width, in natural-log units, of the first refinement window
        around each common interval.  It halves on every pass.
    progressive_steps : int > 0
        Samples added per axis by one window refinement pass
    refine_fixed : bool
        Add bands around `COMMON_INTERVALS`
    refine_gradient : bool
        Add midpoints where adjacent raw values differ by more than
        ``gradient_threshold``
    refine_minima : bool
        Add bands around the minima of the previous pass
    refine_band_cents : float > 0
        Half-width of a refinement band
    refine_density : int > 0
        Subdivisions of a refinement band
    gradient_threshold : float >= 0
    minima_neighborhood : int >= 0
        Cells around a minimum that a minima band may cover
    minima_smoothing : int >= 0
        Box-filter passes before locating minima during refinement
    refine_base_steps : int > 0
        Determines the refinement pass budget,
        ``clip(refine_base_steps // 8, 1, 8)``
    """

    x_range: _Range = (1.0, 2.0)
    y_range: _Range = (1.0, 2.0)
    x_steps: int = 256
    y_steps: int = 256
    log_sampling: bool = True
    fold_octave: bool = False
    resolution_mode: _ResolutionMode = "fixed"
    auto_low_steps: int = 128
    auto_high_steps: int = 256
    max_steps: int = 512
    progressive_refine: bool = False
    progressive_window: float = 0.05
    progressive_steps: int = 128
    refine_fixed: bool = True
    refine_gradient: bool = False
    refine_minima: bool = False
    refine_band_cents: float = 14.0
    refine_density: int = 3
    gradient_threshold: float = 0.06
    minima_neighborhood: int = 2
    minima_smoothing: int = 1
    refine_base_steps: int = 24

    @property
    def refine_pass_budget(self) -> int:
        return int(np.clip(self.refine_base_steps // 8, 1, 8))


DEFAULT_SAMPLING = SamplingConfig()


def validate_sampling(cfg: SamplingConfig) -> bool:
    """Check a sampling configuration before anything is allocated.

    Parameters
    ----------
    cfg : SamplingConfig

    Returns
    -------
    valid : bool
        ``True`` if the configuration is valid

    Raises
    ------
    ParameterError
        For non-positive or non-integer step counts, ``max_steps``
        below ``auto_low_steps``, ``auto_high_steps`` below
        ``auto_low_steps``, empty or non-positive ranges, an unknown
        resolution mode, or non-positive refinement parameters.
    """
    for name in (
        "x_steps",
        "y_steps",
        "auto_low_steps",
        "auto_high_steps",
        "max_steps",
        "progressive_steps",
        "refine_density",
        "refine_base_steps",
    ):
        value = getattr(cfg, name)
        if not is_positive_int(value):
            raise ParameterError(f"{name}={value!r} must be a positive integer")

    for name in ("minima_neighborhood", "minima_smoothing"):
        value = getattr(cfg, name)
        if not (is_positive_int(value) or (isinstance(value, (int, np.integer)) and value == 0)):
            raise ParameterError(f"{name}={value!r} must be a non-negative integer")

    if cfg.max_steps < cfg.auto_low_steps:
        raise ParameterError(
            f"max_steps={cfg.max_steps} must be at least auto_low_steps={cfg.auto_low_steps}"
        )
    if cfg.auto_high_steps < cfg.auto_low_steps:
        raise ParameterError(
            f"auto_high_steps={cfg.auto_high_steps} must be at least "
            f"auto_low_steps={cfg.auto_low_steps}"
        )
    if cfg.resolution_mode not in ("fixed", "auto"):
        raise ParameterError(f"Unsupported resolution_mode={cfg.resolution_mode!r}")

    valid_range("x_range", cfg.x_range)
    valid_range("y_range", cfg.y_range)

    if not (np.isfinite(cfg.progressive_window) and cfg.progressive_window > 0):
        raise ParameterError(
            f"progressive_window={cfg.progressive_window} must be strictly positive"
        )
    if not (np.isfinite(cfg.refine_band_cents) and cfg.refine_band_cents > 0):
        raise ParameterError(
            f"refine_band_cents={cfg.refine_band_cents} must be strictly positive"
        )
    if not (np.isfinite(cfg.gradient_threshold) and cfg.gradient_threshold >= 0):
        raise ParameterError(
            f"gradient_threshold={cfg.gradient_threshold} must be non-negative"
        )
    return True


def build_axis(lo: float, hi: float, steps: int, log_sampling: bool) -> np.ndarray:
    """Build a strictly increasing sampling axis.

    Parameters
    ----------
    lo, hi : float
        Axis bounds.  ``lo`` is floored at ``1e-6``.
    steps : int
        Number of samples, at least 2
    log_sampling : bool
        If ``True``, samples are spaced geometrically

    Returns
    -------
    axis : np.ndarray [shape=(max(2, steps),)]

    Examples
    --------
    >>> roughscape.core.build_axis(1, 4, 3, log_sampling=True)
    array([1., 2., 4.])
    >>> roughscape.core.build_axis(1, 2, 3, log_sampling=False)
    array([1. , 1.5, 2. ])
    """
    steps = max(2, int(round(steps)))
    lo = max(MIN_AXIS_VALUE, float(lo))
    hi = max(lo + MIN_AXIS_VALUE, float(hi))

    if log_sampling:
        axis = np.geomspace(lo, hi, num=steps)
    else:
        axis = np.linspace(lo, hi, num=steps)

    # Pin the endpoints exactly
    axis[0] = lo
    axis[-1] = hi
    return axis


def resolve_steps(cfg: SamplingConfig, n_partials: int) -> Tuple[int, int]:
    """Resolution ``(x_steps, y_steps)`` for a tone of ``n_partials`` partials.

    In ``'fixed'`` mode this is ``(cfg.x_steps, cfg.y_steps)``.
    In ``'auto'`` mode, three tones of ``n_partials`` partials each
    are considered heavy above 90 combined partials and receive
    ``auto_low_steps``; lighter timbres receive ``auto_high_steps``.
    The result is clipped to ``[2, max_steps]``.
    """
    if cfg.resolution_mode == "fixed":
        steps = (cfg.x_steps, cfg.y_steps)
    elif cfg.resolution_mode == "auto":
        heavy = 3 * max(0, int(n_partials)) > AUTO_HEAVY_PARTIALS
        n = cfg.auto_low_steps if heavy else cfg.auto_high_steps
        steps = (n, n)
    else:
        raise ParameterError(f"Unsupported resolution_mode={cfg.resolution_mode!r}")

    return tuple(int(np.clip(s, 2, max(2, cfg.max_steps))) for s in steps)  # type: ignore


def fold_axis(values: Iterable[float]) -> np.ndarray:
    """Fold every sample into the octave ``[1, 2]`` and de-duplicate."""
    return unique_sorted([fold_ratio(v) for v in values])


def _band(band_cents: float) -> float:
    return float(cents_to_ratio(max(0.1, band_cents)))


def refine_axis_fixed(
    axis: np.ndarray,
    targets: Iterable[float],
    band_cents: float,
    density: int,
    *,
    bounds: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """Add geometric bands of samples around target ratios.

    Each target ``t`` receives ``density + 1`` geometrically spaced
    samples from ``t / band`` to ``t * band``, with
    ``band = 2 ** (band_cents / 1200)``.

    Parameters
    ----------
    axis : np.ndarray
        Existing samples
    targets : iterable of float
    band_cents : float > 0
        Half-width of each band in cents
    density : int
        Band subdivisions, clipped to ``[1, 12]``
    bounds : (float, float) [optional]
        Samples outside these bounds are discarded.
        Defaults to the range of ``axis``.

    Returns
    -------
    refined : np.ndarray
        Sorted union of ``axis`` and the new samples
    """
    axis = np.asarray(axis, dtype=float)
    targets = [t for t in targets if np.isfinite(t) and t > 0]
    if not targets or axis.size == 0:
        return axis

    if bounds is None:
        bounds = (axis[0], axis[-1])
    lo, hi = bounds

    band = _band(band_cents)
    density = int(np.clip(round(density), 1, 12))
    extra = np.concatenate(
        [np.geomspace(t / band, t * band, num=density + 1) for t in targets]
    )
    extra = extra[(extra >= lo) & (extra <= hi)]
    return merge_axes(axis, extra)


def refine_axis_window(
    axis: np.ndarray,
    targets: Iterable[float],
    window: float,
    steps: int,
) -> np.ndarray:
    """Add evenly log-spaced samples within ``window`` of each target.

    The window ``[t * exp(-window), t * exp(window)]`` of each target
    ``t`` inside the axis range receives ``steps // len(targets)``
    samples (at least 2), so that ``steps`` bounds the total added.
    """
    axis = np.asarray(axis, dtype=float)
    targets = [t for t in targets if axis.size and axis[0] <= t <= axis[-1]]
    if not targets or window <= 0:
        return axis

    per_target = max(2, int(steps) // len(targets))
    extra = np.concatenate(
        [
            np.geomspace(t * np.exp(-window), t * np.exp(window), num=per_target)
            for t in targets
        ]
    )
    extra = extra[(extra >= axis[0]) & (extra <= axis[-1])]
    return merge_axes(axis, extra)


def refine_axis_midpoints(
    axis: np.ndarray, indices: Iterable[int], log_sampling: bool = True
) -> np.ndarray:
    """Insert a midpoint after each listed index.

    The midpoint of ``axis[k]`` and ``axis[k + 1]`` is geometric
    (``sqrt(axis[k] * axis[k + 1])``) when ``log_sampling`` and
    arithmetic otherwise.  Out-of-range indices are ignored.
    """
    axis = np.asarray(axis, dtype=float)
    idx = np.unique(np.asarray(list(indices), dtype=int))
    idx = idx[(idx >= 0) & (idx < axis.size - 1)]
    if idx.size == 0:
        return axis

    if log_sampling:
        mid = np.sqrt(axis[idx] * axis[idx + 1])
    else:
        mid = 0.5 * (axis[idx] + axis[idx + 1])
    return merge_axes(axis, mid)


def merge_axes(*axes: np.ndarray) -> np.ndarray:
    """Sorted union of several axes, merging samples within 1e-6.

    Of two merged samples, the one from the earlier axis is kept, so
    passing the existing axis first never moves an existing sample.

    Examples
    --------
    >>> roughscape.core.merge_axes([1.0, 2.0], [1.5, 2.0 - 1e-9])
    array([1. , 1.5, 2. ])
    """
    if not axes:
        return np.empty(0)

    values = np.concatenate([np.ravel(np.asarray(a, dtype=float)) for a in axes])
    rank = np.concatenate([np.full(np.size(a), k) for k, a in enumerate(axes)])
    finite = np.isfinite(values)
    values, rank = values[finite], rank[finite]

    order = np.argsort(values, kind="stable")
    merged: List[float] = []
    ranks: List[int] = []
    for v, r in zip(values[order], rank[order]):
        if merged and abs(v - merged[-1]) <= MERGE_TOLERANCE:
            if r < ranks[-1]:
                merged[-1], ranks[-1] = v, r
            continue
        merged.append(v)
        ranks.append(r)
    return np.asarray(merged, dtype=float)


def cap_axis(
    axis: np.ndarray, max_steps: int, keep: Optional[np.ndarray] = None
) -> np.ndarray:
    """Limit an axis to ``max_steps`` samples.

    The endpoints and the samples of ``keep`` (if they are in ``axis``)
    are retained first.  Remaining slots are filled with evenly spaced
    picks from the other samples.  A warning is issued if samples are
    dropped.

    Parameters
    ----------
    axis : np.ndarray
    max_steps : int >= 2
    keep : np.ndarray [optional]
        Samples to retain preferentially, e.g. the previous axis

    Returns
    -------
    capped : np.ndarray
    """
    axis = np.asarray(axis, dtype=float)
    max_steps = max(2, int(max_steps))
    n = axis.size
    if n <= max_steps:
        return axis

    required = np.zeros(n, dtype=bool)
    required[[0, -1]] = True
    if keep is not None and len(keep):
        keep = np.asarray(keep, dtype=float)
        pos = np.clip(np.searchsorted(axis, keep), 0, n - 1)
        hit = np.isclose(axis[pos], keep, rtol=0, atol=1e-12)
        required[pos[hit]] = True

    if np.count_nonzero(required) >= max_steps:
        candidates = np.flatnonzero(required)
        picks = candidates[np.unique(np.linspace(0, len(candidates) - 1, max_steps).astype(int))]
    else:
        others = np.flatnonzero(~required)
        slots = max_steps - np.count_nonzero(required)
        extra = others[np.unique(np.linspace(0, len(others) - 1, slots).astype(int))]
        picks = np.union1d(np.flatnonzero(required), extra)

    warnings.warn(
        f"Axis capped at max_steps={max_steps}; {n - len(picks)} samples dropped",
        stacklevel=2,
    )
    return axis[np.sort(picks)]


def cell_metrics(xs: np.ndarray, ys: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Linear-space cell sizes of a possibly non-uniform grid.

    Interior widths are central differences ``(x[k+1] - x[k-1]) / 2``;
    the edges use the one-sided spacing.  A single-sample axis has
    zero width.

    Returns
    -------
    cell_width : np.ndarray [shape=(len(xs),)]
    cell_height : np.ndarray [shape=(len(ys),)]
    cell_area : np.ndarray [shape=(len(ys) * len(xs),)]
        Row-major, ``cell_area[iy * len(xs) + ix]``
    """

    def _spacing(axis):
        axis = np.asarray(axis, dtype=float)
        if axis.size < 2:
            return np.zeros(axis.size)
        return np.gradient(axis)

    width = _spacing(xs)
    height = _spacing(ys)
    area = np.outer(height, width).ravel()
    return width, height, area
