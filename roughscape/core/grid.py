#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Triad roughness landscapes sampled on a grid"""

import dataclasses
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
from joblib import Parallel, delayed, effective_n_jobs

from .._typing import _NormalizationMode, _ScalarField
from ..util.exceptions import CancelledError, ParameterError
from ..util.utils import log_distance, tiny, valid_choice
from .pairs import PairIndexCache
from .roughness import (
    DEFAULT_ROUGHNESS,
    SETHARES_CONSTANTS,
    RoughnessConstants,
    RoughnessOptions,
    RoughnessResult,
    pool_from_tones,
    pool_roughness,
    validate_constants,
)
from .sampling import (
    COMMON_INTERVALS,
    DEFAULT_SAMPLING,
    SamplingConfig,
    build_axis,
    cap_axis,
    cell_metrics,
    fold_axis,
    merge_axes,
    refine_axis_fixed,
    refine_axis_midpoints,
    refine_axis_window,
    resolve_steps,
    validate_sampling,
)
from .timbre import SpectrumTemplate, TimbreConfig, build_template, build_tone, triad_scale

__all__ = [
    "GridData",
    "GridDiagnosticsSummary",
    "GridPoint",
    "GridTile",
    "compute_point",
    "compute_tile",
    "compute_grid",
    "normalize_grid",
]

NORMALIZATION_MODES = ("none", "energy", "max", "reference")
SCALAR_FIELDS = ("raw", "normalized")

# Minima closer than this (log distance) are the same minimum across passes
MINIMA_MATCH_TOLERANCE = 1e-3


@dataclass(frozen=True)
class GridDiagnosticsSummary:
    """Per-point diagnostics summed over a grid."""

    points: int = 0
    original_partials: int = 0
    pruned_partials: int = 0
    invalid_partials: int = 0
    skipped_pairs: int = 0
    total_pairs: int = 0
    silent_points: int = 0


@dataclass(frozen=True, eq=False)
class GridData:
    """A sampled roughness landscape.

    Point values are stored flat in row-major order:
    the point ``(xs[ix], ys[iy])`` lives at ``iy * len(xs) + ix``.

    Attributes
    ----------
    xs, ys : np.ndarray
        Strictly increasing sample ratios of the x-tone and y-tone
    log_x, log_y : np.ndarray
        Natural logarithms of ``xs`` and ``ys``
    raw : np.ndarray [shape=(len(ys) * len(xs),)]
        Roughness values
    normalized : np.ndarray [shape=(len(ys) * len(xs),)]
        ``raw / norm_scale``
    cell_width, cell_height : np.ndarray
        Linear-ratio cell sizes along each axis
    cell_area : np.ndarray [shape=(len(ys) * len(xs),)]
    diagnostics : GridDiagnosticsSummary
    normalization_mode : str
    norm_scale : float
        Divisor applied to obtain ``normalized``
    min_raw, max_raw, min_norm, max_norm : float
    log_sampling, fold_octave : bool
        Sampling flags the grid was built with
    scalar_field : {'raw', 'normalized'}
        Default field for analysis functions
    refine_passes : int
        Number of completed refinement passes
    diag_original, diag_pruned, diag_invalid : np.ndarray or None
        Per-point partial counts
    diag_skipped, diag_total : np.ndarray or None
        Per-point pair counts
    diag_max_pair : np.ndarray or None
        Per-point largest pair contribution
    diag_silent : np.ndarray or None
        Per-point silent flags
    """

    xs: np.ndarray
    ys: np.ndarray
    log_x: np.ndarray
    log_y: np.ndarray
    raw: np.ndarray
    normalized: np.ndarray
    cell_width: np.ndarray
    cell_height: np.ndarray
    cell_area: np.ndarray
    diagnostics: GridDiagnosticsSummary
    normalization_mode: str = "none"
    norm_scale: float = 1.0
    min_raw: float = 0.0
    max_raw: float = 0.0
    min_norm: float = 0.0
    max_norm: float = 0.0
    log_sampling: bool = True
    fold_octave: bool = False
    scalar_field: str = "normalized"
    refine_passes: int = 0
    diag_original: Optional[np.ndarray] = None
    diag_pruned: Optional[np.ndarray] = None
    diag_invalid: Optional[np.ndarray] = None
    diag_skipped: Optional[np.ndarray] = None
    diag_total: Optional[np.ndarray] = None
    diag_max_pair: Optional[np.ndarray] = None
    diag_silent: Optional[np.ndarray] = None

    @property
    def shape(self) -> Tuple[int, int]:
        """``(len(ys), len(xs))``"""
        return len(self.ys), len(self.xs)

    @property
    def points(self) -> int:
        return len(self.ys) * len(self.xs)

    def index(self, ix: int, iy: int) -> int:
        return iy * len(self.xs) + ix

    def values(self, field: Optional[_ScalarField] = None) -> np.ndarray:
        """The ``raw`` or ``normalized`` field as a ``(len(ys), len(xs))`` view."""
        if field is None:
            field = self.scalar_field  # type: ignore
        valid_choice("field", field, SCALAR_FIELDS)
        data = self.raw if field == "raw" else self.normalized
        return data.reshape(self.shape)


@dataclass(frozen=True, eq=False)
class GridPoint:
    x: float
    y: float
    raw: float
    normalized: float
    result: RoughnessResult


@dataclass(frozen=True, eq=False)
class GridTile:
    """A rectangular block of a grid, computed on its own.

    Attributes
    ----------
    x_start, y_start : int
        Index of the tile's first column and row in the full axes
    xs, ys : np.ndarray
        Sample ratios covered by the tile
    raw, normalized : np.ndarray [shape=(len(ys) * len(xs),)]
        Row-major values, as in `GridData`
    norm_scale : float
    diagnostics : GridDiagnosticsSummary
    diag_original, diag_pruned, diag_invalid, diag_skipped, diag_total : np.ndarray
    diag_max_pair : np.ndarray
    diag_silent : np.ndarray
    """

    x_start: int
    y_start: int
    xs: np.ndarray
    ys: np.ndarray
    raw: np.ndarray
    normalized: np.ndarray
    norm_scale: float
    diagnostics: GridDiagnosticsSummary
    diag_original: np.ndarray
    diag_pruned: np.ndarray
    diag_invalid: np.ndarray
    diag_skipped: np.ndarray
    diag_total: np.ndarray
    diag_max_pair: np.ndarray
    diag_silent: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        return len(self.ys), len(self.xs)

    def values(self, field: _ScalarField = "raw") -> np.ndarray:
        valid_choice("field", field, SCALAR_FIELDS)
        data = self.raw if field == "raw" else self.normalized
        return data.reshape(self.shape)


class _Landscape(object):
    """Prepared tones of a triad landscape."""

    def __init__(
        self,
        template: SpectrumTemplate,
        transposed: SpectrumTemplate,
        base_freq: float,
        constants: RoughnessConstants,
        options: RoughnessOptions,
        cache: PairIndexCache,
    ):
        self.scale = triad_scale(template.config.triad_energy_mode)
        self.root = build_tone(template, base_freq, 0, self.scale)
        self.transposed = transposed
        self.base_freq = base_freq
        self.constants = constants
        self.options = options
        self.cache = cache

    def evaluate(self, x: float, y: float, top_n: int = 0) -> RoughnessResult:
        tones = (
            self.root,
            build_tone(self.transposed, self.base_freq * x, 1, self.scale),
            build_tone(self.transposed, self.base_freq * y, 2, self.scale),
        )
        return pool_roughness(
            pool_from_tones(tones),
            self.constants,
            self.options,
            cache=self.cache,
            top_n=top_n,
        )

    def row(self, y: float, xs: Sequence[float]) -> List[RoughnessResult]:
        return [self.evaluate(x, y) for x in xs]


class _Samples(object):
    """Grid values under construction, shaped ``(len(ys), len(xs))``."""

    _int_fields = ("original", "pruned", "invalid", "skipped", "total")

    def __init__(self, ny: int, nx: int):
        self.raw = np.zeros((ny, nx))
        self.max_pair = np.zeros((ny, nx))
        self.silent = np.zeros((ny, nx), dtype=bool)
        for name in self._int_fields:
            setattr(self, name, np.zeros((ny, nx), dtype=np.int64))

    def _arrays(self):
        return ["raw", "max_pair", "silent"] + list(self._int_fields)

    def put(self, iy: int, cols: np.ndarray, results: Sequence[RoughnessResult]) -> None:
        for ix, res in zip(cols, results):
            d = res.diagnostics
            self.raw[iy, ix] = res.roughness
            self.max_pair[iy, ix] = d.max_pair_contribution
            self.silent[iy, ix] = d.silent
            self.original[iy, ix] = d.original_partials
            self.pruned[iy, ix] = d.pruned_partials
            self.invalid[iy, ix] = d.invalid_partials
            self.skipped[iy, ix] = d.skipped_pairs
            self.total[iy, ix] = d.total_pairs

    def summary(self) -> GridDiagnosticsSummary:
        return GridDiagnosticsSummary(
            points=int(self.raw.size),
            original_partials=int(self.original.sum()),
            pruned_partials=int(self.pruned.sum()),
            invalid_partials=int(self.invalid.sum()),
            skipped_pairs=int(self.skipped.sum()),
            total_pairs=int(self.total.sum()),
            silent_points=int(self.silent.sum()),
        )

    def diagnostics(self) -> dict:
        """Flattened per-point arrays, keyed by their `GridData` field names."""
        return dict(
            diag_original=self.original.ravel().copy(),
            diag_pruned=self.pruned.ravel().copy(),
            diag_invalid=self.invalid.ravel().copy(),
            diag_skipped=self.skipped.ravel().copy(),
            diag_total=self.total.ravel().copy(),
            diag_max_pair=self.max_pair.ravel().copy(),
            diag_silent=self.silent.ravel().copy(),
        )

    def carry(self, old: "_Samples", rows: np.ndarray, cols: np.ndarray) -> None:
        """Copy old values; ``rows``/``cols`` map new to old indices, -1 if new."""
        keep_y = np.flatnonzero(rows >= 0)
        keep_x = np.flatnonzero(cols >= 0)
        if keep_y.size == 0 or keep_x.size == 0:
            return
        dst = np.ix_(keep_y, keep_x)
        src = np.ix_(rows[keep_y], cols[keep_x])
        for name in self._arrays():
            getattr(self, name)[dst] = getattr(old, name)[src]


def _match_axis(old: np.ndarray, new: np.ndarray) -> np.ndarray:
    """Index of each new sample in ``old``, or -1 if it was not sampled."""
    if old.size == 0:
        return np.full(new.size, -1, dtype=np.int64)
    pos = np.clip(np.searchsorted(old, new), 0, old.size - 1)
    hit = np.isclose(old[pos], new, rtol=0, atol=1e-12)
    prev = np.clip(pos - 1, 0, old.size - 1)
    hit_prev = ~hit & np.isclose(old[prev], new, rtol=0, atol=1e-12)
    pos = np.where(hit_prev, prev, pos)
    return np.where(hit | hit_prev, pos, -1).astype(np.int64)


def _check_cancel(should_cancel: Optional[Callable[[], bool]]) -> None:
    if should_cancel is not None and should_cancel():
        raise CancelledError("Grid computation cancelled")


def _fill(
    land: _Landscape,
    xs: np.ndarray,
    ys: np.ndarray,
    samples: _Samples,
    todo: List[Tuple[int, np.ndarray]],
    should_cancel: Optional[Callable[[], bool]],
    n_jobs: Optional[int],
) -> None:
    """Evaluate the listed ``(row, columns)`` cells, checking for cancellation between rows."""

    def _row(iy, cols):
        return land.row(ys[iy], xs[cols])

    if n_jobs is None or effective_n_jobs(n_jobs) == 1:
        for iy, cols in todo:
            _check_cancel(should_cancel)
            samples.put(iy, cols, _row(iy, cols))
        return

    batch = effective_n_jobs(n_jobs)
    with Parallel(n_jobs=n_jobs, prefer="threads") as parallel:
        for start in range(0, len(todo), batch):
            _check_cancel(should_cancel)
            chunk = todo[start : start + batch]
            out = parallel(delayed(_row)(iy, cols) for iy, cols in chunk)
            for (iy, cols), results in zip(chunk, out):
                samples.put(iy, cols, results)


def _normalize(
    raw: np.ndarray, mode: str, reference: Optional[float] = None
) -> Tuple[np.ndarray, float]:
    if mode == "none":
        scale = 1.0
    elif mode == "max":
        scale = float(np.max(raw)) if raw.size else 0.0
    elif mode == "energy":
        scale = float(np.sqrt(np.mean(raw**2))) if raw.size else 0.0
    elif mode == "reference":
        scale = float(reference) if reference is not None else 1.0
    else:
        raise ParameterError(f"Unsupported normalization mode={mode!r}")

    if not (np.isfinite(scale) and scale > tiny(raw)):
        scale = 1.0
    return raw / scale, scale


def _assemble(
    xs: np.ndarray,
    ys: np.ndarray,
    samples: _Samples,
    *,
    sampling: SamplingConfig,
    normalization: str,
    reference: Optional[float],
    scalar_field: str,
    refine_passes: int,
    collect: bool,
) -> GridData:
    raw = samples.raw.ravel().copy()
    normalized, scale = _normalize(raw, normalization, reference)
    width, height, area = cell_metrics(xs, ys)
    summary = samples.summary()
    diag = samples.diagnostics() if collect else {}

    return GridData(
        xs=xs.copy(),
        ys=ys.copy(),
        log_x=np.log(xs),
        log_y=np.log(ys),
        raw=raw,
        normalized=normalized,
        cell_width=width,
        cell_height=height,
        cell_area=area,
        diagnostics=summary,
        normalization_mode=normalization,
        norm_scale=scale,
        min_raw=float(raw.min()) if raw.size else 0.0,
        max_raw=float(raw.max()) if raw.size else 0.0,
        min_norm=float(normalized.min()) if raw.size else 0.0,
        max_norm=float(normalized.max()) if raw.size else 0.0,
        log_sampling=sampling.log_sampling,
        fold_octave=sampling.fold_octave,
        scalar_field=scalar_field,
        refine_passes=refine_passes,
        **diag,
    )


def _template(timbre: Union[TimbreConfig, SpectrumTemplate], base_freq: float) -> SpectrumTemplate:
    if isinstance(timbre, SpectrumTemplate):
        return timbre
    if isinstance(timbre, TimbreConfig):
        return build_template(timbre, base_freq=base_freq)
    raise ParameterError(
        f"timbre must be a TimbreConfig or SpectrumTemplate, not {type(timbre).__name__}"
    )


def _check_base_freq(base_freq: float) -> float:
    base_freq = float(base_freq)
    if not (np.isfinite(base_freq) and base_freq > 0):
        raise ParameterError(f"base_freq={base_freq} must be strictly positive")
    return base_freq


def _local_scale(
    land: _Landscape,
    normalization: str,
    reference_point: Tuple[float, float],
    norm_scale: Optional[float],
) -> float:
    """Divisor for values computed without the rest of the grid."""
    if norm_scale is None:
        if normalization == "none":
            norm_scale = 1.0
        elif normalization == "reference":
            norm_scale = land.evaluate(*reference_point).roughness
        else:
            raise ParameterError(
                f"normalization={normalization!r} needs a grid; pass norm_scale instead"
            )
    if not (np.isfinite(norm_scale) and norm_scale > 0):
        norm_scale = 1.0
    return float(norm_scale)


def compute_point(
    timbre: Union[TimbreConfig, SpectrumTemplate],
    x: float,
    y: float,
    constants: Optional[RoughnessConstants] = None,
    options: Optional[RoughnessOptions] = None,
    *,
    transposed_timbre: Optional[Union[TimbreConfig, SpectrumTemplate]] = None,
    base_freq: float = 220.0,
    normalization: _NormalizationMode = "none",
    reference_point: Tuple[float, float] = (1.0, 1.0),
    norm_scale: Optional[float] = None,
    cache: Optional[PairIndexCache] = None,
    top_n: int = 0,
) -> GridPoint:
    """Roughness of a single triad ``(1, x, y)``.

    Parameters
    ----------
    timbre : TimbreConfig or SpectrumTemplate
        Timbre of the root tone, and of the other tones unless
        ``transposed_timbre`` is given
    x, y : float > 0
        Ratios of the x-tone and the y-tone to the root
    constants : RoughnessConstants [optional]
    options : RoughnessOptions [optional]
    transposed_timbre : TimbreConfig or SpectrumTemplate [optional]
        Timbre of the x-tone and the y-tone
    base_freq : float > 0
        Frequency (Hz) of the root tone
    normalization : {'none', 'reference'}
        ``'max'`` and ``'energy'`` depend on a whole grid; pass that
        grid's ``norm_scale`` instead.
    reference_point : (float, float)
        Triad whose roughness is the ``'reference'`` divisor
    norm_scale : float [optional]
        Explicit divisor for the normalized value.  Overrides
        ``normalization``.
    cache : PairIndexCache [optional]
    top_n : int >= 0
        Number of largest pair contributions to report

    Returns
    -------
    point : GridPoint

    Examples
    --------
    >>> cfg = roughscape.TimbreConfig(preset='saw', partial_count=6)
    >>> p = roughscape.compute_point(cfg, 1.5, 1.25, top_n=3)
    >>> len(p.result.top_pairs)
    3
    """
    base_freq = _check_base_freq(base_freq)
    constants = SETHARES_CONSTANTS if constants is None else constants
    options = DEFAULT_ROUGHNESS if options is None else options
    validate_constants(constants)
    valid_choice("normalization", normalization, NORMALIZATION_MODES)

    template = _template(timbre, base_freq)
    transposed = template if transposed_timbre is None else _template(transposed_timbre, base_freq)
    land = _Landscape(
        template,
        transposed,
        base_freq,
        constants,
        options,
        cache if cache is not None else PairIndexCache(),
    )
    norm_scale = _local_scale(land, normalization, reference_point, norm_scale)
    result = land.evaluate(float(x), float(y), top_n=top_n)

    return GridPoint(
        x=float(x),
        y=float(y),
        raw=result.roughness,
        normalized=result.roughness / norm_scale,
        result=result,
    )


def _baseline_axes(sampling: SamplingConfig, n_partials: int) -> Tuple[np.ndarray, np.ndarray]:
    nx, ny = resolve_steps(sampling, n_partials)
    xs = build_axis(*sampling.x_range, nx, sampling.log_sampling)
    ys = build_axis(*sampling.y_range, ny, sampling.log_sampling)
    if sampling.refine_fixed:
        xs = refine_axis_fixed(
            xs, COMMON_INTERVALS, sampling.refine_band_cents, sampling.refine_density
        )
        ys = refine_axis_fixed(
            ys, COMMON_INTERVALS, sampling.refine_band_cents, sampling.refine_density
        )
    if sampling.fold_octave:
        ys = fold_axis(ys)
        if ys.size < 2:
            ys = build_axis(1.0, 2.0, ny, sampling.log_sampling)
    return cap_axis(xs, sampling.max_steps), cap_axis(ys, sampling.max_steps)


def compute_tile(
    timbre: Union[TimbreConfig, SpectrumTemplate],
    x_start: int,
    y_start: int,
    width: int,
    height: int,
    sampling: Optional[SamplingConfig] = None,
    constants: Optional[RoughnessConstants] = None,
    options: Optional[RoughnessOptions] = None,
    *,
    axes: Optional[Tuple[np.ndarray, np.ndarray]] = None,
    transposed_timbre: Optional[Union[TimbreConfig, SpectrumTemplate]] = None,
    base_freq: float = 220.0,
    normalization: _NormalizationMode = "none",
    reference_point: Tuple[float, float] = (1.0, 1.0),
    norm_scale: Optional[float] = None,
    cache: Optional[PairIndexCache] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
    n_jobs: Optional[int] = None,
) -> GridTile:
    """Compute a rectangular block of a landscape.

    Tiles let a large landscape be split across workers and stitched
    back together: the tile at ``(x_start, y_start)`` holds the values of
    ``xs[x_start:x_start + width]`` against ``ys[y_start:y_start + height]``.

    The axes are those of the baseline pass of `compute_grid` for
    ``sampling``, unless given explicitly with ``axes``.  Progressive
    refinement does not apply to tiles.

    Parameters
    ----------
    timbre : TimbreConfig or SpectrumTemplate
    x_start, y_start : int
        First column and row.  Clipped into the axes.
    width, height : int
        Tile size.  Clipped to the end of the axes; zero or negative
        sizes give an empty tile.
    sampling : SamplingConfig [optional]
    constants : RoughnessConstants [optional]
    options : RoughnessOptions [optional]
    axes : (np.ndarray, np.ndarray) [optional]
        Explicit ``(xs, ys)`` of the full grid
    transposed_timbre : TimbreConfig or SpectrumTemplate [optional]
    base_freq : float > 0
    normalization : {'none', 'reference'}
        As in `compute_point`: ``'max'`` and ``'energy'`` need the
        whole grid; pass its ``norm_scale`` instead.
    reference_point : (float, float)
    norm_scale : float [optional]
    cache : PairIndexCache [optional]
    should_cancel : callable [optional]
        Polled between rows
    n_jobs : int [optional]

    Returns
    -------
    tile : GridTile

    Raises
    ------
    ParameterError
        If the configuration is invalid
    CancelledError
        If ``should_cancel`` returns ``True``

    See Also
    --------
    compute_grid

    Examples
    --------
    >>> cfg = roughscape.TimbreConfig(preset='saw', partial_count=6)
    >>> sampling = roughscape.SamplingConfig(x_steps=32, y_steps=32)
    >>> tile = roughscape.compute_tile(cfg, 8, 0, 8, 16, sampling)
    >>> tile.shape
    (16, 8)
    """
    sampling = DEFAULT_SAMPLING if sampling is None else sampling
    constants = SETHARES_CONSTANTS if constants is None else constants
    options = DEFAULT_ROUGHNESS if options is None else options

    validate_sampling(sampling)
    validate_constants(constants)
    valid_choice("normalization", normalization, NORMALIZATION_MODES)
    base_freq = _check_base_freq(base_freq)

    template = _template(timbre, base_freq)
    transposed = template if transposed_timbre is None else _template(transposed_timbre, base_freq)
    land = _Landscape(
        template,
        transposed,
        base_freq,
        constants,
        options,
        cache if cache is not None else PairIndexCache(),
    )

    if axes is None:
        xs, ys = _baseline_axes(sampling, max(len(template), len(transposed)))
    else:
        xs = np.asarray(axes[0], dtype=float)
        ys = np.asarray(axes[1], dtype=float)

    x0 = int(np.clip(np.floor(x_start), 0, max(0, xs.size - 1)))
    y0 = int(np.clip(np.floor(y_start), 0, max(0, ys.size - 1)))
    nx = int(np.clip(np.floor(width), 0, xs.size - x0))
    ny = int(np.clip(np.floor(height), 0, ys.size - y0))
    tile_xs = xs[x0 : x0 + nx].copy()
    tile_ys = ys[y0 : y0 + ny].copy()

    scale = _local_scale(land, normalization, reference_point, norm_scale)

    samples = _Samples(ny, nx)
    todo = [(iy, np.arange(nx)) for iy in range(ny)] if nx else []
    _fill(land, tile_xs, tile_ys, samples, todo, should_cancel, n_jobs)

    raw = samples.raw.ravel().copy()
    return GridTile(
        x_start=x0,
        y_start=y0,
        xs=tile_xs,
        ys=tile_ys,
        raw=raw,
        normalized=raw / scale,
        norm_scale=scale,
        diagnostics=samples.summary(),
        **samples.diagnostics(),
    )


def _gradient_indices(values: np.ndarray, threshold: float) -> Tuple[np.ndarray, np.ndarray]:
    # Steps along x (columns) and along y (rows) above the threshold
    jump_x = np.abs(np.diff(values, axis=1)) > threshold
    jump_y = np.abs(np.diff(values, axis=0)) > threshold
    return np.flatnonzero(jump_x.any(axis=0)), np.flatnonzero(jump_y.any(axis=1))


def _minima_bands(axis: np.ndarray, centers: Sequence[int], sampling: SamplingConfig) -> np.ndarray:
    nb = sampling.minima_neighborhood
    bands = [axis]
    for k in centers:
        lo = axis[max(0, k - nb)]
        hi = axis[min(axis.size - 1, k + nb)]
        bands.append(
            refine_axis_fixed(
                axis,
                [axis[k]],
                sampling.refine_band_cents,
                sampling.refine_density,
                bounds=(lo, hi),
            )
        )
    return merge_axes(*bands)


def _coarse_minima(grid: GridData, sampling: SamplingConfig):
    # Deferred to avoid a circular import with the analysis module
    from ..minima import find_minima

    return find_minima(
        grid,
        field="raw",
        smoothing=sampling.minima_smoothing,
        boundary="skip",
    )


def _has_new_minima(previous, current) -> bool:
    for m in current:
        if all(
            log_distance(m.x, m.y, p.x, p.y) > MINIMA_MATCH_TOLERANCE for p in previous
        ):
            return True
    return False


def compute_grid(
    timbre: Union[TimbreConfig, SpectrumTemplate],
    sampling: Optional[SamplingConfig] = None,
    constants: Optional[RoughnessConstants] = None,
    options: Optional[RoughnessOptions] = None,
    *,
    transposed_timbre: Optional[Union[TimbreConfig, SpectrumTemplate]] = None,
    base_freq: float = 220.0,
    normalization: _NormalizationMode = "max",
    reference_point: Tuple[float, float] = (1.0, 1.0),
    reference_value: Optional[float] = None,
    scalar_field: _ScalarField = "normalized",
    cache: Optional[PairIndexCache] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
    n_jobs: Optional[int] = None,
) -> GridData:
    """Sample the roughness landscape of triads ``(1, x, y)``.

    Every grid point sounds three tones: the root at ``base_freq``,
    the x-tone at ``base_freq * x`` and the y-tone at ``base_freq * y``.

    The baseline pass samples ``x_range`` and ``y_range`` at the
    resolution chosen by `resolve_steps`, with bands of extra samples
    around `COMMON_INTERVALS` if ``sampling.refine_fixed``.  With
    ``sampling.fold_octave`` the y-axis is wrapped into ``[1, 2]``.

    With ``sampling.progressive_refine``, up to
    ``sampling.refine_pass_budget`` refinement passes follow.  Each pass
    inserts samples:

    - around the common intervals, in a log-window that halves on every
      pass (``refine_fixed``);
    - between adjacent cells whose raw values differ by more than
      ``gradient_threshold`` (``refine_gradient``);
    - in bands around the minima of the previous pass (``refine_minima``).

    Previously computed samples are kept and never recomputed.  The loop
    stops early when a pass adds no samples or finds no new minima.
    Axes never exceed ``sampling.max_steps`` samples.

    Parameters
    ----------
    timbre : TimbreConfig or SpectrumTemplate
        Timbre of the root tone, and of the other tones unless
        ``transposed_timbre`` is given
    sampling : SamplingConfig [optional]
        Defaults to `DEFAULT_SAMPLING`
    constants : RoughnessConstants [optional]
    options : RoughnessOptions [optional]
    transposed_timbre : TimbreConfig or SpectrumTemplate [optional]
    base_freq : float > 0
    normalization : {'none', 'energy', 'max', 'reference'}
        - ``'none'``: ``normalized`` equals ``raw``
        - ``'max'``: divide by the largest raw value
        - ``'energy'``: divide by the root-mean-square raw value
        - ``'reference'``: divide by the roughness at ``reference_point``

        A divisor of zero leaves the values unchanged.
    reference_point : (float, float)
    reference_value : float [optional]
        Explicit ``'reference'`` divisor
    scalar_field : {'raw', 'normalized'}
        Default field of the returned grid for analysis functions
    cache : PairIndexCache [optional]
        Pair enumeration cache.  A private one is used if omitted.
    should_cancel : callable [optional]
        Polled between rows and between refinement passes.  If it
        returns ``True`` during refinement, the last complete grid is
        returned.
    n_jobs : int [optional]
        Number of threads evaluating rows.  See `joblib.Parallel`.

    Returns
    -------
    grid : GridData

    Raises
    ------
    ParameterError
        If the sampling configuration, constants or options are invalid
    CancelledError
        If cancelled before the baseline pass completes

    See Also
    --------
    compute_point
    roughscape.find_minima

    Examples
    --------
    >>> cfg = roughscape.TimbreConfig(preset='saw', partial_count=6)
    >>> sampling = roughscape.SamplingConfig(x_steps=16, y_steps=16,
    ...                                      refine_fixed=False)
    >>> grid = roughscape.compute_grid(cfg, sampling)
    >>> grid.shape
    (16, 16)
    >>> grid.max_norm
    1.0
    """
    sampling = DEFAULT_SAMPLING if sampling is None else sampling
    constants = SETHARES_CONSTANTS if constants is None else constants
    options = DEFAULT_ROUGHNESS if options is None else options

    validate_sampling(sampling)
    validate_constants(constants)
    valid_choice("normalization", normalization, NORMALIZATION_MODES)
    valid_choice("scalar_field", scalar_field, SCALAR_FIELDS)
    base_freq = _check_base_freq(base_freq)

    template = _template(timbre, base_freq)
    transposed = template if transposed_timbre is None else _template(transposed_timbre, base_freq)
    land = _Landscape(
        template,
        transposed,
        base_freq,
        constants,
        options,
        cache if cache is not None else PairIndexCache(),
    )

    xs, ys = _baseline_axes(sampling, max(len(template), len(transposed)))

    if normalization == "reference" and reference_value is None:
        reference_value = land.evaluate(*reference_point).roughness

    finish = dict(
        sampling=sampling,
        normalization=normalization,
        reference=reference_value,
        scalar_field=scalar_field,
        collect=options.collect_point_diagnostics,
    )

    samples = _Samples(ys.size, xs.size)
    todo = [(iy, np.arange(xs.size)) for iy in range(ys.size)]
    _fill(land, xs, ys, samples, todo, should_cancel, n_jobs)
    grid = _assemble(xs, ys, samples, refine_passes=0, **finish)

    if not sampling.progressive_refine:
        return grid

    minima = _coarse_minima(grid, sampling)
    for n_pass in range(1, sampling.refine_pass_budget + 1):
        if should_cancel is not None and should_cancel():
            break

        new_xs, new_ys = xs, ys
        if sampling.refine_fixed:
            window = sampling.progressive_window / 2 ** (n_pass - 1)
            new_xs = refine_axis_window(new_xs, COMMON_INTERVALS, window, sampling.progressive_steps)
            new_ys = refine_axis_window(new_ys, COMMON_INTERVALS, window, sampling.progressive_steps)

        if sampling.refine_gradient:
            gx, gy = _gradient_indices(samples.raw, sampling.gradient_threshold)
            new_xs = merge_axes(new_xs, refine_axis_midpoints(xs, gx, sampling.log_sampling))
            new_ys = merge_axes(new_ys, refine_axis_midpoints(ys, gy, sampling.log_sampling))

        if sampling.refine_minima and minima:
            new_xs = merge_axes(new_xs, _minima_bands(xs, [m.ix for m in minima], sampling))
            new_ys = merge_axes(new_ys, _minima_bands(ys, [m.iy for m in minima], sampling))

        new_xs = cap_axis(new_xs, sampling.max_steps, keep=xs)
        new_ys = cap_axis(new_ys, sampling.max_steps, keep=ys)

        rows = _match_axis(ys, new_ys)
        cols = _match_axis(xs, new_xs)
        if np.all(rows >= 0) and np.all(cols >= 0) and rows.size == ys.size and cols.size == xs.size:
            break

        refined = _Samples(new_ys.size, new_xs.size)
        refined.carry(samples, rows, cols)
        all_cols = np.arange(new_xs.size)
        new_cols = np.flatnonzero(cols < 0)
        todo = [
            (iy, all_cols if rows[iy] < 0 else new_cols)
            for iy in range(new_ys.size)
            if rows[iy] < 0 or new_cols.size
        ]
        try:
            _fill(land, new_xs, new_ys, refined, todo, should_cancel, n_jobs)
        except CancelledError:
            break

        xs, ys, samples = new_xs, new_ys, refined
        grid = _assemble(xs, ys, samples, refine_passes=n_pass, **finish)

        current = _coarse_minima(grid, sampling)
        if not _has_new_minima(minima, current):
            break
        minima = current

    return grid


def normalize_grid(
    grid: GridData,
    mode: _NormalizationMode,
    *,
    reference: Optional[float] = None,
) -> GridData:
    """Re-normalize a grid.

    Parameters
    ----------
    grid : GridData
    mode : {'none', 'energy', 'max', 'reference'}
    reference : float [optional]
        Divisor for ``'reference'`` mode

    Returns
    -------
    grid_norm : GridData
        A copy of ``grid`` with new ``normalized`` values.
        ``grid`` is not modified.

    Examples
    --------
    >>> g = roughscape.normalize_grid(grid, 'energy')
    >>> np.sqrt(np.mean(g.normalized ** 2))
    1.0
    """
    valid_choice("normalization", mode, NORMALIZATION_MODES)
    normalized, scale = _normalize(grid.raw, mode, reference)
    return dataclasses.replace(
        grid,
        normalized=normalized,
        normalization_mode=mode,
        norm_scale=scale,
        min_norm=float(normalized.min()) if normalized.size else 0.0,
        max_norm=float(normalized.max()) if normalized.size else 0.0,
    )
