#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Sethares pairwise roughness"""

import warnings
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from ..util.exceptions import ParameterError
from .pairs import PairIndexCache
from .timbre import Partial, ToneSpectrum

__all__ = [
    "RoughnessConstants",
    "RoughnessOptions",
    "PairContribution",
    "PointDiagnostics",
    "RoughnessResult",
    "PartialPool",
    "SETHARES_CONSTANTS",
    "DEFAULT_ROUGHNESS",
    "DEFAULT_EXP_CLAMP_MIN",
    "validate_constants",
    "pair_roughness",
    "prune_partials",
    "merge_duplicate_partials",
    "pool_from_partials",
    "pool_from_tones",
    "pool_roughness",
    "compute_roughness",
]

# Largest negative exponent for which exp() is still a non-zero double
DEFAULT_EXP_CLAMP_MIN = float(np.log(np.nextafter(0.0, 1.0)))

# Frequencies closer than this (Hz) are exact duplicates
DUPLICATE_TOLERANCE = 1e-9

N_TONES = 3


@dataclass(frozen=True)
class RoughnessConstants:
    """Constants of the Sethares roughness model.

    The contribution of two partials at ``f1 <= f2`` is::

        s = d_star / (s1 * f1 + s2)
        r = a1 * a2 * (exp(-a * s * (f2 - f1)) - exp(-b * s * (f2 - f1)))

    ``exp_clamp_min`` bounds the exponent arguments; terms beyond it
    contribute nothing.  ``None`` selects `DEFAULT_EXP_CLAMP_MIN`.
    """

    a: float = 3.5
    b: float = 5.75
    d_star: float = 0.24
    s1: float = 0.0207
    s2: float = 18.96
    exp_clamp_min: Optional[float] = None


SETHARES_CONSTANTS = RoughnessConstants()


@dataclass(frozen=True)
class RoughnessOptions:
    """Options for one roughness computation.

    Attributes
    ----------
    amp_threshold : float >= 0
        Partials quieter than this are pruned before pairing
    epsilon_contribution : float >= 0
        Pair contributions at or below this are left out of the aggregate
    enable_self_interaction : bool
        Include pairs of partials from the same tone
    self_interaction_weight : float in [0, 1]
        Weight of same-tone pairs when ``enable_self_interaction``
    merge_duplicate_partials : bool
        Merge partials at identical frequencies before pairing
    collect_point_diagnostics : bool
        Keep per-point diagnostic arrays in grid computations
    symmetry_sample_count : int
        Number of pairs re-evaluated by the symmetry self-check
    symmetry_tolerance : float
        Relative error above which a self-check issues a warning
    precision_check : bool
        Run the symmetry and precision self-checks
    precision_check_samples : int
        Number of pairs re-evaluated by the precision self-check
    performance_mode : bool
        Skip the self-checks and prune far-apart pairs by an upper bound
    pair_skip_epsilon : float >= 0
        Pairs whose amplitude product is below this are skipped
    """

    amp_threshold: float = 0.001
    epsilon_contribution: float = 1e-4
    enable_self_interaction: bool = False
    self_interaction_weight: float = 0.7
    merge_duplicate_partials: bool = False
    collect_point_diagnostics: bool = True
    symmetry_sample_count: int = 24
    symmetry_tolerance: float = 1e-6
    precision_check: bool = False
    precision_check_samples: int = 12
    performance_mode: bool = False
    pair_skip_epsilon: float = 1e-4


DEFAULT_ROUGHNESS = RoughnessOptions()


@dataclass(frozen=True)
class PairContribution:
    """One scored pair.  ``i`` and ``j`` index the pruned pool."""

    i: int
    j: int
    contribution: float
    f1: float
    f2: float
    a1: float
    a2: float
    tone_mask1: int
    tone_mask2: int
    partial_index1: int
    partial_index2: int


@dataclass(frozen=True)
class PointDiagnostics:
    """Bookkeeping for one roughness evaluation.

    ``pruned_partials`` counts the partials that survived pruning.
    ``skipped_pairs`` never exceeds ``total_pairs``.
    """

    original_partials: int = 0
    pruned_partials: int = 0
    invalid_partials: int = 0
    skipped_pairs: int = 0
    total_pairs: int = 0
    max_pair_contribution: float = 0.0
    silent: bool = True
    symmetry_error: Optional[float] = None
    precision_error: Optional[float] = None


@dataclass(frozen=True, eq=False)
class RoughnessResult:
    roughness: float
    diagnostics: PointDiagnostics
    top_pairs: Optional[List[PairContribution]] = None


@dataclass(frozen=True, eq=False)
class PartialPool:
    """Partials of several tones flattened into parallel arrays.

    ``tone_amps[k, t]`` holds the share of ``amps[k]`` contributed by
    tone ``t``, so that same-tone weighting stays exact after merging.
    """

    freqs: np.ndarray
    amps: np.ndarray
    tone_mask: np.ndarray
    partial_index: np.ndarray
    tone_amps: np.ndarray

    def __len__(self) -> int:
        return len(self.freqs)

    def take(self, idx: np.ndarray) -> "PartialPool":
        return PartialPool(
            freqs=self.freqs[idx],
            amps=self.amps[idx],
            tone_mask=self.tone_mask[idx],
            partial_index=self.partial_index[idx],
            tone_amps=self.tone_amps[idx],
        )


def validate_constants(constants: RoughnessConstants) -> bool:
    """Check that the roughness constants describe a valid kernel.

    Raises
    ------
    ParameterError
        Unless ``0 < a < b``, ``d_star > 0``, ``s1 >= 0`` and ``s2 > 0``,
        all finite.
    """
    values = (constants.a, constants.b, constants.d_star, constants.s1, constants.s2)
    if not np.all(np.isfinite(values)):
        raise ParameterError(f"Roughness constants must be finite: {constants}")
    if not 0 < constants.a < constants.b:
        raise ParameterError(
            f"Roughness constants require 0 < a < b, given a={constants.a}, b={constants.b}"
        )
    if constants.d_star <= 0 or constants.s1 < 0 or constants.s2 <= 0:
        raise ParameterError(
            "Roughness constants require d_star > 0, s1 >= 0 and s2 > 0, "
            f"given {constants}"
        )
    if constants.exp_clamp_min is not None and not constants.exp_clamp_min < 0:
        raise ParameterError(
            f"exp_clamp_min={constants.exp_clamp_min} must be negative"
        )
    return True


def __kernel(x: np.ndarray, constants: RoughnessConstants) -> Tuple[np.ndarray, np.ndarray]:
    """Evaluate ``exp(-a x) - exp(-b x)`` as ``exp(-a x) * -expm1(-(b - a) x)``.

    Returns the kernel and a mask of entries whose exponents stayed
    above the clamp.
    """
    clamp = constants.exp_clamp_min
    if clamp is None:
        clamp = DEFAULT_EXP_CLAMP_MIN

    e1 = -constants.a * x
    e_diff = -(constants.b - constants.a) * x
    ok = (e1 >= clamp) & (e_diff >= clamp)

    with np.errstate(under="ignore", over="ignore"):
        kernel = np.exp(np.maximum(e1, clamp)) * -np.expm1(np.maximum(e_diff, clamp))

    kernel = np.where(ok & (kernel > 0), kernel, 0.0)
    return kernel, ok


def pair_roughness(f1, f2, a1, a2, constants: RoughnessConstants = SETHARES_CONSTANTS):
    """Roughness contribution of partial pairs.

    The result depends only on ``min(f1, f2)``, ``max(f1, f2)`` and the
    product ``a1 * a2``, so swapping the operands leaves it unchanged.

    Parameters
    ----------
    f1, f2 : float or np.ndarray
        Frequencies in Hz
    a1, a2 : float or np.ndarray
        Amplitudes
    constants : RoughnessConstants

    Returns
    -------
    roughness : float or np.ndarray
        Non-negative contributions, broadcast over the inputs.
        Pairs with a non-positive frequency or amplitude contribute 0.

    Examples
    --------
    >>> r = roughscape.pair_roughness(220.0, 240.0, 1.0, 1.0)
    >>> r == roughscape.pair_roughness(240.0, 220.0, 1.0, 1.0)
    True
    """
    f1, f2, a1, a2 = np.broadcast_arrays(
        np.asarray(f1, dtype=float),
        np.asarray(f2, dtype=float),
        np.asarray(a1, dtype=float),
        np.asarray(a2, dtype=float),
    )
    lo = np.minimum(f1, f2)
    hi = np.maximum(f1, f2)
    valid = (lo > 0) & (a1 > 0) & (a2 > 0) & np.isfinite(hi)

    with np.errstate(divide="ignore", invalid="ignore"):
        s = constants.d_star / (constants.s1 * lo + constants.s2)
        x = np.where(valid, s * (hi - lo), 0.0)

    kernel, _ = __kernel(x, constants)
    out = np.where(valid, a1 * a2 * kernel, 0.0)

    if out.ndim == 0:
        return float(out)
    return out


def pool_from_partials(partials: Sequence[Partial]) -> PartialPool:
    """Flatten a list of partials into a `PartialPool`.

    Partials without a tone are assigned to tone 0.
    """
    n = len(partials)
    freqs = np.empty(n, dtype=float)
    amps = np.empty(n, dtype=float)
    masks = np.empty(n, dtype=np.int64)
    index = np.empty(n, dtype=np.int64)

    tones = []
    for k, p in enumerate(partials):
        freqs[k] = p.freq
        amps[k] = p.amp
        index[k] = p.index
        if p.tone_index is not None:
            tone = int(p.tone_index)
        elif p.tone_mask:
            tone = (int(p.tone_mask) & -int(p.tone_mask)).bit_length() - 1
        else:
            tone = 0
        tones.append(tone)
        masks[k] = int(p.tone_mask) if p.tone_mask else 1 << tone

    n_tones = max([N_TONES] + [t + 1 for t in tones])
    tone_amps = np.zeros((n, n_tones), dtype=float)
    if n:
        tone_amps[np.arange(n), tones] = amps

    return PartialPool(
        freqs=freqs, amps=amps, tone_mask=masks, partial_index=index, tone_amps=tone_amps
    )


def pool_from_tones(tones: Sequence[ToneSpectrum]) -> PartialPool:
    """Concatenate several tones into a single `PartialPool`."""
    n_tones = max([N_TONES] + [t.tone_index + 1 for t in tones])
    sizes = [len(t) for t in tones]
    n = sum(sizes)

    tone_amps = np.zeros((n, n_tones), dtype=float)
    start = 0
    for t, size in zip(tones, sizes):
        tone_amps[start : start + size, t.tone_index] = t.amps
        start += size

    return PartialPool(
        freqs=np.concatenate([t.freqs for t in tones]) if tones else np.empty(0),
        amps=np.concatenate([t.amps for t in tones]) if tones else np.empty(0),
        tone_mask=np.concatenate(
            [np.full(len(t), t.tone_mask, dtype=np.int64) for t in tones]
        )
        if tones
        else np.empty(0, dtype=np.int64),
        partial_index=np.concatenate([t.partial_index for t in tones])
        if tones
        else np.empty(0, dtype=np.int64),
        tone_amps=tone_amps,
    )


def _as_pool(partials: Union[PartialPool, Sequence[Partial]]) -> PartialPool:
    if isinstance(partials, PartialPool):
        return partials
    return pool_from_partials(partials)


def prune_partials(
    partials: Union[PartialPool, Sequence[Partial]], amp_threshold: float
) -> Tuple[PartialPool, PointDiagnostics]:
    """Drop invalid and quiet partials.

    A partial is invalid if its frequency is non-finite or non-positive,
    or its amplitude is non-finite or negative.  Valid partials quieter
    than ``amp_threshold`` are pruned.

    Parameters
    ----------
    partials : PartialPool or sequence of Partial
    amp_threshold : float

    Returns
    -------
    kept : PartialPool
    diagnostics : PointDiagnostics
        With the partial counts filled in and ``silent`` set when
        nothing survives
    """
    pool = _as_pool(partials)
    valid = (
        np.isfinite(pool.freqs)
        & (pool.freqs > 0)
        & np.isfinite(pool.amps)
        & (pool.amps >= 0)
    )
    keep = valid & (pool.amps >= max(0.0, amp_threshold))
    kept = pool.take(np.flatnonzero(keep))

    return kept, PointDiagnostics(
        original_partials=len(pool),
        pruned_partials=len(kept),
        invalid_partials=int(np.sum(~valid)),
        silent=len(kept) == 0,
    )


def merge_duplicate_partials(
    partials: Union[PartialPool, Sequence[Partial]],
    freq_tolerance: float = DUPLICATE_TOLERANCE,
) -> PartialPool:
    """Merge partials at identical frequencies.

    Amplitudes are summed, tone masks OR-ed, and the smallest
    partial index is kept.  Each tone's share of the merged amplitude
    is kept in ``tone_amps``.  The result is sorted by frequency.

    Examples
    --------
    >>> p = [roughscape.Partial(freq=440.0, amp=1.0, tone_index=0),
    ...      roughscape.Partial(freq=440.0, amp=0.5, tone_index=1)]
    >>> pool = roughscape.merge_duplicate_partials(p)
    >>> pool.amps, pool.tone_mask, pool.tone_amps[0]
    (array([1.5]), array([3]), array([1. , 0.5, 0. ]))
    """
    pool = _as_pool(partials)
    if len(pool) < 2:
        return pool

    order = np.argsort(pool.freqs, kind="stable")
    pool = pool.take(order)

    # Start a new group wherever the gap to the previous frequency exceeds tol
    starts = np.concatenate([[True], np.diff(pool.freqs) > max(0.0, freq_tolerance)])
    groups = np.cumsum(starts) - 1
    first = np.flatnonzero(starts)
    n_groups = len(first)

    amps = np.zeros(n_groups)
    np.add.at(amps, groups, pool.amps)
    tone_amps = np.zeros((n_groups, pool.tone_amps.shape[1]))
    np.add.at(tone_amps, groups, pool.tone_amps)
    masks = np.zeros(n_groups, dtype=np.int64)
    np.bitwise_or.at(masks, groups, pool.tone_mask)
    index = np.full(n_groups, np.iinfo(np.int64).max, dtype=np.int64)
    np.minimum.at(index, groups, pool.partial_index)

    return PartialPool(
        freqs=pool.freqs[first],
        amps=amps,
        tone_mask=masks,
        partial_index=index,
        tone_amps=tone_amps,
    )


def __self_checks(f1, f2, a1, a2, constants, options):
    n = len(f1)
    sym_err = prec_err = 0.0
    if n == 0:
        return sym_err, prec_err

    # Deterministic, evenly spread samples
    idx = np.unique(np.linspace(0, n - 1, max(1, options.symmetry_sample_count)).astype(int))
    fwd = pair_roughness(f1[idx], f2[idx], a1[idx], a2[idx], constants)
    rev = pair_roughness(f2[idx], f1[idx], a2[idx], a1[idx], constants)
    denom = np.maximum(np.maximum(np.abs(fwd), np.abs(rev)), 1e-300)
    sym_err = float(np.max(np.abs(fwd - rev) / denom))

    idx = np.unique(np.linspace(0, n - 1, max(1, options.precision_check_samples)).astype(int))
    lo = np.minimum(f1[idx], f2[idx])
    x = constants.d_star / (constants.s1 * lo + constants.s2) * np.abs(f2[idx] - f1[idx])
    naive = a1[idx] * a2[idx] * (np.exp(-constants.a * x) - np.exp(-constants.b * x))
    stable = pair_roughness(f1[idx], f2[idx], a1[idx], a2[idx], constants)
    scale = np.maximum(np.abs(naive), 1e-300)
    prec_err = float(np.max(np.abs(stable - naive) / scale))

    if sym_err > options.symmetry_tolerance:
        warnings.warn(
            f"Roughness symmetry check failed: relative error {sym_err:.3g}",
            stacklevel=3,
        )
    if prec_err > options.symmetry_tolerance:
        warnings.warn(
            f"Roughness precision check failed: relative error {prec_err:.3g}",
            stacklevel=3,
        )
    return sym_err, prec_err


def pool_roughness(
    pool: PartialPool,
    constants: RoughnessConstants = SETHARES_CONSTANTS,
    options: RoughnessOptions = DEFAULT_ROUGHNESS,
    *,
    cache: Optional[PairIndexCache] = None,
    top_n: int = 0,
) -> RoughnessResult:
    """Aggregate roughness of a partial pool.

    Invalid partials are excluded and quiet ones pruned first; duplicates
    are merged if ``options.merge_duplicate_partials``.  Every remaining
    pair is then enumerated through ``cache``:

    - every pair counts toward ``total_pairs == n * (n - 1) / 2``;
    - a pair is *skipped* when its effective amplitude product is zero
      (same-tone pairs without self-interaction) or below
      ``pair_skip_epsilon``, when both frequencies coincide, when the
      exponent clamp cuts it off, or, in performance mode, when an upper
      bound shows it cannot exceed ``pair_skip_epsilon``;
    - contributions at or below ``epsilon_contribution`` are left out of
      the aggregate but are not counted as skipped.

    Same-tone pairs are weighted by ``self_interaction_weight`` when
    ``enable_self_interaction`` is set.

    Parameters
    ----------
    pool : PartialPool
    constants : RoughnessConstants
    options : RoughnessOptions
    cache : PairIndexCache [optional]
        Shared pair enumeration cache.  A private one is used if omitted.
    top_n : int >= 0
        Number of largest pair contributions to report

    Returns
    -------
    result : RoughnessResult
        ``top_pairs`` is ``None`` unless ``top_n > 0``.
    """
    if cache is None:
        cache = PairIndexCache()

    pool, counts = prune_partials(pool, options.amp_threshold)
    if options.merge_duplicate_partials:
        pool = merge_duplicate_partials(pool)

    n = len(pool)
    pairs = cache.get_pair_indices(n)
    i, j = pairs.i, pairs.j
    total_pairs = len(i)

    a_i = pool.amps[i]
    a_j = pool.amps[j]
    prod = a_i * a_j
    weight = (
        float(np.clip(options.self_interaction_weight, 0.0, 1.0))
        if options.enable_self_interaction
        else 0.0
    )
    same = np.sum(pool.tone_amps[i] * pool.tone_amps[j], axis=1)
    eff = prod + (weight - 1.0) * same

    active = (eff > 0) & ~(eff < options.pair_skip_epsilon)

    f_i = pool.freqs[i]
    f_j = pool.freqs[j]
    lo = np.minimum(f_i, f_j)
    df = np.abs(f_j - f_i)
    active &= df > 0

    s = constants.d_star / (constants.s1 * lo + constants.s2)
    x = s * df

    eps = options.pair_skip_epsilon
    if options.performance_mode and eps > 0:
        # exp(-a x) bounds the kernel, so prod * exp(-a x) bounds the pair
        bound = prod * max(1.0, weight)
        with np.errstate(divide="ignore", invalid="ignore"):
            df_limit = np.log(bound / eps) / (constants.a * s)
        active &= (bound > eps) & (df <= df_limit)

    kernel, ok = __kernel(x, constants)
    active &= ok

    contrib = np.where(active, kernel * eff, 0.0)
    counted = active & (contrib > options.epsilon_contribution)

    roughness = float(np.sum(contrib[counted]))
    max_pair = float(np.max(contrib)) if total_pairs else 0.0

    sym_err = prec_err = None
    if options.precision_check and not options.performance_mode:
        sel = np.flatnonzero(counted)
        sym_err, prec_err = __self_checks(
            f_i[sel], f_j[sel], a_i[sel], a_j[sel], constants, options
        )

    top = None
    if top_n > 0:
        sel = np.flatnonzero(counted)
        order = sel[np.argsort(-contrib[sel], kind="stable")][:top_n]
        top = [
            PairContribution(
                i=int(i[k]),
                j=int(j[k]),
                contribution=float(contrib[k]),
                f1=float(f_i[k]),
                f2=float(f_j[k]),
                a1=float(a_i[k]),
                a2=float(a_j[k]),
                tone_mask1=int(pool.tone_mask[i[k]]),
                tone_mask2=int(pool.tone_mask[j[k]]),
                partial_index1=int(pool.partial_index[i[k]]),
                partial_index2=int(pool.partial_index[j[k]]),
            )
            for k in order
        ]

    diagnostics = PointDiagnostics(
        original_partials=counts.original_partials,
        pruned_partials=counts.pruned_partials,
        invalid_partials=counts.invalid_partials,
        skipped_pairs=int(total_pairs - np.count_nonzero(active)),
        total_pairs=int(total_pairs),
        max_pair_contribution=max_pair,
        silent=not roughness > 0,
        symmetry_error=sym_err,
        precision_error=prec_err,
    )

    return RoughnessResult(roughness=roughness, diagnostics=diagnostics, top_pairs=top)


def compute_roughness(
    partials: Union[PartialPool, Sequence[Partial]],
    constants: Optional[RoughnessConstants] = None,
    options: Optional[RoughnessOptions] = None,
    *,
    cache: Optional[PairIndexCache] = None,
    top_n: int = 0,
) -> RoughnessResult:
    """Sethares roughness of a combined list of partials.

    Parameters
    ----------
    partials : PartialPool or sequence of Partial
        Partials of every sounding tone, tagged with their tone masks
    constants : RoughnessConstants [optional]
        Defaults to `SETHARES_CONSTANTS`
    options : RoughnessOptions [optional]
        Defaults to `DEFAULT_ROUGHNESS`
    cache : PairIndexCache [optional]
    top_n : int >= 0
        Number of largest pair contributions to return

    Returns
    -------
    result : RoughnessResult

    Raises
    ------
    ParameterError
        If the constants are invalid

    See Also
    --------
    pool_roughness

    Examples
    --------
    Two sine tones a semitone apart

    >>> p = [roughscape.Partial(freq=440.0, amp=1.0, tone_index=0),
    ...      roughscape.Partial(freq=466.16, amp=1.0, tone_index=1)]
    >>> result = roughscape.compute_roughness(p)
    >>> result.diagnostics.total_pairs
    1
    """
    if constants is None:
        constants = SETHARES_CONSTANTS
    if options is None:
        options = DEFAULT_ROUGHNESS
    validate_constants(constants)

    return pool_roughness(
        _as_pool(partials), constants, options, cache=cache, top_n=top_n
    )
