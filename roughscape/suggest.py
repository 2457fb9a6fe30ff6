#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Suggestions
===========

.. autosummary::
    :toctree: generated/

    build_timbre_suggestions
    build_scale_from_minima
    decode_tone_mask
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .core.roughness import PairContribution
from .util.exceptions import ParameterError

__all__ = [
    "Suggestion",
    "decode_tone_mask",
    "build_timbre_suggestions",
    "build_scale_from_minima",
]

TONE_NAMES = ("root", "x-tone", "y-tone")

# Ratios closer than this in log2 are the same scale degree
SCALE_DEDUPE_TOLERANCE = 1e-4


@dataclass(frozen=True)
class Suggestion:
    title: str
    details: Tuple[str, ...] = ()


def decode_tone_mask(mask: int) -> Tuple[int, ...]:
    """Tone indices encoded in a tone bitmask.

    Examples
    --------
    >>> roughscape.decode_tone_mask(0b101)
    (0, 2)
    """
    mask = int(mask)
    return tuple(k for k in range(mask.bit_length()) if mask >> k & 1)


def _tone_names(tones: Tuple[int, ...]) -> str:
    names = [TONE_NAMES[t] if t < len(TONE_NAMES) else f"tone {t}" for t in tones]
    return " + ".join(names) if names else "no tone"


def _describe(pair: PairContribution, base_freq: float) -> str:
    return (
        f"Partial {pair.partial_index1} of the {_tone_names(decode_tone_mask(pair.tone_mask1))} "
        f"(ratio {pair.f1 / base_freq:.3f}) against partial {pair.partial_index2} "
        f"of the {_tone_names(decode_tone_mask(pair.tone_mask2))} "
        f"(ratio {pair.f2 / base_freq:.3f}) contributes {pair.contribution:.4g}."
    )


def build_timbre_suggestions(
    top_pairs: Sequence[PairContribution], base_freq: float
) -> List[Suggestion]:
    """Turn the strongest pair contributions into timbre-editing advice.

    Pairs are split into *cross-tone* pairs, whose two partials between
    them belong to more than one tone, and *intra-tone* pairs that touch
    a single tone.  A merged partial shared by several tones makes every
    pair it is in a cross-tone pair.  Each
    category present yields one suggestion built from its strongest
    pair.  Suggestions are ordered by that pair's contribution.

    Parameters
    ----------
    top_pairs : sequence of PairContribution
        As returned in `RoughnessResult.top_pairs`
    base_freq : float > 0
        Frequency of ratio 1, used to express partials as ratios

    Returns
    -------
    suggestions : list of Suggestion
        Empty if ``top_pairs`` is empty

    Examples
    --------
    >>> point = roughscape.compute_point(cfg, 1.06, 1.5, top_n=8)
    >>> for s in roughscape.build_timbre_suggestions(point.result.top_pairs, 220.0):
    ...     print(s.title)
    Soften cross-tone clashes
    """
    if not (np.isfinite(base_freq) and base_freq > 0):
        raise ParameterError(f"base_freq={base_freq} must be strictly positive")

    groups: Dict[str, List[PairContribution]] = {}
    for pair in top_pairs:
        tones = set(decode_tone_mask(pair.tone_mask1))
        tones.update(decode_tone_mask(pair.tone_mask2))
        cross = len(tones) > 1
        groups.setdefault("cross" if cross else "intra", []).append(pair)

    suggestions = []
    for kind, pairs in groups.items():
        best = max(pairs, key=lambda p: p.contribution)
        lo, hi = sorted((best.partial_index1, best.partial_index2))
        share = f"{len(pairs)} of the {len(top_pairs)} strongest pairs are {kind}-tone."

        if kind == "cross":
            suggestion = Suggestion(
                title="Soften cross-tone clashes",
                details=(
                    _describe(best, base_freq),
                    f"Trim partial {hi} or rebalance its amplitude against partial {lo}.",
                    share,
                ),
            )
        else:
            suggestion = Suggestion(
                title="Reduce intra-tone beating",
                details=(
                    _describe(best, base_freq),
                    f"Trim partial {hi} or increase its decay so it beats less "
                    f"against partial {lo}.",
                    share,
                ),
            )
        suggestions.append((best.contribution, suggestion))

    suggestions.sort(key=lambda s: -s[0])
    return [s for _, s in suggestions]


def build_scale_from_minima(
    minima: Sequence, root_ratio: float = 1.0, max_count: int = 12
) -> List[float]:
    """Collect a scale from the coordinates of landscape minima.

    Both coordinates of every minimum are gathered, restricted to the
    octave ``[1, 2)``, sorted, and de-duplicated (``|log2(a / b)| < 1e-4``).
    ``root_ratio`` is always included.  If fewer than two distinct ratios
    remain, ``2 * root_ratio`` closes the octave.

    Parameters
    ----------
    minima : sequence of MinimaPoint
        Anything with ``x`` and ``y`` attributes
    root_ratio : float > 0
    max_count : int
        Longest scale returned (at least 2)

    Returns
    -------
    ratios : list of float
        Ascending, containing ``root_ratio``, with length in
        ``[2, max(2, max_count)]``

    Examples
    --------
    >>> roughscape.build_scale_from_minima(minima, max_count=7)
    """
    if not (np.isfinite(root_ratio) and root_ratio > 0):
        raise ParameterError(f"root_ratio={root_ratio} must be strictly positive")
    limit = max(2, int(max_count))

    values = sorted(
        float(v)
        for m in minima
        for v in (m.x, m.y)
        if np.isfinite(v) and 1.0 <= v < 2.0
    )

    def _same(a, b):
        return abs(np.log2(a / b)) < SCALE_DEDUPE_TOLERANCE

    unique: List[float] = []
    for v in values:
        if not unique or not _same(unique[-1], v):
            unique.append(v)

    others = [v for v in unique if not _same(v, root_ratio)]
    scale = sorted([float(root_ratio)] + others[: limit - 1])
    if len(scale) < 2:
        scale.append(2.0 * root_ratio)
    return scale
