#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Scales
======

Scale definitions and their evaluation against a roughness landscape.

.. autosummary::
    :toctree: generated/

    edo_scale
    parse_scale_text
    scale_from_minima
    compare_scale
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from typing_extensions import Literal

from ._typing import _ScalarField
from .core.grid import GridData
from .suggest import build_scale_from_minima
from .surface import sample_grid
from .util.exceptions import ParameterError
from .util.utils import fold_ratio, is_positive_int

__all__ = [
    "ScaleDefinition",
    "ScalePoint",
    "ScaleComparison",
    "SCALE_PRESETS",
    "edo_scale",
    "parse_scale_text",
    "scale_from_minima",
    "compare_scale",
]


@dataclass(frozen=True)
class ScaleDefinition:
    name: str
    ratios: Tuple[float, ...]
    kind: Literal["edo", "just", "custom"] = "custom"

    def __len__(self) -> int:
        return len(self.ratios)


@dataclass(frozen=True)
class ScalePoint:
    x: float
    y: float
    roughness: float
    normalized: float


@dataclass(frozen=True)
class ScaleComparison:
    """Roughness of every interval pair of a scale.

    Attributes
    ----------
    worst : tuple of ScalePoint
        The roughest pairs, roughest first
    count : int
        Number of pairs scored
    max_roughness : float
    average : float
    """

    worst: Tuple[ScalePoint, ...]
    count: int
    max_roughness: float
    average: float


def edo_scale(steps: int) -> ScaleDefinition:
    """Equal division of the octave into ``steps`` parts.

    Examples
    --------
    >>> roughscape.edo_scale(4).ratios
    (1.0, 1.189207115002721, 1.4142135623730951, 1.6817928305074292)
    """
    if not is_positive_int(steps):
        raise ParameterError(f"steps={steps!r} must be a positive integer")
    return ScaleDefinition(
        name=f"{steps}-EDO",
        ratios=tuple(float(2.0 ** (k / steps)) for k in range(steps)),
        kind="edo",
    )


SCALE_PRESETS = (
    edo_scale(12),
    edo_scale(19),
    edo_scale(31),
    ScaleDefinition(
        "5-limit just", (1.0, 9 / 8, 5 / 4, 4 / 3, 3 / 2, 5 / 3, 15 / 8), kind="just"
    ),
    ScaleDefinition(
        "7-limit just",
        (1.0, 9 / 8, 8 / 7, 6 / 5, 5 / 4, 4 / 3, 7 / 5, 3 / 2, 8 / 5, 5 / 3, 7 / 4, 15 / 8),
        kind="just",
    ),
)


def _parse_token(token: str) -> Optional[float]:
    if "/" in token:
        parts = token.split("/")
        if len(parts) != 2:
            return None
        try:
            num, den = float(parts[0]), float(parts[1])
        except ValueError:
            return None
        if den == 0:
            return None
        return num / den
    try:
        return float(token)
    except ValueError:
        return None


def parse_scale_text(text: str) -> List[float]:
    """Parse whitespace- or comma-separated ratios.

    Tokens may be fractions (``3/2``) or decimals (``1.5``).  Invalid
    and non-positive tokens are ignored.  Values are folded into the
    octave ``[1, 2]`` and sorted.

    Examples
    --------
    >>> roughscape.parse_scale_text("1/1, 9/8 5/4 3 foo")
    [1.0, 1.125, 1.25, 1.5]
    """
    values = []
    for token in re.split(r"[\s,]+", text.strip()):
        if not token:
            continue
        value = _parse_token(token)
        if value is None or not np.isfinite(value) or value <= 0:
            continue
        folded = fold_ratio(value)
        if 1.0 <= folded <= 2.0:
            values.append(folded)
    return sorted(values)


def scale_from_minima(
    minima: Sequence, name: str = "Landscape minima", root_ratio: float = 1.0, max_count: int = 12
) -> ScaleDefinition:
    """A custom `ScaleDefinition` from landscape minima.

    See Also
    --------
    roughscape.build_scale_from_minima
    """
    ratios = build_scale_from_minima(minima, root_ratio=root_ratio, max_count=max_count)
    return ScaleDefinition(name=name, ratios=tuple(ratios), kind="custom")


def compare_scale(
    grid: GridData,
    ratios: Sequence[float],
    worst_count: int = 5,
    *,
    field: Optional[_ScalarField] = None,
) -> ScaleComparison:
    """Score every interval pair of a scale on a landscape.

    Each pair ``ratios[i] < ratios[j]`` is looked up at ``(x, y) =
    (ratios[i], ratios[j])`` with `sample_grid`, clamping to the grid.

    Parameters
    ----------
    grid : GridData
    ratios : sequence of float
        A scale, e.g. ``ScaleDefinition.ratios``
    worst_count : int
        Number of roughest pairs to report (at least 1)
    field : {'raw', 'normalized'} [optional]
        Field used for ``roughness``; defaults to ``grid.scalar_field``

    Returns
    -------
    comparison : ScaleComparison

    Examples
    --------
    >>> result = roughscape.compare_scale(grid, roughscape.SCALE_PRESETS[3].ratios)
    >>> result.count
    21
    """
    ratios = np.sort(np.asarray(ratios, dtype=float))
    ratios = ratios[np.isfinite(ratios) & (ratios > 0)]

    i, j = np.triu_indices(len(ratios), k=1)
    xs, ys = ratios[i], ratios[j]
    if xs.size == 0:
        return ScaleComparison(worst=(), count=0, max_roughness=0.0, average=0.0)

    values = np.atleast_1d(sample_grid(grid, xs, ys, field=field, clamp=True))
    normalized = np.atleast_1d(sample_grid(grid, xs, ys, field="normalized", clamp=True))
    ok = np.isfinite(values)
    xs, ys, values, normalized = xs[ok], ys[ok], values[ok], normalized[ok]
    if values.size == 0:
        return ScaleComparison(worst=(), count=0, max_roughness=0.0, average=0.0)

    order = np.argsort(-values, kind="stable")
    worst = tuple(
        ScalePoint(
            x=float(xs[k]), y=float(ys[k]), roughness=float(values[k]), normalized=float(normalized[k])
        )
        for k in order[: max(1, int(worst_count))]
    )
    return ScaleComparison(
        worst=worst,
        count=int(values.size),
        max_roughness=float(values[order[0]]),
        average=float(np.mean(values)),
    )
