#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Utility functions"""

from typing import Any, Collection, Sequence, Tuple

import numpy as np
from numba import jit
from numpy.typing import ArrayLike

from .exceptions import ParameterError

__all__ = [
    "fold_ratio",
    "unique_sorted",
    "ratio_to_cents",
    "cents_to_ratio",
    "log_distance",
    "mirror_index",
    "neighbor_offsets",
    "tiny",
    "valid_range",
    "valid_choice",
    "is_positive_int",
]


def fold_ratio(ratio: float) -> float:
    """Fold a frequency ratio into the octave ``[1, 2]``.

    Non-finite and non-positive ratios are returned unchanged.

    Parameters
    ----------
    ratio : float
        The ratio to fold

    Returns
    -------
    folded : float
        ``ratio * 2**k`` for the integer ``k`` placing it in ``[1, 2]``

    Examples
    --------
    >>> roughscape.util.fold_ratio(3.0)
    1.5
    >>> roughscape.util.fold_ratio(0.75)
    1.5
    """
    value = float(ratio)
    if not np.isfinite(value) or value <= 0:
        return value
    while value > 2:
        value /= 2
    while value < 1:
        value *= 2
    return value


def unique_sorted(values: ArrayLike, tol: float = 1e-6) -> np.ndarray:
    """Sort finite values and drop entries within ``tol`` of their predecessor.

    Parameters
    ----------
    values : array-like
        Input values
    tol : float >= 0
        Absolute tolerance for duplicate detection

    Returns
    -------
    unique : np.ndarray
        Sorted, de-duplicated values
    """
    arr = np.asarray(values, dtype=float).ravel()
    arr = np.sort(arr[np.isfinite(arr)])
    if arr.size == 0:
        return arr

    keep = [arr[0]]
    for v in arr[1:]:
        if abs(v - keep[-1]) > tol:
            keep.append(v)
    return np.asarray(keep, dtype=float)


def ratio_to_cents(ratio: ArrayLike) -> np.ndarray:
    """Convert frequency ratios to cents"""
    return 1200.0 * np.log2(np.asarray(ratio, dtype=float))


def cents_to_ratio(cents: ArrayLike) -> np.ndarray:
    """Convert cents to frequency ratios"""
    return 2.0 ** (np.asarray(cents, dtype=float) / 1200.0)


def log_distance(x1: float, y1: float, x2: float, y2: float) -> float:
    """Euclidean distance between two ratio coordinates in natural-log space."""
    return float(np.hypot(np.log(x1) - np.log(x2), np.log(y1) - np.log(y2)))


@jit(nopython=True, nogil=True, cache=True)
def mirror_index(idx, size):  # pragma: no cover
    """Reflect an index into ``[0, size)`` without repeating the edge sample.

    This matches the ``'mirror'`` mode of `scipy.ndimage`:
    ``-1 -> 1`` and ``size -> size - 2``.

    Examples
    --------
    >>> roughscape.util.mirror_index(-1, 5)
    1
    >>> roughscape.util.mirror_index(5, 5)
    3
    """
    if size <= 1:
        return 0
    while idx < 0 or idx >= size:
        if idx < 0:
            idx = -idx
        if idx >= size:
            idx = 2 * size - 2 - idx
    return idx


def neighbor_offsets(connectivity: int) -> np.ndarray:
    """Offsets ``(di, dj)`` of a 4- or 8-connected neighborhood.

    Parameters
    ----------
    connectivity : {4, 8}

    Returns
    -------
    offsets : np.ndarray [shape=(connectivity, 2), dtype=int]

    Raises
    ------
    ParameterError
        If ``connectivity`` is neither 4 nor 8
    """
    if connectivity == 4:
        return np.array([[0, -1], [-1, 0], [1, 0], [0, 1]], dtype=np.int64)
    if connectivity == 8:
        return np.array(
            [[-1, -1], [0, -1], [1, -1], [-1, 0], [1, 0], [-1, 1], [0, 1], [1, 1]],
            dtype=np.int64,
        )
    raise ParameterError(f"connectivity={connectivity} must be 4 or 8")


def tiny(x: Any) -> float:
    """Compute the tiny-value corresponding to an input's data type.

    This is the smallest "usable" number representable in ``x``'s
    data type.  It is used as a threshold for numerical underflow
    when deciding whether a roughness value is effectively zero.

    Parameters
    ----------
    x : number or np.ndarray
        The array to compute the tiny-value for.
        All that matters here is ``x.dtype``.

    Returns
    -------
    tiny_value : float
        The smallest positive usable number for the type of ``x``.
        If ``x`` is integer-typed, then the tiny value for ``np.float32``
        is returned instead.

    Examples
    --------
    >>> roughscape.util.tiny(1.0)
    2.2250738585072014e-308
    """
    x = np.asarray(x)

    if np.issubdtype(x.dtype, np.floating) or np.issubdtype(
        x.dtype, np.complexfloating
    ):
        dtype = x.dtype
    else:
        dtype = np.float32

    return np.finfo(dtype).tiny


def is_positive_int(x: Any) -> bool:
    """Check that x is a positive integer, i.e. 1 or greater."""
    return bool(isinstance(x, (int, np.integer)) and not isinstance(x, bool) and x > 0)


def valid_range(
    name: str, bounds: Sequence[float], *, positive: bool = True
) -> Tuple[float, float]:
    """Validate a ``(lo, hi)`` range.

    Parameters
    ----------
    name : str
        Name used in the error message
    bounds : sequence of two floats
        The range to check
    positive : bool
        If ``True``, both bounds must be strictly positive

    Returns
    -------
    lo, hi : float

    Raises
    ------
    ParameterError
        If ``bounds`` does not have two finite entries with ``lo < hi``,
        or if ``positive`` and ``lo <= 0``.
    """
    try:
        lo, hi = (float(v) for v in bounds)
    except (TypeError, ValueError) as exc:
        raise ParameterError(f"{name}={bounds!r} must be a pair of numbers") from exc

    if not (np.isfinite(lo) and np.isfinite(hi)):
        raise ParameterError(f"{name}={bounds!r} must be finite")
    if positive and lo <= 0:
        raise ParameterError(f"{name}={bounds!r} must be strictly positive")
    if not lo < hi:
        raise ParameterError(f"{name}={bounds!r} must satisfy lo < hi")
    return lo, hi


def valid_choice(name: str, value: Any, choices: Collection[Any]) -> Any:
    """Ensure that ``value`` is one of ``choices``.

    Raises
    ------
    ParameterError
        If ``value`` is not a member of ``choices``
    """
    if value not in choices:
        raise ParameterError(
            f"Unsupported {name}={value!r}; expected one of {sorted(map(str, choices))}"
        )
    return value
