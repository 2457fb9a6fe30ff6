#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Memoized enumeration of unordered partial pairs"""

from typing import Dict, NamedTuple

import numpy as np

__all__ = ["PairIndices", "PairIndexCache", "pair_indices"]


class PairIndices(NamedTuple):
    """Parallel index arrays ``i[k] < j[k]`` of every unordered pair."""

    i: np.ndarray
    j: np.ndarray


def pair_indices(n: int) -> PairIndices:
    """Enumerate every unordered pair ``(a, b)`` with ``0 <= a < b < n``.

    Pairs are listed in lexicographic order of ``(a, b)``.

    Parameters
    ----------
    n : int
        Number of items.  Negative values are treated as 0.

    Returns
    -------
    pairs : PairIndices
        Two read-only integer arrays of length ``n * (n - 1) // 2``

    Examples
    --------
    >>> roughscape.core.pair_indices(4)
    PairIndices(i=array([0, 0, 0, 1, 1, 2]), j=array([1, 2, 3, 2, 3, 3]))
    """
    n = max(0, int(n))
    i, j = np.triu_indices(n, k=1)
    i = i.astype(np.int64)
    j = j.astype(np.int64)
    i.flags.writeable = False
    j.flags.writeable = False
    return PairIndices(i=i, j=j)


class PairIndexCache(object):
    """An explicitly owned cache of `pair_indices` results.

    Entries are created once per distinct count and never modified,
    so one cache may be shared by concurrent readers.  Insertion uses
    `dict.setdefault`, so two threads racing on the same count agree
    on a single stored entry.

    Examples
    --------
    >>> cache = roughscape.PairIndexCache()
    >>> p = cache.get_pair_indices(3)
    >>> p is cache.get_pair_indices(3)
    True
    >>> len(cache)
    1
    >>> cache.clear()
    >>> len(cache)
    0
    """

    def __init__(self) -> None:
        self._entries: Dict[int, PairIndices] = {}

    def get_pair_indices(self, n: int) -> PairIndices:
        """Return the (cached) pair enumeration for ``n`` items.

        Repeated calls with the same ``n`` return the identical object.
        Negative counts are treated as 0.
        """
        n = max(0, int(n))
        pairs = self._entries.get(n)
        if pairs is None:
            pairs = self._entries.setdefault(n, pair_indices(n))
        return pairs

    __call__ = get_pair_indices

    def clear(self) -> None:
        """Evict all entries."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, n: object) -> bool:
        return n in self._entries
