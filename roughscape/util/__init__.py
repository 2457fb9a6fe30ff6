#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Utilities
=========

Ratio helpers
-------------
.. autosummary::
    :toctree: generated/

    fold_ratio
    unique_sorted
    ratio_to_cents
    cents_to_ratio
    log_distance

Array helpers
-------------
.. autosummary::
    :toctree: generated/

    mirror_index
    neighbor_offsets
    tiny

Input validation
----------------
.. autosummary::
    :toctree: generated/

    valid_range
    valid_choice
    is_positive_int
"""

import lazy_loader as lazy

__getattr__, __dir__, __all__ = lazy.attach_stub(__name__, __file__)
