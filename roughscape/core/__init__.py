#!/usr/bin/env python
# -*- coding: utf-8 -*-
""" Core roughness computations"""

from .timbre import *  # pylint: disable=wildcard-import
from .pairs import *  # pylint: disable=wildcard-import
from .roughness import *  # pylint: disable=wildcard-import
from .sampling import *  # pylint: disable=wildcard-import
from .grid import *  # pylint: disable=wildcard-import


__all__ = []
__all__ += timbre.__all__
__all__ += pairs.__all__
__all__ += roughness.__all__
__all__ += sampling.__all__
__all__ += grid.__all__
