from __future__ import annotations

from typing import Tuple
from typing_extensions import Literal, Never


_Range = Tuple[float, float]

# Timbre template options
_Preset = Literal["saw", "square", "triangle", "sine", "custom"]
_ToleranceUnit = Literal["ratio", "cents", "hz"]
_MergeRule = Literal["sum", "max"]
_AmpNormalization = Literal["none", "max", "energy"]
_AmpCompression = Literal["none", "sqrt", "log"]
_AmpPipeline = Literal["compress_then_normalize", "normalize_then_compress"]
_BaseStrategy = Literal["max", "one", "first"]
_TriadEnergy = Literal["none", "linear", "sqrt"]

# Grid options
_ResolutionMode = Literal["fixed", "auto"]
_NormalizationMode = Literal["none", "energy", "max", "reference"]
_ScalarField = Literal["raw", "normalized"]

# Analysis options
_BoundaryPolicy = Literal["skip", "mirror"]
_Connectivity = Literal[4, 8]
_RationalMethod = Literal["continued", "denominator"]


def _ensure_not_reachable(__arg: Never):
    """
    Ensure that a code path is not reachable, like typing_extension.assert_never.

    This doesn't raise an exception so that we are forced to manually
    raise a more user friendly exception afterwards.
    """
    ...
