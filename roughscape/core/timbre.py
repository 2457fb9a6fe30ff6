#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""Timbre templates: canonical, normalized partial lists"""

import re
import warnings
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .._cache import cache
from .._typing import (
    _AmpCompression,
    _AmpNormalization,
    _AmpPipeline,
    _BaseStrategy,
    _MergeRule,
    _Preset,
    _ToleranceUnit,
    _TriadEnergy,
)
from ..util.exceptions import ParameterError
from ..util.utils import ratio_to_cents, valid_choice

__all__ = [
    "SpectrumPartial",
    "Partial",
    "TimbreConfig",
    "SpectrumTemplate",
    "ToneSpectrum",
    "DEFAULT_TIMBRE",
    "build_template",
    "build_tone",
    "to_partials",
    "triad_scale",
    "parse_spectrum_text",
]

# Ratios closer than this to 1 count as the fundamental
BASE_TOLERANCE = 1e-12


@dataclass(frozen=True)
class SpectrumPartial:
    """One entry of a custom spectrum, expressed relative to the fundamental."""

    ratio: float
    amp: float
    index: Optional[int] = None


@dataclass(frozen=True)
class Partial:
    """A sinusoidal component at an absolute frequency.

    ``tone_mask`` is a bitmask of the tones the partial belongs to:
    bit 0 for the root, bit 1 for the x-tone, bit 2 for the y-tone.
    """

    freq: float
    amp: float
    index: int = 0
    ratio: Optional[float] = None
    tone_index: Optional[int] = None
    tone_mask: Optional[int] = None


@dataclass(frozen=True)
class TimbreConfig:
    """Raw timbre configuration.

    See `build_template` for how each field is applied.
    """

    preset: _Preset = "saw"
    partial_count: int = 12
    custom_partials: Tuple[SpectrumPartial, ...] = ()
    max_partials: int = 128
    merge_close_partials: bool = False
    merge_tolerance: float = 1e-4
    merge_tolerance_unit: _ToleranceUnit = "ratio"
    merge_rule: _MergeRule = "sum"
    amplitude_normalization: _AmpNormalization = "none"
    amplitude_compression: _AmpCompression = "none"
    amplitude_compression_amount: float = 2.0
    amplitude_pipeline: _AmpPipeline = "compress_then_normalize"
    base_partial_strategy: _BaseStrategy = "max"
    clamp_negative_amps: bool = True
    triad_energy_mode: _TriadEnergy = "none"


DEFAULT_TIMBRE = TimbreConfig()


@dataclass(frozen=True, eq=False)
class SpectrumTemplate:
    """Canonical partial list of a timbre, sorted by ascending ratio.

    Attributes
    ----------
    ratios, amps : np.ndarray [shape=(n,)]
        Frequency ratios relative to the fundamental and their amplitudes
    partial_index : np.ndarray [shape=(n,), dtype=int]
        Stable partial indices. Harmonic presets use the harmonic number,
        custom spectra their position (from 1), and an inserted fundamental 0.
    original_count : int
        Number of source partials before any processing
    invalid_count : int
        Source partials dropped for a non-finite or non-positive ratio,
        or a non-finite amplitude
    merged_count : int
        Number of partials after merging close partials
    used_count : int
        Number of partials in the template
    dropped_count : int
        Partials removed by the ``max_partials`` cap
    added_base : bool
        Whether a fundamental was inserted at ratio 1
    """

    ratios: np.ndarray
    amps: np.ndarray
    partial_index: np.ndarray
    original_count: int = 0
    invalid_count: int = 0
    merged_count: int = 0
    used_count: int = 0
    dropped_count: int = 0
    added_base: bool = False
    config: TimbreConfig = field(default=DEFAULT_TIMBRE, repr=False)

    def __len__(self) -> int:
        return len(self.ratios)

    def partials(self) -> List[Partial]:
        """The template as an ordered list of `Partial` at unit base frequency."""
        return [
            Partial(freq=float(r), amp=float(a), index=int(k), ratio=float(r))
            for r, a, k in zip(self.ratios, self.amps, self.partial_index)
        ]


@dataclass(frozen=True, eq=False)
class ToneSpectrum:
    """A template transposed to a base frequency and assigned to a tone."""

    freqs: np.ndarray
    amps: np.ndarray
    ratios: np.ndarray
    partial_index: np.ndarray
    tone_index: int
    tone_mask: int

    def __len__(self) -> int:
        return len(self.freqs)

    @property
    def energy(self) -> float:
        return float(np.sum(self.amps**2))

    @property
    def max_amp(self) -> float:
        return float(np.max(self.amps)) if len(self.amps) else 0.0


def _preset_partials(preset: str, partial_count: int) -> List[SpectrumPartial]:
    # Harmonic numbers start at 1. Saw uses 1/k, square 1/k on odd k,
    # triangle 1/k**2 on odd k.
    count = int(round(partial_count))
    if count <= 0:
        return []

    if preset == "sine":
        return [SpectrumPartial(ratio=1.0, amp=1.0, index=1)]

    if preset in ("square", "triangle"):
        power = 2 if preset == "triangle" else 1
        return [
            SpectrumPartial(ratio=float(k), amp=1.0 / k**power, index=k)
            for k in range(1, count + 1, 2)
        ]

    return [
        SpectrumPartial(ratio=float(k), amp=1.0 / k, index=k)
        for k in range(1, count + 1)
    ]


def _coerce_partials(
    partials: Iterable[Union[SpectrumPartial, Sequence[float]]]
) -> List[SpectrumPartial]:
    out = []
    for pos, p in enumerate(partials):
        if isinstance(p, SpectrumPartial):
            index = p.index if p.index is not None else pos + 1
            out.append(SpectrumPartial(ratio=p.ratio, amp=p.amp, index=index))
        else:
            ratio, amp = p[0], p[1]
            out.append(SpectrumPartial(ratio=ratio, amp=amp, index=pos + 1))
    return out


def _separation(r_lo: float, r_hi: float, unit: str, base_freq: Optional[float]) -> float:
    if unit == "cents":
        return abs(float(ratio_to_cents(r_hi / r_lo)))
    if unit == "hz" and base_freq is not None:
        return abs(r_hi - r_lo) * base_freq
    # 'ratio', and 'hz' without an anchor frequency
    return abs(r_hi - r_lo)


def _merge_close(ratios, amps, index, tolerance, unit, rule, base_freq):
    tol = max(0.0, float(tolerance))
    out_r: List[float] = []
    out_a: List[float] = []
    out_k: List[int] = []
    for r, a, k in zip(ratios, amps, index):
        if out_r and _separation(out_r[-1], r, unit, base_freq) <= tol:
            if rule == "max":
                out_a[-1] = max(out_a[-1], a)
            else:
                out_a[-1] += a
            out_k[-1] = min(out_k[-1], k)
            continue
        out_r.append(r)
        out_a.append(a)
        out_k.append(k)
    return (
        np.asarray(out_r, dtype=float),
        np.asarray(out_a, dtype=float),
        np.asarray(out_k, dtype=np.int64),
    )


def _ensure_base(ratios, amps, index, strategy):
    if len(ratios) == 0 or np.any(np.abs(ratios - 1.0) < BASE_TOLERANCE):
        return ratios, amps, index, False

    if strategy == "first":
        # The lowest partial acts as the base; nothing is inserted.
        return ratios, amps, index, False

    if strategy == "one":
        amp = 1.0
    else:
        amp = float(np.max(amps))
        if not amp > 0:
            amp = 1.0

    pos = int(np.searchsorted(ratios, 1.0))
    return (
        np.insert(ratios, pos, 1.0),
        np.insert(amps, pos, amp),
        np.insert(index, pos, 0),
        True,
    )


def _compress(amps: np.ndarray, mode: str, amount: float) -> np.ndarray:
    if mode == "sqrt":
        return np.sqrt(np.maximum(amps, 0))
    if mode == "log":
        k = max(1e-4, float(amount))
        return np.log1p(k * np.maximum(amps, 0)) / np.log1p(k)
    return amps


def _normalize(amps: np.ndarray, mode: str) -> np.ndarray:
    if amps.size == 0:
        return amps
    if mode == "max":
        peak = np.max(amps)
        if peak > 0:
            return amps / peak
    elif mode == "energy":
        energy = np.sum(amps**2)
        if energy > 0:
            return amps / np.sqrt(energy)
    return amps


def _validate_timbre(config: TimbreConfig) -> None:
    valid_choice("preset", config.preset, ("saw", "square", "triangle", "sine", "custom"))
    valid_choice("merge_tolerance_unit", config.merge_tolerance_unit, ("ratio", "cents", "hz"))
    valid_choice("merge_rule", config.merge_rule, ("sum", "max"))
    valid_choice("amplitude_normalization", config.amplitude_normalization, ("none", "max", "energy"))
    valid_choice("amplitude_compression", config.amplitude_compression, ("none", "sqrt", "log"))
    valid_choice(
        "amplitude_pipeline",
        config.amplitude_pipeline,
        ("compress_then_normalize", "normalize_then_compress"),
    )
    valid_choice("base_partial_strategy", config.base_partial_strategy, ("max", "one", "first"))
    valid_choice("triad_energy_mode", config.triad_energy_mode, ("none", "linear", "sqrt"))
    if config.max_partials < 0:
        raise ParameterError(f"max_partials={config.max_partials} must be non-negative")


@cache(level=10)
def build_template(
    config: TimbreConfig, *, base_freq: Optional[float] = None
) -> SpectrumTemplate:
    """Build the canonical partial template of a timbre.

    The steps are applied in this order:

    1. Source partials come from the preset or ``config.custom_partials``.
       Entries with a non-finite or non-positive ratio, or a non-finite
       amplitude, are dropped and counted in ``invalid_count``.
    2. If ``merge_close_partials``, partials are sorted by ratio and merged
       while their separation is within ``merge_tolerance`` (measured in
       ``merge_tolerance_unit``).  Merged amplitudes are summed
       (``merge_rule='sum'``) or take the maximum (``merge_rule='max'``);
       the lower ratio and the smallest index are kept.
    3. If no partial sits at ratio 1, one is inserted according to
       ``base_partial_strategy``: ``'max'`` uses the loudest amplitude,
       ``'one'`` uses amplitude 1, and ``'first'`` inserts nothing so that
       the lowest partial acts as the base.
    4. Amplitudes are compressed and normalized in the order given by
       ``amplitude_pipeline``.
    5. If ``clamp_negative_amps``, negative amplitudes are floored to 0.
    6. If more than ``max_partials`` remain, the strongest are kept and
       the number of dropped partials is recorded.

    Parameters
    ----------
    config : TimbreConfig
        The timbre configuration
    base_freq : float > 0 [optional]
        Fundamental frequency in Hz.  Only used to interpret
        ``merge_tolerance_unit='hz'``; without it, Hz tolerances are
        compared against the ratio difference.

    Returns
    -------
    template : SpectrumTemplate
        Partials sorted by ascending ratio.
        A configuration with no partials yields an empty template.

    Raises
    ------
    ParameterError
        If any mode string is not recognized.

    See Also
    --------
    build_tone

    Examples
    --------
    >>> t = roughscape.build_template(roughscape.TimbreConfig(preset="square", partial_count=7))
    >>> t.ratios
    array([1., 3., 5., 7.])
    >>> t.amps
    array([1.        , 0.33333333, 0.2       , 0.14285714])
    """
    _validate_timbre(config)

    if config.preset == "custom":
        source = _coerce_partials(config.custom_partials)
    else:
        source = _preset_partials(config.preset, config.partial_count)

    original_count = len(source)
    ratios = np.asarray([p.ratio for p in source], dtype=float)
    amps = np.asarray([p.amp for p in source], dtype=float)
    index = np.asarray(
        [p.index if p.index is not None else k + 1 for k, p in enumerate(source)],
        dtype=np.int64,
    )

    valid = np.isfinite(ratios) & (ratios > 0) & np.isfinite(amps)
    invalid_count = int(np.sum(~valid))
    ratios, amps, index = ratios[valid], amps[valid], index[valid]

    order = np.argsort(ratios, kind="stable")
    ratios, amps, index = ratios[order], amps[order], index[order]

    if config.merge_close_partials:
        ratios, amps, index = _merge_close(
            ratios,
            amps,
            index,
            config.merge_tolerance,
            config.merge_tolerance_unit,
            config.merge_rule,
            base_freq,
        )
    merged_count = len(ratios)

    ratios, amps, index, added_base = _ensure_base(
        ratios, amps, index, config.base_partial_strategy
    )

    compression = config.amplitude_compression
    amount = config.amplitude_compression_amount
    if config.amplitude_pipeline == "normalize_then_compress":
        amps = _compress(_normalize(amps, config.amplitude_normalization), compression, amount)
    else:
        amps = _normalize(_compress(amps, compression, amount), config.amplitude_normalization)

    if config.clamp_negative_amps:
        amps = np.maximum(amps, 0.0)

    dropped_count = 0
    max_partials = int(config.max_partials)
    if len(ratios) > max_partials:
        # Strongest first, lower ratio wins ties
        strongest = np.lexsort((ratios, -amps))[:max_partials]
        keep = np.sort(strongest)
        dropped_count = len(ratios) - len(keep)
        ratios, amps, index = ratios[keep], amps[keep], index[keep]
        warnings.warn(
            f"Timbre exceeds max_partials={max_partials}; "
            f"dropped {dropped_count} weakest partial(s)",
            stacklevel=2,
        )

    return SpectrumTemplate(
        ratios=ratios,
        amps=amps,
        partial_index=index,
        original_count=original_count,
        invalid_count=invalid_count,
        merged_count=merged_count,
        used_count=len(ratios),
        dropped_count=dropped_count,
        added_base=added_base,
        config=config,
    )


def triad_scale(mode: _TriadEnergy) -> float:
    """Per-tone amplitude scale that keeps a three-tone chord's energy in check.

    ``'none'`` leaves amplitudes unchanged, ``'linear'`` divides by 3,
    and ``'sqrt'`` divides by ``sqrt(3)``.
    """
    if mode == "linear":
        return 1.0 / 3.0
    if mode == "sqrt":
        return 1.0 / np.sqrt(3.0)
    if mode == "none":
        return 1.0
    raise ParameterError(f"Unsupported triad_energy_mode={mode!r}")


def build_tone(
    template: SpectrumTemplate,
    base_freq: float,
    tone_index: int,
    amp_scale: float = 1.0,
) -> ToneSpectrum:
    """Transpose a template to ``base_freq`` and tag it as tone ``tone_index``.

    Parameters
    ----------
    template : SpectrumTemplate
    base_freq : float
        Frequency (Hz) of ratio 1
    tone_index : int >= 0
        Tone number; the tone mask is ``1 << tone_index``
    amp_scale : float
        Amplitude multiplier applied to every partial

    Returns
    -------
    tone : ToneSpectrum
    """
    if tone_index < 0:
        raise ParameterError(f"tone_index={tone_index} must be non-negative")

    return ToneSpectrum(
        freqs=base_freq * template.ratios,
        amps=template.amps * amp_scale,
        ratios=template.ratios,
        partial_index=template.partial_index,
        tone_index=int(tone_index),
        tone_mask=1 << int(tone_index),
    )


def to_partials(tone: ToneSpectrum) -> List[Partial]:
    """Expand a tone into a list of `Partial` records."""
    return [
        Partial(
            freq=float(f),
            amp=float(a),
            index=int(k),
            ratio=float(r),
            tone_index=tone.tone_index,
            tone_mask=tone.tone_mask,
        )
        for f, a, r, k in zip(tone.freqs, tone.amps, tone.ratios, tone.partial_index)
    ]


def parse_spectrum_text(text: str) -> Tuple[List[SpectrumPartial], List[str]]:
    """Parse a plain-text spectrum of ``ratio amplitude`` lines.

    Blank lines and lines starting with ``#`` or ``//`` are ignored.
    Fields may be separated by commas, spaces or tabs.

    Parameters
    ----------
    text : str

    Returns
    -------
    partials : list of SpectrumPartial
        Valid entries, indexed by their (1-based) line number
    errors : list of str
        One message per rejected line

    Examples
    --------
    >>> partials, errors = roughscape.parse_spectrum_text("1 1.0\\n2, 0.5\\nfoo 1")
    >>> [(p.ratio, p.amp) for p in partials]
    [(1.0, 1.0), (2.0, 0.5)]
    >>> errors
    ['Line 3, Col 1: invalid ratio']
    """
    partials: List[SpectrumPartial] = []
    errors: List[str] = []

    for lineno, line in enumerate(text.splitlines(), start=1):
        cleaned = line.strip()
        if not cleaned or cleaned.startswith("#") or cleaned.startswith("//"):
            continue

        parts = [p for p in re.split(r"[,\s]+", cleaned) if p]
        if len(parts) < 2:
            errors.append(f"Line {lineno}: expected ratio and amplitude")
            continue

        try:
            ratio = float(parts[0])
        except ValueError:
            ratio = np.nan
        if not np.isfinite(ratio) or ratio <= 0:
            col = cleaned.index(parts[0]) + 1
            errors.append(f"Line {lineno}, Col {col}: invalid ratio")
            continue

        try:
            amp = float(parts[1])
        except ValueError:
            amp = np.nan
        if not np.isfinite(amp):
            col = cleaned.index(parts[1], len(parts[0])) + 1
            errors.append(f"Line {lineno}, Col {col}: invalid amplitude")
            continue

        partials.append(SpectrumPartial(ratio=ratio, amp=amp, index=lineno))

    return partials, errors
