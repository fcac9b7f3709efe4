"""
affectdiag — Axis Catalogue

The continuous state axes prototypes are built from. Every axis has a raw
display scale (integers, e.g. [-100, 100]) and a normalised scale used by
prototype maths (raw / 100).
"""

from __future__ import annotations

import enum


class AxisKind(str, enum.Enum):
    MOOD = "mood"           # Bipolar, raw [-100, 100]
    SEXUAL = "sexual"       # Per-axis raw bounds
    TRAIT = "trait"         # Unipolar, raw [0, 100]
    DERIVED = "derived"     # Computed from other axes, normalised [0, 1]


# ─── Constants ────────────────────────────────────────────────────

RAW_SCALE: float = 100.0

MOOD_AXES: tuple[str, ...] = (
    "valence",
    "arousal",
    "agency_control",
    "threat",
    "engagement",
    "future_expectancy",
    "self_evaluation",
    "affiliation",
)

SEXUAL_AXES: tuple[str, ...] = (
    "sex_excitation",
    "sex_inhibition",
    "baseline_libido",
)

AFFECT_TRAITS: tuple[str, ...] = (
    "affective_empathy",
    "cognitive_empathy",
    "harm_aversion",
)

SEXUAL_AROUSAL_AXIS = "sexual_arousal"

# Short names accepted in gate strings and weight maps
AXIS_ALIASES: dict[str, str] = {
    "SA": SEXUAL_AROUSAL_AXIS,
}

MOOD_RAW_RANGE: tuple[int, int] = (-100, 100)
TRAIT_RAW_RANGE: tuple[int, int] = (0, 100)
TRAIT_DEFAULT: int = 50

SEXUAL_RAW_RANGES: dict[str, tuple[int, int]] = {
    "sex_excitation": (0, 100),
    "sex_inhibition": (0, 100),
    "baseline_libido": (-50, 50),
}

# Full legal range of every axis the witness search moves, on the raw scale
RAW_RANGES: dict[str, tuple[int, int]] = {
    **{axis: MOOD_RAW_RANGE for axis in MOOD_AXES},
    **SEXUAL_RAW_RANGES,
    **{axis: TRAIT_RAW_RANGE for axis in AFFECT_TRAITS},
}


def canonical_axis(axis: str) -> str:
    return AXIS_ALIASES.get(axis, axis)


def axis_kind(axis: str) -> AxisKind:
    axis = canonical_axis(axis)
    if axis in MOOD_AXES:
        return AxisKind.MOOD
    if axis in SEXUAL_RAW_RANGES:
        return AxisKind.SEXUAL
    if axis in AFFECT_TRAITS:
        return AxisKind.TRAIT
    return AxisKind.DERIVED


def is_mood_axis(axis: str) -> bool:
    return canonical_axis(axis) in MOOD_AXES


def normalized_range(axis: str) -> tuple[float, float]:
    """
    Legal range of an axis on the normalised scale.

    Mood axes are bipolar [-1, 1]. Sexual axes follow their raw bounds / 100.
    Traits, sexual arousal and any axis not in the catalogue are unipolar [0, 1].
    """
    axis = canonical_axis(axis)
    if axis in MOOD_AXES:
        return (-1.0, 1.0)
    if axis in SEXUAL_RAW_RANGES:
        lo, hi = SEXUAL_RAW_RANGES[axis]
        return (lo / RAW_SCALE, hi / RAW_SCALE)
    return (0.0, 1.0)


def normalize(raw: float) -> float:
    return raw / RAW_SCALE


def to_raw(value: float) -> int:
    return round(value * RAW_SCALE)


def compute_sexual_arousal(excitation: float, inhibition: float, libido: float) -> float:
    """Sexual arousal from raw sexual axes, clamped to [0, 1]."""
    return max(0.0, min(1.0, (excitation - inhibition + libido) / RAW_SCALE))
