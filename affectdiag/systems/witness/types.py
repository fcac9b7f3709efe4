"""
affectdiag — Witness Types

A witness is one concrete point in state space, on the raw integer display
scale, that satisfies (or nearly satisfies) an expression.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import numpy as np
from pydantic import Field, field_validator, model_validator

from affectdiag.primitives.axes import (
    AFFECT_TRAITS,
    MOOD_AXES,
    MOOD_RAW_RANGE,
    RAW_RANGES,
    SEXUAL_AROUSAL_AXIS,
    SEXUAL_AXES,
    SEXUAL_RAW_RANGES,
    TRAIT_DEFAULT,
    TRAIT_RAW_RANGE,
    compute_sexual_arousal,
    normalize,
)
from affectdiag.primitives.common import DiagBaseModel, new_id


def _check_axes(
    group: str,
    values: Any,
    axes: tuple[str, ...],
    ranges: Mapping[str, tuple[int, int]],
) -> dict[str, int]:
    if not isinstance(values, Mapping):
        raise ValueError(f"WitnessState {group} must be a mapping of axis -> integer")
    checked: dict[str, int] = {}
    for axis in axes:
        if axis not in values:
            raise ValueError(f"WitnessState {group} is missing axis '{axis}'")
        value = values[axis]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"WitnessState {group}.{axis} must be a number")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"WitnessState {group}.{axis} must be an integer, got {value}")
        lo, hi = ranges[axis]
        if not lo <= value <= hi:
            raise ValueError(f"WitnessState {group}.{axis}={value} outside [{lo}, {hi}]")
        checked[axis] = int(value)
    return checked


class WitnessState(DiagBaseModel):
    model_config = {"frozen": True}

    mood: dict[str, int]
    sexual: dict[str, int]
    affect_traits: dict[str, int] = Field(
        default_factory=lambda: {axis: TRAIT_DEFAULT for axis in AFFECT_TRAITS}
    )
    fitness: float = Field(default=1.0, ge=0.0, le=1.0)
    is_exact: bool = True
    expression_id: str | None = None

    @field_validator("mood", mode="before")
    @classmethod
    def _validate_mood(cls, value: Any) -> dict[str, int]:
        return _check_axes("mood", value, MOOD_AXES, {a: MOOD_RAW_RANGE for a in MOOD_AXES})

    @field_validator("sexual", mode="before")
    @classmethod
    def _validate_sexual(cls, value: Any) -> dict[str, int]:
        return _check_axes("sexual", value, SEXUAL_AXES, SEXUAL_RAW_RANGES)

    @field_validator("affect_traits", mode="before")
    @classmethod
    def _validate_traits(cls, value: Any) -> dict[str, int]:
        if value is None:
            value = {}
        if not isinstance(value, Mapping):
            raise ValueError("WitnessState affect_traits must be a mapping of axis -> integer")
        filled = {axis: value.get(axis, TRAIT_DEFAULT) for axis in AFFECT_TRAITS}
        return _check_axes(
            "affect_traits", filled, AFFECT_TRAITS, {a: TRAIT_RAW_RANGE for a in AFFECT_TRAITS}
        )

    @model_validator(mode="before")
    @classmethod
    def _require_groups(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            for group in ("mood", "sexual"):
                if data.get(group) is None:
                    raise ValueError(f"WitnessState requires {group} state")
        return data

    # ─── Factories ────────────────────────────────────────────────

    @classmethod
    def create_random(cls, rng: np.random.Generator | None = None) -> WitnessState:
        rng = rng or np.random.default_rng()
        values = {
            axis: int(rng.integers(lo, hi, endpoint=True)) for axis, (lo, hi) in RAW_RANGES.items()
        }
        return cls.from_axis_values(values, fitness=0.0, is_exact=False)

    @classmethod
    def create_neutral(cls) -> WitnessState:
        values = {axis: (lo + hi) // 2 for axis, (lo, hi) in RAW_RANGES.items()}
        values.update({axis: 0 for axis in MOOD_AXES})
        values.update({axis: TRAIT_DEFAULT for axis in AFFECT_TRAITS})
        return cls.from_axis_values(values, fitness=0.0, is_exact=False)

    @classmethod
    def from_axis_values(
        cls,
        values: Mapping[str, int],
        fitness: float = 1.0,
        is_exact: bool = True,
        expression_id: str | None = None,
    ) -> WitnessState:
        """Build from a flat ``axis -> raw value`` map covering every axis."""
        return cls(
            mood={axis: values[axis] for axis in MOOD_AXES},
            sexual={axis: values[axis] for axis in SEXUAL_AXES},
            affect_traits={axis: values[axis] for axis in AFFECT_TRAITS},
            fitness=fitness,
            is_exact=is_exact,
            expression_id=expression_id,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WitnessState:
        return cls.model_validate(data)

    # ─── Accessors ────────────────────────────────────────────────

    @property
    def is_witness(self) -> bool:
        return self.is_exact and self.fitness == 1.0

    def get_mood_axis(self, axis: str) -> int | None:
        return self.mood.get(axis)

    def get_sexual_axis(self, axis: str) -> int | None:
        return self.sexual.get(axis)

    def get_trait_axis(self, axis: str) -> int | None:
        return self.affect_traits.get(axis)

    def axis_values(self) -> dict[str, int]:
        """Flat raw ``axis -> value`` map over every axis."""
        return {**self.mood, **self.sexual, **self.affect_traits}

    def sexual_arousal(self) -> float:
        return compute_sexual_arousal(
            self.sexual["sex_excitation"],
            self.sexual["sex_inhibition"],
            self.sexual["baseline_libido"],
        )

    def normalized_axes(self) -> dict[str, float]:
        """Normalised axis map used for prototype maths, including sexual arousal."""
        axes = {axis: normalize(value) for axis, value in self.axis_values().items()}
        axes[SEXUAL_AROUSAL_AXIS] = self.sexual_arousal()
        return axes

    def with_changes(self, **changes: Any) -> WitnessState:
        """New state with ``mood`` / ``sexual`` / ``affect_traits`` partially overridden."""
        data: dict[str, Any] = {
            "mood": dict(self.mood),
            "sexual": dict(self.sexual),
            "affect_traits": dict(self.affect_traits),
            "fitness": self.fitness,
            "is_exact": self.is_exact,
            "expression_id": self.expression_id,
        }
        for key, value in changes.items():
            if key in ("mood", "sexual", "affect_traits") and isinstance(value, Mapping):
                data[key].update(value)
            else:
                data[key] = value
        return WitnessState(**data)

    # ─── Rendering ────────────────────────────────────────────────

    def to_display_string(self) -> str:
        lines = ["Mood:"]
        lines.extend(f"  {axis}: {float(self.mood[axis]):.1f}" for axis in MOOD_AXES)
        lines.append("Sexual:")
        lines.extend(f"  {axis}: {float(self.sexual[axis]):.1f}" for axis in SEXUAL_AXES)
        lines.append("Affect Traits:")
        lines.extend(f"  {axis}: {float(self.affect_traits[axis]):.1f}" for axis in AFFECT_TRAITS)
        return "\n".join(lines)

    def to_clipboard_json(self) -> str:
        """Compact state-only JSON for pasting into a simulator."""
        return json.dumps(
            {
                "mood": dict(self.mood),
                "sexual": dict(self.sexual),
                "affectTraits": dict(self.affect_traits),
            },
            indent=2,
        )


class SearchResult(DiagBaseModel):
    search_id: str = Field(default_factory=new_id)
    expression_id: str | None = None
    found: bool = False
    witness: WitnessState | None = None
    nearest_miss: WitnessState | None = None
    best_fitness: float = 0.0
    iterations_used: int = 0
    restarts: int = 0
    violated_clauses: list[str] = Field(default_factory=list)

    @property
    def best_state(self) -> WitnessState | None:
        return self.witness if self.found else self.nearest_miss
