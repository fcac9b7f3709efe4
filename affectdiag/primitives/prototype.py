"""
affectdiag — Prototypes & Gates

A prototype is a named affective quantity: a weighted linear combination of
normalised state axes, switched off entirely unless every one of its gates
holds. Intensity is the weight-normalised signed sum, clamped to [0, 1].
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from pydantic import Field, field_validator

from affectdiag.primitives.axes import canonical_axis
from affectdiag.primitives.common import (
    DiagBaseModel,
    GateOperator,
    PrototypeType,
    clamp01,
)
from affectdiag.primitives.interval import Interval

logger = structlog.get_logger("affectdiag.primitives.prototype")

GATE_PATTERN = re.compile(r"^(\w+)\s*(>=|<=|>|<|==)\s*(-?\d*\.?\d+)$")

# Tolerance for equality gates on continuous values
EQUALITY_TOLERANCE: float = 1e-4


class GateConstraint(DiagBaseModel):
    """One parsed gate: ``axis <op> value`` on the normalised scale."""

    model_config = {"frozen": True}

    axis: str
    operator: GateOperator
    value: float = Field(allow_inf_nan=False)

    @classmethod
    def parse(cls, gate: str) -> GateConstraint:
        if not isinstance(gate, str):
            raise ValueError(f"Gate must be a string, got {type(gate).__name__}")
        match = GATE_PATTERN.match(gate.strip())
        if match is None:
            raise ValueError(f"Invalid gate string: {gate!r}")
        axis, op, value = match.groups()
        return cls(axis=canonical_axis(axis), operator=GateOperator(op), value=float(value))

    def apply_to(self, interval: Interval) -> Interval:
        return interval.apply_constraint(self.operator, self.value)

    def is_satisfied_by(self, value: float) -> bool:
        if self.operator == GateOperator.GTE:
            return value >= self.value
        if self.operator == GateOperator.LTE:
            return value <= self.value
        if self.operator == GateOperator.GT:
            return value > self.value
        if self.operator == GateOperator.LT:
            return value < self.value
        return abs(value - self.value) < EQUALITY_TOLERANCE

    def can_fail_within(self, interval: Interval) -> bool:
        """True when some value inside ``interval`` violates this gate."""
        if interval.is_empty():
            return False
        if self.operator == GateOperator.GTE:
            return interval.min < self.value
        if self.operator == GateOperator.LTE:
            return interval.max > self.value
        if self.operator == GateOperator.GT:
            return interval.min <= self.value
        if self.operator == GateOperator.LT:
            return interval.max >= self.value
        return interval.width() > 0 or abs(interval.min - self.value) >= EQUALITY_TOLERANCE

    def __str__(self) -> str:
        return f"{self.axis} {self.operator.value} {self.value:g}"


def parse_gates(gates: Iterable[str], owner: str = "") -> list[GateConstraint]:
    """Parse gate strings, skipping (and logging) malformed ones."""
    parsed: list[GateConstraint] = []
    for gate in gates:
        try:
            parsed.append(GateConstraint.parse(gate))
        except ValueError:
            logger.debug("malformed_gate_skipped", prototype=owner, gate=gate)
    return parsed


class WeightedPrototype(DiagBaseModel):
    model_config = {"frozen": True}

    id: str = Field(min_length=1)
    weights: dict[str, float] = Field(default_factory=dict)
    gates: tuple[str, ...] = ()
    type: PrototypeType = PrototypeType.EMOTION

    @field_validator("weights", mode="before")
    @classmethod
    def _canonical_weight_axes(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {canonical_axis(str(axis)): weight for axis, weight in value.items()}
        return value

    @classmethod
    def from_entry(
        cls,
        prototype_id: str,
        entry: Mapping[str, Any],
        prototype_type: PrototypeType = PrototypeType.EMOTION,
    ) -> WeightedPrototype:
        """Build from a registry entry ``{weights, gates}``."""
        return cls(
            id=prototype_id,
            weights=dict(entry.get("weights") or {}),
            gates=tuple(entry.get("gates") or ()),
            type=prototype_type,
        )

    @property
    def parsed_gates(self) -> list[GateConstraint]:
        return parse_gates(self.gates, owner=self.id)

    @property
    def gated_axes(self) -> set[str]:
        return {gate.axis for gate in self.parsed_gates}

    @property
    def weight_norm(self) -> float:
        return sum(abs(w) for w in self.weights.values())

    def gates_pass(self, axes: Mapping[str, float]) -> bool:
        return all(
            gate.is_satisfied_by(axes.get(gate.axis, 0.0)) for gate in self.parsed_gates
        )

    def intensity(self, axes: Mapping[str, float]) -> float:
        """
        Intensity at a concrete normalised state.

        Zero when any gate fails or the prototype has no weights.
        """
        if not self.gates_pass(axes):
            return 0.0
        norm = self.weight_norm
        if norm == 0:
            return 0.0
        raw = sum(axes.get(axis, 0.0) * w for axis, w in self.weights.items())
        return clamp01(raw / norm)

    def intensity_bounds(self, intervals: Mapping[str, Interval]) -> tuple[float, float]:
        """
        (min, max) intensity over a box of axis intervals, ignoring gates.

        Axes missing from ``intervals`` range over their full legal range.
        A positive weight peaks at the interval's upper bound, a negative
        weight at its lower bound.
        """
        norm = self.weight_norm
        if norm == 0:
            return (0.0, 1.0)
        best = 0.0
        worst = 0.0
        for axis, w in self.weights.items():
            interval = intervals.get(axis) or Interval.for_axis(axis)
            if w >= 0:
                best += w * interval.max
                worst += w * interval.min
            else:
                best += w * interval.min
                worst += w * interval.max
        return (clamp01(worst / norm), clamp01(best / norm))
