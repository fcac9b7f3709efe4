"""
affectdiag — Interval

Immutable closed numeric range. ``min > max`` is the empty interval, a
normal value rather than an error: intersecting disjoint ranges or applying
contradictory constraints simply produces it.
"""

from __future__ import annotations

from pydantic import Field, model_validator

from affectdiag.primitives.axes import normalized_range
from affectdiag.primitives.common import DiagBaseModel, GateOperator

# Offset used to turn strict inequalities into closed bounds
STRICT_EPSILON: float = 1e-6


class Interval(DiagBaseModel):
    """A closed range ``[min, max]`` on the normalised axis scale."""

    model_config = {"frozen": True}

    min: float = Field(allow_inf_nan=False)
    max: float = Field(allow_inf_nan=False)

    @classmethod
    def of(cls, lo: float, hi: float) -> Interval:
        return cls(min=lo, max=hi)

    @classmethod
    def empty(cls) -> Interval:
        return cls(min=1.0, max=0.0)

    @classmethod
    def for_mood_axis(cls) -> Interval:
        return cls(min=-1.0, max=1.0)

    @classmethod
    def for_unipolar_axis(cls) -> Interval:
        return cls(min=0.0, max=1.0)

    @classmethod
    def for_axis(cls, axis: str) -> Interval:
        lo, hi = normalized_range(axis)
        return cls(min=lo, max=hi)

    def is_empty(self) -> bool:
        return self.min > self.max

    def width(self) -> float:
        """Length of the range; 0.0 for points and for the empty interval."""
        if self.is_empty():
            return 0.0
        return self.max - self.min

    def midpoint(self) -> float:
        return (self.min + self.max) / 2

    def contains(self, value: float) -> bool:
        return not self.is_empty() and self.min <= value <= self.max

    def intersect(self, other: Interval) -> Interval:
        if not isinstance(other, Interval):
            raise TypeError(
                f"Interval.intersect expects an Interval, got {type(other).__name__}"
            )
        return Interval(min=max(self.min, other.min), max=min(self.max, other.max))

    def apply_constraint(self, operator: str | GateOperator, threshold: float) -> Interval:
        """
        Narrow the range by ``axis <op> threshold``.

        Raises ValueError for an operator outside ``>= <= > < ==``.
        """
        op = GateOperator(operator)
        if op == GateOperator.GTE:
            return Interval(min=max(self.min, threshold), max=self.max)
        if op == GateOperator.LTE:
            return Interval(min=self.min, max=min(self.max, threshold))
        if op == GateOperator.GT:
            return Interval(min=max(self.min, threshold + STRICT_EPSILON), max=self.max)
        if op == GateOperator.LT:
            return Interval(min=self.min, max=min(self.max, threshold - STRICT_EPSILON))
        # Equality collapses to a point, still bounded by the current range
        return self.intersect(Interval(min=threshold, max=threshold))

    def __str__(self) -> str:
        return f"[{self.min:.2f}, {self.max:.2f}]"

    @model_validator(mode="before")
    @classmethod
    def _reject_non_numeric(cls, data: object) -> object:
        if isinstance(data, dict):
            for key in ("min", "max"):
                if isinstance(data.get(key), bool):
                    raise ValueError(f"Interval {key} must be a number, got bool")
        return data
