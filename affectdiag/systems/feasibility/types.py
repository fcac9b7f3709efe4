"""
affectdiag — Feasibility Types
"""

from __future__ import annotations

from pydantic import Field

from affectdiag.primitives.common import DiagBaseModel
from affectdiag.primitives.interval import Interval


class GateConflict(DiagBaseModel):
    """An axis whose combined gates leave no admissible value."""

    model_config = {"frozen": True}

    axis: str
    required_min: float
    required_max: float
    contributing_prototypes: tuple[str, ...] = ()
    contributing_gates: tuple[str, ...] = ()
    message: str = ""


class GateContribution(DiagBaseModel):
    model_config = {"frozen": True}

    prototype_id: str
    gate: str

    def label(self) -> str:
        return f"{self.prototype_id}: {self.gate}"


class GateAnalysisResult(DiagBaseModel):
    """Per-axis intervals implied by a set of gates, plus any conflicts."""

    intervals: dict[str, Interval] = Field(default_factory=dict)
    conflicts: list[GateConflict] = Field(default_factory=list)
    contributions: dict[str, list[GateContribution]] = Field(default_factory=dict)

    @property
    def is_feasible(self) -> bool:
        return not self.conflicts

    def contributing_prototypes(self, axis: str) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for contribution in self.contributions.get(axis, []):
            seen.setdefault(contribution.prototype_id, None)
        return tuple(seen)

    def contributing_gates(self, axis: str) -> tuple[str, ...]:
        return tuple(c.label() for c in self.contributions.get(axis, []))
