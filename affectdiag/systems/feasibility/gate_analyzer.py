"""
affectdiag — Gate Constraint Analyzer

Folds every gate that applies to an axis over the axis's legal range and
reports the tightest interval left. An axis whose interval comes out empty
is a gate conflict: no state can satisfy all of those gates together.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import structlog

from affectdiag.primitives.interval import Interval
from affectdiag.primitives.prototype import GateConstraint, WeightedPrototype
from affectdiag.systems.feasibility.types import (
    GateAnalysisResult,
    GateConflict,
    GateContribution,
)

logger = structlog.get_logger("affectdiag.systems.feasibility")


def conflict_message(axis: str, interval: Interval) -> str:
    return f"Impossible constraint: {axis} requires [{interval.min:.2f}, {interval.max:.2f}]"


class GateConstraintAnalyzer:
    """
    Stateless: every ``analyze`` call builds its own intervals.

    ``base_intervals`` lets a caller start from ranges already narrowed by
    something other than prototype gates (e.g. direct axis comparisons in an
    expression), with ``base_contributions`` naming where they came from.
    """

    def fold_axis(
        self,
        axis: str,
        gates: Iterable[GateConstraint],
        start: Interval | None = None,
    ) -> Interval:
        interval = start or Interval.for_axis(axis)
        for gate in gates:
            if gate.axis == axis:
                interval = gate.apply_to(interval)
        return interval

    def analyze(
        self,
        prototypes: Iterable[WeightedPrototype],
        base_intervals: Mapping[str, Interval] | None = None,
        base_contributions: Mapping[str, list[GateContribution]] | None = None,
    ) -> GateAnalysisResult:
        intervals: dict[str, Interval] = dict(base_intervals or {})
        contributions: dict[str, list[GateContribution]] = {
            axis: list(items) for axis, items in (base_contributions or {}).items()
        }

        for prototype in prototypes:
            for gate_str in prototype.gates:
                try:
                    gate = GateConstraint.parse(gate_str)
                except ValueError:
                    logger.debug("malformed_gate_skipped", prototype=prototype.id, gate=gate_str)
                    continue
                current = intervals.get(gate.axis) or Interval.for_axis(gate.axis)
                intervals[gate.axis] = gate.apply_to(current)
                contributions.setdefault(gate.axis, []).append(
                    GateContribution(prototype_id=prototype.id, gate=gate_str)
                )

        result = GateAnalysisResult(intervals=intervals, contributions=contributions)
        result.conflicts = [
            GateConflict(
                axis=axis,
                required_min=interval.min,
                required_max=interval.max,
                contributing_prototypes=result.contributing_prototypes(axis),
                contributing_gates=result.contributing_gates(axis),
                message=conflict_message(axis, interval),
            )
            for axis, interval in intervals.items()
            if interval.is_empty()
        ]

        if result.conflicts:
            logger.debug(
                "gate_conflicts_detected",
                axes=[c.axis for c in result.conflicts],
            )
        return result

    def analyze_gates(self, gates: Iterable[str], owner: str = "gates") -> GateAnalysisResult:
        """Convenience wrapper for a bare list of gate strings."""
        return self.analyze([WeightedPrototype(id=owner, gates=tuple(gates))])
