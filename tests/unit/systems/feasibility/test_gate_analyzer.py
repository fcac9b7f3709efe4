"""
Tests for GateConstraintAnalyzer.

Covers:
  - Folding gates into per-axis intervals
  - Conflict detection with contributing prototypes and gates
  - Base intervals from direct expression constraints
  - Malformed gates
"""

from __future__ import annotations

import pytest

from affectdiag.primitives.interval import Interval
from affectdiag.primitives.prototype import GateConstraint, WeightedPrototype
from affectdiag.systems.feasibility import GateConstraintAnalyzer, GateContribution


def _make_prototype(prototype_id: str, *gates: str) -> WeightedPrototype:
    return WeightedPrototype(id=prototype_id, weights={"valence": 1.0}, gates=gates)


class TestFoldAxis:
    def test_folds_only_matching_axis(self):
        analyzer = GateConstraintAnalyzer()
        gates = [GateConstraint.parse("valence >= 0.2"), GateConstraint.parse("threat <= 0.1")]
        assert analyzer.fold_axis("valence", gates) == Interval.of(0.2, 1.0)

    def test_starts_from_given_interval(self):
        analyzer = GateConstraintAnalyzer()
        result = analyzer.fold_axis(
            "valence", [GateConstraint.parse("valence <= 0.5")], start=Interval.of(0.4, 1.0)
        )
        assert result == Interval.of(0.4, 0.5)


class TestAnalyze:
    def test_compatible_gates_narrow_intervals(self):
        result = GateConstraintAnalyzer().analyze(
            [_make_prototype("joy", "valence >= 0.35"), _make_prototype("calm", "valence <= 0.8")]
        )
        assert result.is_feasible
        assert result.intervals["valence"] == Interval.of(0.35, 0.8)

    def test_conflict_detected(self):
        result = GateConstraintAnalyzer().analyze(
            [_make_prototype("joy", "valence >= 0.5"), _make_prototype("grief", "valence <= 0.2")]
        )
        assert not result.is_feasible
        conflict = result.conflicts[0]
        assert conflict.axis == "valence"
        assert conflict.required_min == pytest.approx(0.5)
        assert conflict.required_max == pytest.approx(0.2)
        assert conflict.contributing_prototypes == ("joy", "grief")
        assert conflict.contributing_gates == ("joy: valence >= 0.5", "grief: valence <= 0.2")
        assert conflict.message == "Impossible constraint: valence requires [0.50, 0.20]"

    def test_conflict_beyond_axis_range(self):
        result = GateConstraintAnalyzer().analyze([_make_prototype("odd", "harm_aversion <= -0.1")])
        assert [c.axis for c in result.conflicts] == ["harm_aversion"]

    def test_base_intervals_participate(self):
        base = {"threat": Interval.of(-1.0, 0.1)}
        sources = {"threat": [GateContribution(prototype_id="expression", gate="moodAxes.threat <= 10")]}
        result = GateConstraintAnalyzer().analyze(
            [_make_prototype("fear", "threat >= 0.3")], base, sources
        )
        assert result.conflicts[0].contributing_prototypes == ("expression", "fear")

    def test_malformed_gate_skipped(self):
        result = GateConstraintAnalyzer().analyze([_make_prototype("joy", "valence ~ 0.3")])
        assert result.is_feasible
        assert result.intervals == {}

    def test_no_prototypes(self):
        result = GateConstraintAnalyzer().analyze([])
        assert result.is_feasible
        assert result.conflicts == []

    def test_analyze_gates_wrapper(self):
        result = GateConstraintAnalyzer().analyze_gates(["arousal >= 0.6", "arousal < 0.6"])
        assert not result.is_feasible
