"""
Tests for DiagnosticResult.

Covers:
  - Rarity categories at and around every boundary
  - Wilson confidence intervals
  - Stage setters and their validation
  - Impossibility is sticky across stages
  - Suggestion de-duplication
  - Serialisation to dict and JSON
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from affectdiag.primitives.common import Direction
from affectdiag.systems.diagnosis import (
    DiagnosticResult,
    RarityCategory,
    Suggestion,
    wilson_interval,
)
from affectdiag.systems.feasibility import GateConflict
from affectdiag.systems.reachability import BranchReachability
from affectdiag.systems.witness import WitnessState

EPS = 1e-9


def _make_result(expression_id: str = "anger:cold_fury") -> DiagnosticResult:
    return DiagnosticResult(expression_id=expression_id)


def _make_conflict(message: str = "") -> GateConflict:
    return GateConflict(
        axis="valence",
        required_min=0.5,
        required_max=0.2,
        contributing_prototypes=("joy", "grief"),
        message=message,
    )


def _make_unreachable() -> BranchReachability:
    return BranchReachability(
        branch_id="0",
        prototype_id="joy",
        threshold=0.9,
        direction=Direction.HIGH,
        min_possible=0.0,
        max_possible=0.6,
    )


# ─── Construction ─────────────────────────────────────────────────


class TestConstruction:
    @pytest.mark.parametrize("bad", ["", "   ", None, 42])
    def test_requires_expression_id(self, bad):
        with pytest.raises(ValidationError):
            DiagnosticResult(expression_id=bad)

    def test_defaults(self):
        result = _make_result()
        assert result.id
        assert not result.is_impossible
        assert result.rarity_category == RarityCategory.UNKNOWN
        assert result.status_indicator.emoji == "⚪"


# ─── Rarity ───────────────────────────────────────────────────────


class TestRarity:
    @pytest.mark.parametrize(
        "rate,expected",
        [
            (0.0, RarityCategory.IMPOSSIBLE),
            (0.00001 - EPS, RarityCategory.EXTREMELY_RARE),
            (0.00001, RarityCategory.RARE),
            (0.0005 - EPS, RarityCategory.RARE),
            (0.0005, RarityCategory.NORMAL),
            (0.02 - EPS, RarityCategory.NORMAL),
            (0.02, RarityCategory.FREQUENT),
            (0.5, RarityCategory.FREQUENT),
            (None, RarityCategory.UNKNOWN),
        ],
    )
    def test_boundaries(self, rate, expected):
        assert DiagnosticResult.get_rarity_category_for_rate(rate) == expected

    @pytest.mark.parametrize(
        "rate", [0.0, 0.00001 - EPS, 0.00001, 0.0005 - EPS, 0.0005, 0.02 - EPS, 0.02, 0.5]
    )
    def test_instance_category_matches_static(self, rate):
        result = _make_result().set_monte_carlo_results(rate, 1000)
        assert result.rarity_category == DiagnosticResult.get_rarity_category_for_rate(rate)

    def test_impossible_overrides_rate(self):
        result = _make_result().set_monte_carlo_results(0.3, 1000)
        result.set_static_analysis([_make_conflict()])
        assert result.rarity_category == RarityCategory.IMPOSSIBLE
        assert result.status_indicator.color == "red"

    def test_status_indicator_follows_rate(self):
        result = _make_result().set_monte_carlo_results(0.001, 10_000)
        assert result.status_indicator.label == "Normal"
        assert result.status_indicator.emoji == "🟢"


# ─── Confidence Interval ──────────────────────────────────────────


class TestWilsonInterval:
    def test_no_samples(self):
        assert wilson_interval(0.5, 0) is None

    def test_symmetric_at_half(self):
        lo, hi = wilson_interval(0.5, 100)
        assert lo == pytest.approx(0.4038, abs=1e-3)
        assert hi == pytest.approx(0.5962, abs=1e-3)

    def test_zero_rate_keeps_positive_upper_bound(self):
        lo, hi = wilson_interval(0.0, 100)
        assert lo == pytest.approx(0.0, abs=1e-12)
        assert 0.0 < hi < 0.05

    def test_setter_computes_interval(self):
        result = _make_result().set_monte_carlo_results(0.5, 100)
        assert result.confidence_interval == pytest.approx(wilson_interval(0.5, 100))

    def test_setter_keeps_supplied_interval(self):
        result = _make_result().set_monte_carlo_results(0.5, 100, confidence_interval=(0.4, 0.6))
        assert result.confidence_interval == (0.4, 0.6)


# ─── Setters ──────────────────────────────────────────────────────


class TestSetters:
    def test_monte_carlo_validation(self):
        result = _make_result()
        with pytest.raises(ValueError):
            result.set_monte_carlo_results(1.5, 100)
        with pytest.raises(ValueError):
            result.set_monte_carlo_results(0.5, -1)

    def test_monte_carlo_clause_failures_from_mappings(self):
        result = _make_result().set_monte_carlo_results(
            0.1,
            100,
            clause_failures=[{"clauseDescription": "emotions.joy >= 0.8", "failureRate": 0.9}],
        )
        assert result.clause_failures[0].failure_rate == 0.9

    def test_clause_failure_statistics_are_kept(self):
        result = _make_result().set_monte_carlo_results(
            0.1,
            100,
            clause_failures=[
                {
                    "clauseDescription": "emotions.joy >= 0.8",
                    "failureRate": 0.9,
                    "violationP95": 0.4,
                    "nearMissEpsilon": 0.05,
                    "maxObservedValue": 0.7,
                    "thresholdValue": 0.8,
                    "othersPassedCount": 12,
                }
            ],
        )
        failure = result.clause_failures[0]
        assert failure.max_observed_value == 0.7
        assert failure.threshold_value == 0.8
        data = result.to_dict()["monteCarlo"]["clauseFailures"][0]
        assert data["violationP95"] == 0.4
        assert data["nearMissEpsilon"] == 0.05
        assert data["othersPassedCount"] == 12

    def test_static_analysis_with_conflicts(self):
        result = _make_result().set_static_analysis([_make_conflict("Gates disagree on valence")])
        assert result.is_impossible
        assert result.impossibility_reason == "Gates disagree on valence"

    def test_static_analysis_reason_falls_back_to_axis(self):
        result = _make_result().set_static_analysis([_make_conflict()])
        assert result.impossibility_reason == "Gate conflict on axis valence"

    def test_unreachable_without_conflicts_is_not_impossible(self):
        result = _make_result().set_static_analysis([], [_make_unreachable()])
        assert not result.is_impossible
        assert len(result.unreachable_thresholds) == 1

    def test_explicit_impossibility(self):
        result = _make_result().set_static_analysis(
            [], [_make_unreachable()], is_impossible=True, reason="No reachable branch"
        )
        assert result.is_impossible
        assert result.impossibility_reason == "No reachable branch"

    def test_witness(self):
        state = WitnessState.create_neutral()
        result = _make_result().set_witness_result(True, state)
        assert result.witness_found
        assert result.witness_state == state

    def test_smt_unsat_marks_impossible(self):
        result = _make_result().set_smt_result(False, ["Clause 1", "Clause 2"])
        assert result.is_impossible
        assert result.impossibility_reason == (
            "SMT solver proved the prerequisites unsatisfiable (core: Clause 1, Clause 2)"
        )

    def test_smt_unknown_leaves_status(self):
        result = _make_result().set_smt_result(None)
        assert result.smt_result is None
        assert not result.is_impossible

    def test_setters_chain(self):
        result = (
            _make_result()
            .set_static_analysis()
            .set_monte_carlo_results(0.01, 100)
            .set_witness_result(False)
            .set_smt_result(True)
        )
        assert result.smt_result is True
        assert result.witness_found is False


class TestStickyImpossibility:
    def test_later_stages_never_clear(self):
        result = _make_result().set_smt_result(False)
        result.set_static_analysis([], [])
        result.set_smt_result(True)
        result.set_monte_carlo_results(0.5, 100)
        assert result.is_impossible

    def test_first_reason_wins(self):
        result = _make_result().set_static_analysis([_make_conflict("first")])
        result.set_smt_result(False)
        assert result.impossibility_reason == "first"


# ─── Suggestions ──────────────────────────────────────────────────


class TestSuggestions:
    def test_accepts_strings_mappings_and_models(self):
        result = _make_result()
        result.add_suggestion("Lower the joy threshold")
        result.add_suggestion({"type": "blocker", "message": "Relax valence gate"})
        result.add_suggestion(Suggestion(type="witness", message="Try the witness state"))
        assert [s.type for s in result.suggestions] == ["general", "blocker", "witness"]

    def test_duplicates_are_dropped(self):
        result = _make_result()
        result.add_suggestions(["a", "a", {"type": "general", "message": "a"}])
        assert len(result.suggestions) == 1

    def test_same_message_different_type_kept(self):
        result = _make_result()
        result.add_suggestion({"type": "blocker", "message": "a"})
        result.add_suggestion({"type": "summary", "message": "a"})
        assert len(result.suggestions) == 2


# ─── Serialisation ────────────────────────────────────────────────


class TestSerialisation:
    def test_to_dict_sections(self):
        result = (
            _make_result()
            .set_static_analysis([], [_make_unreachable()])
            .set_monte_carlo_results(0.001, 10_000)
            .set_witness_result(True, WitnessState.create_neutral())
            .set_smt_result(True)
        )
        result.add_suggestion("Looks fine")
        data = result.to_dict()
        assert data["expressionId"] == "anger:cold_fury"
        assert data["rarityCategory"] == "normal"
        assert data["statusIndicator"]["emoji"] == "🟢"
        assert data["staticAnalysis"]["unreachableThresholds"][0]["prototypeId"] == "joy"
        assert data["monteCarlo"]["sampleCount"] == 10_000
        assert len(data["monteCarlo"]["confidenceInterval"]) == 2
        assert data["witness"]["state"]["mood"]["valence"] == 0
        assert data["smt"] == {"satisfiable": True, "unsatCore": []}
        assert data["suggestions"][0]["message"] == "Looks fine"

    def test_to_json_is_parseable(self):
        result = _make_result().set_static_analysis([_make_conflict()])
        data = json.loads(result.to_json())
        assert data["isImpossible"] is True
        assert data["staticAnalysis"]["gateConflicts"][0]["axis"] == "valence"
        assert data["monteCarlo"]["confidenceInterval"] is None
