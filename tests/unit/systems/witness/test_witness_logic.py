"""
Tests for prerequisite evaluation and penalties.

Covers:
  - Variable resolution per path root
  - Boolean evaluation of logic trees
  - Penalty shapes for comparisons, AND, OR and NOT
  - Clause penalties for failing and malformed clauses
"""

from __future__ import annotations

import pytest

from affectdiag.clients.registry import InMemoryDataRegistry, PrototypeCatalog
from affectdiag.systems.witness import (
    MAX_PENALTY,
    EvaluationContext,
    WitnessState,
    clause_penalty,
    evaluate,
    penalty,
    resolve_var,
)
from affectdiag.systems.witness.logic import MIN_FAILING_PENALTY, STRICT_MARGIN


def _make_context(**mood: int) -> EvaluationContext:
    registry = InMemoryDataRegistry.from_prototypes(
        emotions={"joy": {"weights": {"valence": 1.0}, "gates": ["valence >= 0.35"]}},
        sexual={"lust": {"weights": {"sexual_arousal": 1.0}, "gates": []}},
    )
    state = WitnessState.create_neutral().with_changes(mood=mood)
    return EvaluationContext(state.axis_values(), PrototypeCatalog(registry))


def _gte(path: str, value: float) -> dict:
    return {">=": [{"var": path}, value]}


# ─── Resolution ───────────────────────────────────────────────────


class TestResolveVar:
    def test_mood_axis_is_raw(self):
        ctx = _make_context(valence=60)
        assert resolve_var(ctx, "moodAxes.valence") == 60.0
        assert resolve_var(ctx, "mood.valence") == 60.0

    def test_emotion_intensity(self):
        assert resolve_var(_make_context(valence=60), "emotions.joy") == pytest.approx(0.6)

    def test_gate_failure_zeroes_emotion(self):
        assert resolve_var(_make_context(valence=20), "emotions.joy") == 0.0

    def test_sexual_arousal(self):
        assert resolve_var(_make_context(), "sexualArousal") == 0.0

    def test_trait(self):
        assert resolve_var(_make_context(), "affectTraits.harm_aversion") == 50.0

    def test_unresolvable(self):
        ctx = _make_context()
        assert resolve_var(ctx, "emotions.unknown") is None
        assert resolve_var(ctx, "moodAxes.not_an_axis") is None
        assert resolve_var(ctx, "weather.rain") is None

    def test_context_namespace(self):
        namespace = _make_context(valence=60).to_dict()
        assert namespace["moodAxes"]["valence"] == 60
        assert namespace["emotions"]["joy"] == pytest.approx(0.6)
        assert set(namespace["sexualStates"]) == {"lust"}


# ─── Evaluation ───────────────────────────────────────────────────


class TestEvaluate:
    def test_comparison(self):
        ctx = _make_context(valence=60)
        assert evaluate(_gte("emotions.joy", 0.5), ctx)
        assert not evaluate(_gte("emotions.joy", 0.7), ctx)

    def test_and_or_not(self):
        ctx = _make_context(valence=60)
        passing = _gte("emotions.joy", 0.5)
        failing = _gte("emotions.joy", 0.9)
        assert not evaluate({"and": [passing, failing]}, ctx)
        assert evaluate({"or": [passing, failing]}, ctx)
        assert evaluate({"!": [failing]}, ctx)
        assert not evaluate({"not": passing}, ctx)

    def test_unknown_operator_is_false(self):
        assert not evaluate({"xor": [1, 2]}, _make_context())

    def test_unresolvable_var_is_false(self):
        assert not evaluate(_gte("emotions.unknown", 0.0), _make_context())

    def test_bare_var_is_truthiness(self):
        active = _make_context(valence=60)
        assert evaluate({"var": "emotions.joy"}, active)
        assert not evaluate({"!": {"var": "emotions.joy"}}, active)
        gated_off = _make_context(valence=20)
        assert not evaluate({"var": "emotions.joy"}, gated_off)
        assert evaluate({"!": {"var": "emotions.joy"}}, gated_off)

    def test_negated_unresolvable_var_stays_false(self):
        ctx = _make_context()
        assert not evaluate({"!": {"var": "emotions.unknown"}}, ctx)
        assert not evaluate({"not": [{"var": "weather.rain"}]}, ctx)


# ─── Penalties ────────────────────────────────────────────────────


class TestPenalty:
    def test_raw_scale_shortfall_is_normalised(self):
        ctx = _make_context(valence=60)
        assert penalty(_gte("moodAxes.valence", 80), ctx) == pytest.approx(0.2)

    def test_satisfied_is_zero(self):
        assert penalty(_gte("emotions.joy", 0.5), _make_context(valence=60)) == 0.0

    def test_upper_bound(self):
        ctx = _make_context(valence=60)
        assert penalty({"<=": [{"var": "emotions.joy"}, 0.5]}, ctx) == pytest.approx(0.1)

    def test_strict_comparison_adds_margin(self):
        ctx = _make_context(threat=30)
        assert penalty({">": [{"var": "moodAxes.threat"}, 30]}, ctx) > 0.0

    def test_and_sums(self):
        ctx = _make_context(valence=60)
        node = {"and": [_gte("emotions.joy", 0.8), _gte("moodAxes.valence", 70)]}
        assert penalty(node, ctx) == pytest.approx(0.3)

    def test_or_takes_cheapest(self):
        ctx = _make_context(valence=60)
        node = {"or": [_gte("emotions.joy", 0.8), _gte("moodAxes.valence", 70)]}
        assert penalty(node, ctx) == pytest.approx(0.1)

    def test_not(self):
        ctx = _make_context(valence=60)
        assert penalty({"!": [_gte("emotions.joy", 0.5)]}, ctx) == 1.0

    def test_malformed(self):
        ctx = _make_context()
        assert penalty({"xor": []}, ctx) == MAX_PENALTY
        assert penalty({">=": [1]}, ctx) == MAX_PENALTY
        assert penalty("nonsense", ctx) == MAX_PENALTY
        assert penalty({"var": "emotions.unknown"}, ctx) == MAX_PENALTY

    def test_bare_var(self):
        assert penalty({"var": "emotions.joy"}, _make_context(valence=60)) == 0.0
        assert penalty({"var": "emotions.joy"}, _make_context(valence=20)) == 1.0


class TestClausePenalty:
    def test_passing_clause(self):
        assert clause_penalty(_gte("emotions.joy", 0.5), _make_context(valence=60)) == 0.0

    def test_missing_logic_passes(self):
        assert clause_penalty(None, _make_context()) == 0.0

    def test_failing_clause_is_positive(self):
        ctx = _make_context(valence=60)
        node = {"!=": [{"var": "moodAxes.valence"}, 60]}
        assert clause_penalty(node, ctx) == pytest.approx(STRICT_MARGIN)
        assert clause_penalty(node, ctx) >= MIN_FAILING_PENALTY

    def test_unresolvable_is_max(self):
        assert clause_penalty(_gte("emotions.unknown", 0.1), _make_context()) == MAX_PENALTY
