"""
Tests for WitnessState.

Covers:
  - Validation of axis groups and raw ranges
  - Neutral and random factories
  - Derived values (sexual arousal, normalised axes)
  - Display and clipboard rendering
"""

from __future__ import annotations

import json

import numpy as np
import pytest
from pydantic import ValidationError

from affectdiag.primitives.axes import AFFECT_TRAITS, MOOD_AXES, RAW_RANGES, SEXUAL_AXES
from affectdiag.systems.witness import WitnessState


def _make_state(**mood_overrides: int) -> WitnessState:
    return WitnessState.create_neutral().with_changes(mood=mood_overrides)


# ─── Validation ───────────────────────────────────────────────────


class TestValidation:
    def test_requires_mood(self):
        with pytest.raises(ValidationError, match="requires mood state"):
            WitnessState(mood=None, sexual={})

    def test_requires_every_mood_axis(self):
        state = _make_state()
        mood = dict(state.mood)
        del mood["threat"]
        with pytest.raises(ValidationError, match="missing axis 'threat'"):
            WitnessState(mood=mood, sexual=state.sexual)

    def test_rejects_out_of_range(self):
        with pytest.raises(ValidationError):
            _make_state(valence=101)

    def test_rejects_fractional_values(self):
        with pytest.raises(ValidationError, match="must be an integer"):
            _make_state(valence=10.5)

    def test_accepts_integral_floats(self):
        assert _make_state(valence=10.0).mood["valence"] == 10

    def test_rejects_bool(self):
        with pytest.raises(ValidationError):
            _make_state(valence=True)

    def test_libido_range(self):
        state = _make_state()
        with pytest.raises(ValidationError):
            state.with_changes(sexual={"baseline_libido": 60})

    def test_traits_default_when_omitted(self):
        state = _make_state()
        restored = WitnessState(mood=state.mood, sexual=state.sexual)
        assert restored.affect_traits == {axis: 50 for axis in AFFECT_TRAITS}


# ─── Factories ────────────────────────────────────────────────────


class TestFactories:
    def test_neutral(self):
        state = WitnessState.create_neutral()
        assert all(state.mood[axis] == 0 for axis in MOOD_AXES)
        assert state.sexual == {"sex_excitation": 50, "sex_inhibition": 50, "baseline_libido": 0}
        assert state.fitness == 0.0
        assert not state.is_witness

    def test_random_within_ranges(self):
        state = WitnessState.create_random(np.random.default_rng(7))
        for axis, value in state.axis_values().items():
            lo, hi = RAW_RANGES[axis]
            assert lo <= value <= hi

    def test_random_is_seeded(self):
        a = WitnessState.create_random(np.random.default_rng(3))
        b = WitnessState.create_random(np.random.default_rng(3))
        assert a == b

    def test_from_axis_values(self):
        values = {axis: 0 for axis in RAW_RANGES}
        state = WitnessState.from_axis_values(values, expression_id="e1")
        assert state.is_witness
        assert state.expression_id == "e1"
        assert set(state.sexual) == set(SEXUAL_AXES)


# ─── Derived ──────────────────────────────────────────────────────


class TestDerived:
    def test_sexual_arousal(self):
        state = _make_state().with_changes(
            sexual={"sex_excitation": 80, "sex_inhibition": 20, "baseline_libido": 10}
        )
        assert state.sexual_arousal() == pytest.approx(0.7)

    def test_normalized_axes(self):
        axes = _make_state(valence=60).normalized_axes()
        assert axes["valence"] == pytest.approx(0.6)
        assert axes["sexual_arousal"] == 0.0

    def test_accessors(self):
        state = _make_state(threat=-30)
        assert state.get_mood_axis("threat") == -30
        assert state.get_sexual_axis("sex_excitation") == 50
        assert state.get_trait_axis("harm_aversion") == 50
        assert state.get_mood_axis("nope") is None

    def test_with_changes_keeps_other_axes(self):
        state = _make_state(valence=40).with_changes(mood={"arousal": 10})
        assert state.mood["valence"] == 40
        assert state.mood["arousal"] == 10


# ─── Rendering ────────────────────────────────────────────────────


class TestRendering:
    def test_display_string(self):
        text = _make_state(valence=25).to_display_string()
        lines = text.splitlines()
        assert lines[0] == "Mood:"
        assert lines[1] == "  valence: 25.0"
        assert "Sexual:" in lines
        assert "Affect Traits:" in lines

    def test_clipboard_json(self):
        data = json.loads(_make_state(valence=25).to_clipboard_json())
        assert set(data) == {"mood", "sexual", "affectTraits"}
        assert data["mood"]["valence"] == 25

    def test_dict_round_trip(self):
        state = _make_state(valence=-12).with_changes(fitness=0.5, is_exact=False)
        data = state.to_dict()
        assert data["isExact"] is False
        assert WitnessState.from_dict(data) == state
