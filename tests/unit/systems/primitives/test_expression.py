"""
Tests for axis catalogue and expression helpers.

Covers:
  - Normalised ranges, raw conversion and sexual arousal
  - Defensive prerequisite access
  - Comparison extraction and operator flipping
  - Human-readable logic rendering
"""

from __future__ import annotations

import pytest

from affectdiag.primitives.axes import (
    AxisKind,
    axis_kind,
    compute_sexual_arousal,
    normalize,
    normalized_range,
    to_raw,
)
from affectdiag.primitives.common import Direction, is_number
from affectdiag.primitives.expression import (
    Comparison,
    describe_logic,
    direction_of,
    extract_comparison,
    get_prerequisites,
    split_var_path,
)


class TestAxes:
    def test_axis_kinds(self):
        assert axis_kind("valence") == AxisKind.MOOD
        assert axis_kind("sex_inhibition") == AxisKind.SEXUAL
        assert axis_kind("harm_aversion") == AxisKind.TRAIT
        assert axis_kind("SA") == AxisKind.DERIVED

    def test_normalized_ranges(self):
        assert normalized_range("threat") == (-1.0, 1.0)
        assert normalized_range("sex_excitation") == (0.0, 1.0)
        assert normalized_range("baseline_libido") == (-0.5, 0.5)
        assert normalized_range("cognitive_empathy") == (0.0, 1.0)

    def test_raw_round_trip(self):
        assert normalize(35) == pytest.approx(0.35)
        assert to_raw(0.35) == 35

    def test_sexual_arousal_clamped(self):
        assert compute_sexual_arousal(80, 20, 10) == pytest.approx(0.7)
        assert compute_sexual_arousal(0, 100, -50) == 0.0
        assert compute_sexual_arousal(100, 0, 50) == 1.0

    def test_is_number_excludes_bool_and_nan(self):
        assert is_number(1)
        assert is_number(0.5)
        assert not is_number(True)
        assert not is_number(float("nan"))
        assert not is_number("1")


class TestPrerequisites:
    def test_missing_prerequisites(self):
        assert get_prerequisites({"id": "x"}) == []

    def test_malformed_prerequisites(self):
        assert get_prerequisites({"id": "x", "prerequisites": "nope"}) == []
        assert get_prerequisites(None) == []

    def test_filters_non_mapping_entries(self):
        expression = {"prerequisites": [{"logic": {">=": [{"var": "a"}, 1]}}, 7]}
        assert len(get_prerequisites(expression)) == 1

    def test_split_var_path(self):
        assert split_var_path("emotions.joy") == ("emotions", "joy")
        assert split_var_path("sexualArousal") == ("sexualArousal", None)


class TestComparison:
    def test_var_on_left(self):
        node = {">=": [{"var": "emotions.joy"}, 0.5]}
        assert extract_comparison(node) == Comparison("emotions.joy", ">=", 0.5)

    def test_number_on_left_flips_operator(self):
        node = {"<": [0.5, {"var": "emotions.joy"}]}
        assert extract_comparison(node) == Comparison("emotions.joy", ">", 0.5)

    def test_var_as_list(self):
        node = {"<=": [{"var": ["moodAxes.threat", 0]}, 20]}
        assert extract_comparison(node) == Comparison("moodAxes.threat", "<=", 20.0)

    def test_non_comparison(self):
        assert extract_comparison({"and": []}) is None
        assert extract_comparison({">=": [{"var": "a"}, {"var": "b"}]}) is None
        assert extract_comparison({">=": [{"var": "a"}, True]}) is None

    def test_direction_of(self):
        assert direction_of(">=") == Direction.HIGH
        assert direction_of("<") == Direction.LOW
        assert direction_of("==") is None


class TestDescribeLogic:
    def test_nested(self):
        node = {
            "and": [
                {">=": [{"var": "emotions.joy"}, 0.5]},
                {"or": [{"<": [{"var": "emotions.fear"}, 0.2]}, {"!": [{"var": "x"}]}]},
            ]
        }
        assert describe_logic(node) == (
            "(emotions.joy >= 0.5 AND (emotions.fear < 0.2 OR NOT x))"
        )

    def test_truncates_long_descriptions(self):
        node = {"and": [{">=": [{"var": f"emotions.e{i}"}, 0.5]} for i in range(20)]}
        text = describe_logic(node, max_length=40)
        assert len(text) == 40
        assert text.endswith("...")
