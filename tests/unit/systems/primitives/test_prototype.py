"""
Tests for prototypes and gates.

Covers:
  - GateConstraint parsing and evaluation
  - WeightedPrototype intensity at a point
  - Intensity bounds over a box, including negative weights
"""

from __future__ import annotations

import pytest

from affectdiag.primitives.common import GateOperator, PrototypeType
from affectdiag.primitives.interval import Interval
from affectdiag.primitives.prototype import GateConstraint, WeightedPrototype, parse_gates


def _make_prototype(
    weights: dict[str, float] | None = None,
    gates: tuple[str, ...] = (),
    prototype_id: str = "joy",
) -> WeightedPrototype:
    return WeightedPrototype(
        id=prototype_id,
        weights=weights if weights is not None else {"valence": 1.0, "arousal": 0.5},
        gates=gates,
    )


# ─── Gates ────────────────────────────────────────────────────────


class TestGateConstraint:
    def test_parse(self):
        gate = GateConstraint.parse("valence >= 0.35")
        assert gate.axis == "valence"
        assert gate.operator == GateOperator.GTE
        assert gate.value == pytest.approx(0.35)

    def test_parse_negative_and_compact(self):
        gate = GateConstraint.parse("threat<-0.2")
        assert gate.operator == GateOperator.LT
        assert gate.value == pytest.approx(-0.2)

    def test_parse_canonicalises_alias(self):
        assert GateConstraint.parse("SA >= 0.4").axis == "sexual_arousal"

    @pytest.mark.parametrize("bad", ["valence", "valence >> 0.3", ">= 0.3", ""])
    def test_parse_rejects_malformed(self, bad):
        with pytest.raises(ValueError):
            GateConstraint.parse(bad)

    def test_parse_rejects_non_string(self):
        with pytest.raises(ValueError):
            GateConstraint.parse(0.5)  # type: ignore[arg-type]

    def test_is_satisfied_by(self):
        gate = GateConstraint.parse("valence > 0.3")
        assert gate.is_satisfied_by(0.31)
        assert not gate.is_satisfied_by(0.3)

    def test_equality_gate_uses_tolerance(self):
        gate = GateConstraint.parse("threat == 0.5")
        assert gate.is_satisfied_by(0.50001)
        assert not gate.is_satisfied_by(0.51)

    def test_can_fail_within(self):
        gate = GateConstraint.parse("valence >= 0.3")
        assert gate.can_fail_within(Interval.of(0.0, 1.0))
        assert not gate.can_fail_within(Interval.of(0.3, 1.0))
        assert not gate.can_fail_within(Interval.empty())

    def test_str(self):
        assert str(GateConstraint.parse("valence >= 0.35")) == "valence >= 0.35"

    def test_parse_gates_skips_malformed(self):
        parsed = parse_gates(["valence >= 0.3", "nonsense", "threat <= 0.2"], owner="x")
        assert [g.axis for g in parsed] == ["valence", "threat"]


# ─── Intensity ────────────────────────────────────────────────────


class TestIntensity:
    def test_weighted_sum_normalised_by_weight_norm(self):
        prototype = _make_prototype()
        assert prototype.intensity({"valence": 0.6, "arousal": 0.3}) == pytest.approx(0.5)

    def test_clamped_to_unit_range(self):
        prototype = _make_prototype({"valence": 1.0})
        assert prototype.intensity({"valence": -0.8}) == 0.0

    def test_failed_gate_zeroes_intensity(self):
        prototype = _make_prototype(gates=("valence >= 0.35",))
        assert prototype.intensity({"valence": 0.3, "arousal": 1.0}) == 0.0
        assert prototype.intensity({"valence": 0.4, "arousal": 1.0}) > 0.0

    def test_no_weights_is_zero(self):
        assert _make_prototype({}).intensity({"valence": 1.0}) == 0.0

    def test_weight_aliases_canonicalised(self):
        prototype = _make_prototype({"SA": 1.0})
        assert "sexual_arousal" in prototype.weights

    def test_from_entry(self):
        prototype = WeightedPrototype.from_entry(
            "lust", {"weights": {"sexual_arousal": 1.0}, "gates": ["SA >= 0.3"]}, PrototypeType.SEXUAL
        )
        assert prototype.type == PrototypeType.SEXUAL
        assert prototype.gated_axes == {"sexual_arousal"}

    def test_requires_id(self):
        with pytest.raises(ValueError):
            WeightedPrototype(id="", weights={"valence": 1.0})


class TestIntensityBounds:
    def test_positive_weights_peak_at_upper_bounds(self):
        prototype = _make_prototype()
        lo, hi = prototype.intensity_bounds(
            {"valence": Interval.of(0.2, 0.6), "arousal": Interval.of(0.0, 0.3)}
        )
        assert hi == pytest.approx((0.6 + 0.5 * 0.3) / 1.5)
        assert lo == pytest.approx(0.2 / 1.5)

    def test_missing_axes_use_full_range(self):
        prototype = _make_prototype({"valence": 1.0})
        assert prototype.intensity_bounds({}) == (0.0, 1.0)

    def test_negative_weight_peaks_at_lower_bound(self):
        # Regression: a negative-only prototype gated to [-1, 0.2] still reaches 1.0 at -1
        prototype = _make_prototype({"valence": -1.0}, gates=("valence <= 0.2",))
        _, hi = prototype.intensity_bounds({"valence": Interval.of(-1.0, 0.2)})
        assert hi == pytest.approx(1.0)

    def test_no_weights_is_unconstrained(self):
        assert _make_prototype({}).intensity_bounds({}) == (0.0, 1.0)
