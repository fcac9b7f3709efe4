"""
affectdiag — Diagnosis Types

``DiagnosticResult`` is the single per-expression record every analysis
stage writes into. Stages populate it through chainable setters in any
order; each setter overwrites only its own section.
"""

from __future__ import annotations

import enum
import json
import math
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from affectdiag.primitives.common import DiagBaseModel, new_id, utc_now
from affectdiag.systems.feasibility.types import GateConflict
from affectdiag.systems.reachability.types import BranchReachability
from affectdiag.systems.witness.types import WitnessState

# ─── Rarity ───────────────────────────────────────────────────────


class RarityCategory(str, enum.Enum):
    IMPOSSIBLE = "impossible"
    EXTREMELY_RARE = "extremely_rare"
    RARE = "rare"
    NORMAL = "normal"
    FREQUENT = "frequent"
    UNKNOWN = "unknown"


# Upper bounds (exclusive) of each category, as trigger probabilities
RARITY_THRESHOLDS: dict[str, float] = {
    "IMPOSSIBLE": 0.0,
    "EXTREMELY_RARE": 0.00001,
    "RARE": 0.0005,
    "NORMAL": 0.02,
}

WILSON_Z: float = 1.96


class StatusIndicator(DiagBaseModel):
    model_config = {"frozen": True}

    color: str
    emoji: str
    label: str


STATUS_INDICATORS: dict[RarityCategory, StatusIndicator] = {
    RarityCategory.IMPOSSIBLE: StatusIndicator(color="red", emoji="🔴", label="Impossible"),
    RarityCategory.EXTREMELY_RARE: StatusIndicator(
        color="orange", emoji="🟠", label="Extremely Rare"
    ),
    RarityCategory.RARE: StatusIndicator(color="yellow", emoji="🟡", label="Rare"),
    RarityCategory.NORMAL: StatusIndicator(color="green", emoji="🟢", label="Normal"),
    RarityCategory.FREQUENT: StatusIndicator(color="blue", emoji="🔵", label="Frequent"),
    RarityCategory.UNKNOWN: StatusIndicator(color="gray", emoji="⚪", label="Unknown"),
}


def wilson_interval(rate: float, sample_count: int, z: float = WILSON_Z) -> tuple[float, float] | None:
    """Wilson score interval for a binomial proportion; None without samples."""
    if sample_count <= 0:
        return None
    n = float(sample_count)
    z2 = z * z
    denom = 1.0 + z2 / n
    center = (rate + z2 / (2.0 * n)) / denom
    half = z * math.sqrt(rate * (1.0 - rate) / n + z2 / (4.0 * n * n)) / denom
    return (max(0.0, center - half), min(1.0, center + half))


# ─── Clause Statistics ────────────────────────────────────────────


class Severity(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HierarchyNode(DiagBaseModel):
    """Per-node failure statistics for a compound clause's logic tree."""

    id: str
    node_type: str = "leaf"  # "and" | "or" | "leaf"
    description: str = ""
    failure_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    average_violation: float = 0.0
    is_compound: bool = False
    children: list[HierarchyNode] = Field(default_factory=list)


class ClauseFailure(DiagBaseModel):
    """
    Externally computed failure statistics for one top-level clause.

    Only ``clause_description`` and ``failure_rate`` are required; the
    remaining statistics are optional and their absence shows up as
    ``no_data`` in the clause diagnosis.
    """

    clause_description: str
    clause_index: int = 0
    failure_rate: float = Field(ge=0.0, le=1.0)
    average_violation: float = Field(default=0.0, ge=0.0)
    violation_p50: float | None = None
    violation_p90: float | None = None
    violation_p95: float | None = None
    near_miss_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    near_miss_epsilon: float | None = None
    # Ceiling statistics: the largest value sampled against the clause threshold
    max_observed_value: float | None = None
    threshold_value: float | None = None
    ceiling_gap: float | None = None
    last_mile_fail_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    others_passed_count: int = Field(default=0, ge=0)
    is_single_clause: bool = False
    hierarchical_breakdown: HierarchyNode | None = None


class FlatNode(DiagBaseModel):
    model_config = {"frozen": True}

    id: str
    description: str
    failure_rate: float
    average_violation: float
    severity: Severity
    depth: int


# ─── Clause Diagnosis ─────────────────────────────────────────────


class PercentileShape(str, enum.Enum):
    HEAVY_TAIL = "heavy_tail"
    SOME_SEVERE = "some_severe"
    NORMAL = "normal"
    NO_DATA = "no_data"


class NearMissLevel(str, enum.Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    NO_DATA = "no_data"


class CeilingStatus(str, enum.Enum):
    CEILING_DETECTED = "ceiling_detected"
    ACHIEVABLE = "achievable"


class LastMileStatus(str, enum.Enum):
    SINGLE_CLAUSE = "single_clause"
    DECISIVE_BLOCKER = "decisive_blocker"
    RARELY_DECISIVE = "rarely_decisive"
    MODERATE = "moderate"
    NO_DATA = "no_data"


class Recommendation(str, enum.Enum):
    REDESIGN = "redesign"
    TUNE_THRESHOLD = "tune_threshold"
    ADJUST_UPSTREAM = "adjust_upstream"
    LOWER_PRIORITY = "lower_priority"


class ClauseDiagnosis(DiagBaseModel):
    model_config = {"frozen": True}

    percentile_shape: PercentileShape
    near_miss: NearMissLevel
    ceiling: CeilingStatus
    last_mile: LastMileStatus
    recommendation: Recommendation
    priority_score: float


class Explanation(DiagBaseModel):
    severity: Severity
    summary: str
    detail: str
    suggestions: list[str] = Field(default_factory=list)


class Blocker(DiagBaseModel):
    """One ranked clause with its human-readable explanation."""

    clause_description: str
    clause_index: int = 0
    failure_rate: float
    average_violation: float = 0.0
    rank: int = 0
    explanation: Explanation
    has_hierarchy: bool = False
    hierarchical_breakdown: HierarchyNode | None = None
    worst_offenders: list[FlatNode] = Field(default_factory=list)
    diagnosis: ClauseDiagnosis | None = None


# ─── Inputs & Suggestions ─────────────────────────────────────────


class MonteCarloSummary(DiagBaseModel):
    """Aggregate output of an external Monte-Carlo simulation run."""

    trigger_rate: float = Field(ge=0.0, le=1.0)
    sample_count: int = Field(ge=0)
    distribution: str = "uniform"
    confidence_interval: tuple[float, float] | None = None
    clause_failures: list[ClauseFailure] = Field(default_factory=list)


class Suggestion(DiagBaseModel):
    model_config = {"frozen": True}

    type: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


# ─── Diagnostic Result ────────────────────────────────────────────


class DiagnosticResult(DiagBaseModel):
    """
    Aggregated diagnosis of one expression.

    ``is_impossible`` may be raised by static analysis or by an SMT
    refutation, and once raised is never cleared by later stages.
    """

    id: str = Field(default_factory=new_id)
    expression_id: str
    timestamp: datetime = Field(default_factory=utc_now)

    # Static analysis
    is_impossible: bool = False
    impossibility_reason: str | None = None
    gate_conflicts: list[GateConflict] = Field(default_factory=list)
    unreachable_thresholds: list[BranchReachability] = Field(default_factory=list)

    # Monte Carlo
    trigger_rate: float | None = None
    sample_count: int = 0
    distribution: str | None = None
    confidence_interval: tuple[float, float] | None = None
    clause_failures: list[ClauseFailure] = Field(default_factory=list)

    # Witness
    witness_found: bool | None = None
    witness_state: WitnessState | None = None

    # SMT
    smt_result: bool | None = None
    unsat_core: list[str] = Field(default_factory=list)

    suggestions: list[Suggestion] = Field(default_factory=list)

    @field_validator("expression_id", mode="before")
    @classmethod
    def _expression_id_is_text(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("DiagnosticResult requires a non-empty expression_id")
        return value

    # ─── Setters ──────────────────────────────────────────────────

    def set_static_analysis(
        self,
        gate_conflicts: Sequence[GateConflict] = (),
        unreachable_thresholds: Sequence[BranchReachability] = (),
        is_impossible: bool | None = None,
        reason: str | None = None,
    ) -> DiagnosticResult:
        """
        Record static-analysis findings.

        Without an explicit ``is_impossible``, any gate conflict marks the
        expression impossible.
        """
        self.gate_conflicts = list(gate_conflicts)
        self.unreachable_thresholds = list(unreachable_thresholds)
        impossible = bool(self.gate_conflicts) if is_impossible is None else is_impossible
        if impossible:
            if reason is None and self.gate_conflicts:
                reason = self.gate_conflicts[0].message or (
                    f"Gate conflict on axis {self.gate_conflicts[0].axis}"
                )
            self._mark_impossible(reason or "Static analysis proved the expression unreachable")
        return self

    def set_monte_carlo_results(
        self,
        trigger_rate: float,
        sample_count: int,
        distribution: str = "uniform",
        confidence_interval: tuple[float, float] | None = None,
        clause_failures: Sequence[ClauseFailure | Mapping[str, Any]] = (),
    ) -> DiagnosticResult:
        if not 0.0 <= trigger_rate <= 1.0:
            raise ValueError(f"trigger_rate must be within [0, 1], got {trigger_rate}")
        if sample_count < 0:
            raise ValueError(f"sample_count must be non-negative, got {sample_count}")
        self.trigger_rate = float(trigger_rate)
        self.sample_count = int(sample_count)
        self.distribution = distribution
        self.confidence_interval = (
            tuple(confidence_interval)  # type: ignore[assignment]
            if confidence_interval is not None
            else wilson_interval(self.trigger_rate, self.sample_count)
        )
        self.clause_failures = [ClauseFailure.model_validate(c) for c in clause_failures]
        return self

    def set_witness_result(
        self, found: bool, state: WitnessState | None = None
    ) -> DiagnosticResult:
        self.witness_found = found
        self.witness_state = state
        return self

    def set_smt_result(
        self, satisfiable: bool | None, unsat_core: Sequence[str] = ()
    ) -> DiagnosticResult:
        self.smt_result = satisfiable
        self.unsat_core = list(unsat_core)
        if satisfiable is False:
            core = f" (core: {', '.join(self.unsat_core)})" if self.unsat_core else ""
            self._mark_impossible(f"SMT solver proved the prerequisites unsatisfiable{core}")
        return self

    def add_suggestion(
        self, suggestion: Suggestion | Mapping[str, Any] | str
    ) -> DiagnosticResult:
        if isinstance(suggestion, str):
            suggestion = Suggestion(type="general", message=suggestion)
        elif not isinstance(suggestion, Suggestion):
            suggestion = Suggestion.model_validate(suggestion)
        if all(
            (s.type, s.message) != (suggestion.type, suggestion.message) for s in self.suggestions
        ):
            self.suggestions.append(suggestion)
        return self

    def add_suggestions(
        self, suggestions: Sequence[Suggestion | Mapping[str, Any] | str]
    ) -> DiagnosticResult:
        for suggestion in suggestions:
            self.add_suggestion(suggestion)
        return self

    def _mark_impossible(self, reason: str) -> None:
        if not self.is_impossible:
            self.impossibility_reason = reason
        self.is_impossible = True

    # ─── Derived ──────────────────────────────────────────────────

    @staticmethod
    def get_rarity_category_for_rate(rate: float | None) -> RarityCategory:
        if rate is None:
            return RarityCategory.UNKNOWN
        if rate <= RARITY_THRESHOLDS["IMPOSSIBLE"]:
            return RarityCategory.IMPOSSIBLE
        if rate < RARITY_THRESHOLDS["EXTREMELY_RARE"]:
            return RarityCategory.EXTREMELY_RARE
        if rate < RARITY_THRESHOLDS["RARE"]:
            return RarityCategory.RARE
        if rate < RARITY_THRESHOLDS["NORMAL"]:
            return RarityCategory.NORMAL
        return RarityCategory.FREQUENT

    @property
    def rarity_category(self) -> RarityCategory:
        if self.is_impossible:
            return RarityCategory.IMPOSSIBLE
        return self.get_rarity_category_for_rate(self.trigger_rate)

    @property
    def status_indicator(self) -> StatusIndicator:
        return STATUS_INDICATORS[self.rarity_category]

    # ─── Serialisation ────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        interval = list(self.confidence_interval) if self.confidence_interval else None
        return {
            "id": self.id,
            "expressionId": self.expression_id,
            "timestamp": self.timestamp.isoformat(),
            "isImpossible": self.is_impossible,
            "impossibilityReason": self.impossibility_reason,
            "rarityCategory": self.rarity_category.value,
            "statusIndicator": self.status_indicator.to_dict(),
            "staticAnalysis": {
                "gateConflicts": [c.to_dict() for c in self.gate_conflicts],
                "unreachableThresholds": [r.to_dict() for r in self.unreachable_thresholds],
            },
            "monteCarlo": {
                "triggerRate": self.trigger_rate,
                "sampleCount": self.sample_count,
                "distribution": self.distribution,
                "confidenceInterval": interval,
                "clauseFailures": [c.to_dict() for c in self.clause_failures],
            },
            "witness": {
                "found": self.witness_found,
                "state": self.witness_state.to_dict() if self.witness_state else None,
            },
            "smt": {
                "satisfiable": self.smt_result,
                "unsatCore": list(self.unsat_core),
            },
            "suggestions": [s.to_dict() for s in self.suggestions],
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)
