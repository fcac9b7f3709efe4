"""
affectdiag — Failure Explanation & Clause Diagnosis

Turns per-clause failure statistics into ranked, human-readable blockers.

``ClauseDiagnoser`` classifies each clause along four independent axes
(violation percentile shape, near-miss tunability, ceiling achievability,
last-mile decisiveness) and derives a recommendation plus a priority score.
Ranking by that score rather than raw failure rate lets a rare but decisive
clause outrank a frequent one that only fails alongside others.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from affectdiag.clients.registry import PrototypeCatalog, require_registry
from affectdiag.config import DiagnosisConfig
from affectdiag.primitives.common import PrototypeType
from affectdiag.primitives.expression import EMOTIONS_ROOT, SEXUAL_STATES_ROOT, split_var_path
from affectdiag.systems.diagnosis.types import (
    RARITY_THRESHOLDS,
    Blocker,
    CeilingStatus,
    ClauseDiagnosis,
    ClauseFailure,
    Explanation,
    FlatNode,
    HierarchyNode,
    LastMileStatus,
    NearMissLevel,
    PercentileShape,
    Recommendation,
    Severity,
)

logger = structlog.get_logger().bind(system="diagnosis", component="explainer")

_THRESHOLD_CLAUSE = re.compile(r"^\s*([\w.:]+)\s*(>=|<=|==|>|<)\s*(-?\d+(?:\.\d+)?)\s*$")
_COMPOUND_CLAUSE = re.compile(r"^\s*(AND|OR) of (\d+) conditions?\s*$")

# Prototype weights smaller than this are not worth naming
SIGNIFICANT_WEIGHT: float = 0.1
HIGH_THRESHOLD: float = 0.8
LOW_THRESHOLD: float = 0.2
LARGE_VIOLATION: float = 0.1
WORST_OFFENDER_LIMIT: int = 5
WORST_OFFENDER_MIN_RATE: float = 0.5
FREQUENT_FAILURE_RATE: float = 0.5

_PROTOTYPE_LABELS: dict[str, tuple[PrototypeType, str]] = {
    EMOTIONS_ROOT: (PrototypeType.EMOTION, "Emotion"),
    SEXUAL_STATES_ROOT: (PrototypeType.SEXUAL, "Sexual state"),
}


def severity_for(failure_rate: float) -> Severity:
    if failure_rate >= 0.99:
        return Severity.CRITICAL
    if failure_rate >= 0.9:
        return Severity.HIGH
    if failure_rate >= 0.7:
        return Severity.MEDIUM
    return Severity.LOW


def _percent(rate: float) -> str:
    return f"{rate * 100:.1f}%"


def _format_optional(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.2f}"


# ─── Clause Diagnoser ─────────────────────────────────────────────


class ClauseDiagnoser:
    """Four-axis classification of one clause's failure statistics."""

    NEAR_MISS_HIGH = 0.10
    NEAR_MISS_MODERATE = 0.02
    RARELY_DECISIVE = 0.01
    DECISIVE_RATIO = 1.5
    NEAR_MISS_SCORE_FLOOR = 0.05

    @staticmethod
    def classify_percentiles(failure: ClauseFailure) -> PercentileShape:
        avg = failure.average_violation
        p50, p90 = failure.violation_p50, failure.violation_p90
        if p50 is None or p90 is None or not avg:
            return PercentileShape.NO_DATA
        if p50 < avg * 0.5:
            return PercentileShape.HEAVY_TAIL
        if p90 > avg * 2:
            return PercentileShape.SOME_SEVERE
        return PercentileShape.NORMAL

    @classmethod
    def classify_near_miss(cls, failure: ClauseFailure) -> NearMissLevel:
        rate = failure.near_miss_rate
        if rate is None:
            return NearMissLevel.NO_DATA
        if rate > cls.NEAR_MISS_HIGH:
            return NearMissLevel.HIGH
        if rate >= cls.NEAR_MISS_MODERATE:
            return NearMissLevel.MODERATE
        return NearMissLevel.LOW

    @staticmethod
    def classify_ceiling(failure: ClauseFailure) -> CeilingStatus:
        if failure.ceiling_gap is not None and failure.ceiling_gap > 0:
            return CeilingStatus.CEILING_DETECTED
        return CeilingStatus.ACHIEVABLE

    @classmethod
    def classify_last_mile(cls, failure: ClauseFailure) -> LastMileStatus:
        if failure.is_single_clause:
            return LastMileStatus.SINGLE_CLAUSE
        last_mile = failure.last_mile_fail_rate
        if last_mile is None:
            return LastMileStatus.NO_DATA
        if last_mile < cls.RARELY_DECISIVE:
            return LastMileStatus.RARELY_DECISIVE
        if failure.failure_rate > 0 and last_mile / failure.failure_rate > cls.DECISIVE_RATIO:
            return LastMileStatus.DECISIVE_BLOCKER
        return LastMileStatus.MODERATE

    @staticmethod
    def recommend(
        near_miss: NearMissLevel, ceiling: CeilingStatus, last_mile: LastMileStatus
    ) -> Recommendation:
        decisive = last_mile == LastMileStatus.DECISIVE_BLOCKER
        if ceiling == CeilingStatus.CEILING_DETECTED:
            return Recommendation.REDESIGN
        if near_miss == NearMissLevel.HIGH or (near_miss == NearMissLevel.MODERATE and decisive):
            return Recommendation.TUNE_THRESHOLD
        if near_miss == NearMissLevel.LOW or decisive:
            return Recommendation.ADJUST_UPSTREAM
        return Recommendation.LOWER_PRIORITY

    @classmethod
    def priority_score(cls, failure: ClauseFailure) -> float:
        last_mile = failure.last_mile_fail_rate
        score = 0.4 * (last_mile if last_mile is not None else failure.failure_rate)
        score += 0.3 * failure.failure_rate
        if failure.near_miss_rate is not None and failure.near_miss_rate > cls.NEAR_MISS_SCORE_FLOOR:
            score += 0.2 * failure.near_miss_rate
        if cls.classify_ceiling(failure) == CeilingStatus.CEILING_DETECTED:
            score /= 2
        return score

    @classmethod
    def diagnose(cls, failure: ClauseFailure) -> ClauseDiagnosis:
        near_miss = cls.classify_near_miss(failure)
        ceiling = cls.classify_ceiling(failure)
        last_mile = cls.classify_last_mile(failure)
        return ClauseDiagnosis(
            percentile_shape=cls.classify_percentiles(failure),
            near_miss=near_miss,
            ceiling=ceiling,
            last_mile=last_mile,
            recommendation=cls.recommend(near_miss, ceiling, last_mile),
            priority_score=cls.priority_score(failure),
        )


# ─── Failure Explainer ────────────────────────────────────────────


class FailureExplainer:
    """
    Ranks failing clauses and explains each one in terms of the prototypes
    it references.
    """

    def __init__(self, data_registry: Any, config: DiagnosisConfig | None = None) -> None:
        require_registry(data_registry, "FailureExplainer")
        self._registry = data_registry
        self._config = config or DiagnosisConfig()
        self._diagnoser = ClauseDiagnoser()
        self._log = logger

    # ─── Blockers ─────────────────────────────────────────────────

    def analyze_blockers(
        self, clause_failures: Sequence[ClauseFailure | Mapping[str, Any]] | None
    ) -> list[Blocker]:
        """Blockers sorted by failure rate, rank 1 being the worst."""
        failures = self._coerce(clause_failures)
        if not failures:
            return []
        catalog = PrototypeCatalog(self._registry)
        ordered = sorted(failures, key=lambda f: f.failure_rate, reverse=True)
        return [
            self._make_blocker(failure, rank, catalog)
            for rank, failure in enumerate(ordered, start=1)
        ]

    def get_top_blockers(
        self,
        clause_failures: Sequence[ClauseFailure | Mapping[str, Any]] | None,
        n: int | None = None,
    ) -> list[Blocker]:
        n = self._config.top_blockers if n is None else n
        return self.analyze_blockers(clause_failures)[:n]

    def analyze_prioritized_blockers(
        self, clause_failures: Sequence[ClauseFailure | Mapping[str, Any]] | None
    ) -> list[Blocker]:
        """Blockers ranked by diagnoser priority score, each carrying its diagnosis."""
        failures = self._coerce(clause_failures)
        if not failures:
            return []
        catalog = PrototypeCatalog(self._registry)
        scored = [(failure, self._diagnoser.diagnose(failure)) for failure in failures]
        scored.sort(key=lambda item: item[1].priority_score, reverse=True)

        blockers: list[Blocker] = []
        for rank, (failure, diagnosis) in enumerate(scored, start=1):
            blocker = self._make_blocker(failure, rank, catalog)
            blocker.diagnosis = diagnosis
            blockers.append(blocker)

        self._log.debug(
            "blockers_prioritized",
            clauses=len(blockers),
            top=blockers[0].clause_description,
            top_score=round(blockers[0].diagnosis.priority_score, 4),  # type: ignore[union-attr]
        )
        return blockers

    def analyze_hierarchical_blockers(
        self, clause_failures: Sequence[ClauseFailure | Mapping[str, Any]] | None
    ) -> list[Blocker]:
        """Like ``analyze_blockers``, plus the worst leaf conditions of compound clauses."""
        blockers = self.analyze_blockers(clause_failures)
        for blocker in blockers:
            tree = blocker.hierarchical_breakdown
            blocker.has_hierarchy = tree is not None
            blocker.worst_offenders = (
                self.flatten_hierarchy(tree, WORST_OFFENDER_MIN_RATE)[:WORST_OFFENDER_LIMIT]
                if tree is not None
                else []
            )
        return blockers

    @staticmethod
    def flatten_hierarchy(
        tree: HierarchyNode | Mapping[str, Any] | None, min_failure_rate: float = 0.0
    ) -> list[FlatNode]:
        """Leaf conditions of ``tree`` with their depth, worst first."""
        if tree is None:
            return []
        root = tree if isinstance(tree, HierarchyNode) else HierarchyNode.model_validate(tree)

        leaves: list[FlatNode] = []
        stack: list[tuple[HierarchyNode, int]] = [(root, 0)]
        while stack:
            node, depth = stack.pop()
            if node.children:
                stack.extend((child, depth + 1) for child in reversed(node.children))
                continue
            if node.failure_rate >= min_failure_rate:
                leaves.append(
                    FlatNode(
                        id=node.id,
                        description=node.description,
                        failure_rate=node.failure_rate,
                        average_violation=node.average_violation,
                        severity=severity_for(node.failure_rate),
                        depth=depth,
                    )
                )
        leaves.sort(key=lambda leaf: leaf.failure_rate, reverse=True)
        return leaves

    # ─── Summary ──────────────────────────────────────────────────

    def generate_summary(self, trigger_rate: float, blockers: Sequence[Blocker | Mapping[str, Any]]) -> str:
        rate_text = f"{trigger_rate * 100:.3f}%"
        top = _description_of(blockers[0]) if blockers else None

        if trigger_rate <= RARITY_THRESHOLDS["IMPOSSIBLE"]:
            if top is None:
                return "Expression never triggers. No specific blocker identified."
            return f"Expression never triggers. Primary blocker: {top}"
        if trigger_rate < RARITY_THRESHOLDS["EXTREMELY_RARE"]:
            blocker_text = f" Top blocker: {top}" if top else ""
            return f"Expression is extremely rare ({rate_text}).{blocker_text}"
        if trigger_rate < RARITY_THRESHOLDS["RARE"]:
            frequent = sum(1 for b in blockers if _rate_of(b) >= FREQUENT_FAILURE_RATE)
            return (
                f"Expression triggers rarely ({rate_text}). "
                f"{frequent} clause(s) frequently fail."
            )
        if trigger_rate < RARITY_THRESHOLDS["NORMAL"]:
            return (
                f"Expression triggers occasionally ({rate_text}). "
                f"Consider adjusting thresholds if it should fire more often."
            )
        return f"Expression triggers at a healthy rate ({rate_text})."

    # ─── Internals ────────────────────────────────────────────────

    @staticmethod
    def _coerce(
        clause_failures: Sequence[ClauseFailure | Mapping[str, Any]] | None,
    ) -> list[ClauseFailure]:
        if not clause_failures:
            return []
        return [ClauseFailure.model_validate(c) for c in clause_failures]

    def _make_blocker(self, failure: ClauseFailure, rank: int, catalog: PrototypeCatalog) -> Blocker:
        return Blocker(
            clause_description=failure.clause_description,
            clause_index=failure.clause_index,
            failure_rate=failure.failure_rate,
            average_violation=failure.average_violation,
            rank=rank,
            explanation=self._explain(failure, catalog),
            has_hierarchy=failure.hierarchical_breakdown is not None,
            hierarchical_breakdown=failure.hierarchical_breakdown,
        )

    def _explain(self, failure: ClauseFailure, catalog: PrototypeCatalog) -> Explanation:
        explanation = self._explain_clause(failure, catalog)
        if ClauseDiagnoser.classify_ceiling(failure) != CeilingStatus.CEILING_DETECTED:
            return explanation
        # No threshold tuning helps while the sampled maximum stays below it
        return explanation.model_copy(
            update={
                "detail": f"{explanation.detail} Ceiling effect: max observed "
                f"({_format_optional(failure.max_observed_value)}) never reaches threshold "
                f"({_format_optional(failure.threshold_value)}).",
                "suggestions": [
                    "Adjust the prototypes or gates that produce this value",
                    *explanation.suggestions,
                ],
            }
        )

    def _explain_clause(self, failure: ClauseFailure, catalog: PrototypeCatalog) -> Explanation:
        description = failure.clause_description
        severity = severity_for(failure.failure_rate)
        rate = _percent(failure.failure_rate)

        if match := _THRESHOLD_CLAUSE.match(description):
            var, operator, value = match.group(1), match.group(2), float(match.group(3))
            if operator in (">=", ">"):
                summary = f"{var} rarely reaches {value:g} (fails {rate} of samples)"
            elif operator in ("<=", "<"):
                summary = f"{var} is rarely low enough to stay {operator} {value:g} (fails {rate} of samples)"
            else:
                summary = f"{var} rarely equals {value:g} (fails {rate} of samples)"
            detail = self._describe_threshold(var, operator, value, catalog)
            if failure.average_violation > 0:
                detail += f" Average shortfall: {failure.average_violation:.3f}."
            return Explanation(
                severity=severity,
                summary=summary,
                detail=detail,
                suggestions=self._threshold_suggestions(operator, value, failure.average_violation),
            )

        if match := _COMPOUND_CLAUSE.match(description):
            kind, count = match.group(1), int(match.group(2))
            requirement = "all must hold" if kind == "AND" else "at least one must hold"
            return Explanation(
                severity=severity,
                summary=f"Compound condition fails {rate} of samples",
                detail=f"{kind} of {count} conditions: {requirement}",
                suggestions=["Inspect the individual conditions to find the dominant blocker"],
            )

        return Explanation(
            severity=severity,
            summary=f"Clause fails {rate} of samples",
            detail=description,
        )

    @staticmethod
    def _describe_threshold(
        var: str, operator: str, value: float, catalog: PrototypeCatalog
    ) -> str:
        root, key = split_var_path(var)
        requirement = f"must be {operator} {value:g}"
        if root not in _PROTOTYPE_LABELS or key is None:
            return f"{var} {requirement}."

        prototype_type, label = _PROTOTYPE_LABELS[root]
        prototype = catalog.get(key, prototype_type)
        if prototype is None:
            return f'{label} "{key}" {requirement}.'

        significant = sorted(
            ((axis, w) for axis, w in prototype.weights.items() if abs(w) >= SIGNIFICANT_WEIGHT),
            key=lambda item: abs(item[1]),
            reverse=True,
        )
        if not significant:
            return f'{label} "{key}" has no significant weights and {requirement}.'
        weights = ", ".join(f"{axis} ({w:+.2f})" for axis, w in significant)
        return f'{label} "{key}" is weighted toward {weights} and {requirement}.'

    @staticmethod
    def _threshold_suggestions(operator: str, value: float, average_violation: float) -> list[str]:
        suggestions: list[str] = []
        if operator in (">=", ">"):
            if value > HIGH_THRESHOLD:
                suggestions.append(
                    f"Consider lowering threshold from {value:g} to {HIGH_THRESHOLD - 0.1:.1f}-{HIGH_THRESHOLD:.1f}"
                )
            if average_violation > LARGE_VIOLATION:
                suggestions.append(
                    f"Based on violations, a threshold near {max(0.0, value - average_violation):.2f} "
                    f"would pass more often"
                )
        elif operator in ("<=", "<"):
            if value < LOW_THRESHOLD:
                suggestions.append(
                    f"Consider raising threshold from {value:g} to {LOW_THRESHOLD:.1f}-{LOW_THRESHOLD + 0.1:.1f}"
                )
            if average_violation > LARGE_VIOLATION:
                suggestions.append(
                    f"Based on violations, a threshold near {min(1.0, value + average_violation):.2f} "
                    f"would pass more often"
                )
        if not suggestions:
            suggestions.append("Current threshold may be appropriate; the rarity may be intentional")
        return suggestions


def _description_of(blocker: Blocker | Mapping[str, Any]) -> str:
    if isinstance(blocker, Blocker):
        return blocker.clause_description
    return str(blocker.get("clauseDescription", blocker.get("clause_description", "")))


def _rate_of(blocker: Blocker | Mapping[str, Any]) -> float:
    if isinstance(blocker, Blocker):
        return blocker.failure_rate
    return float(blocker.get("failureRate", blocker.get("failure_rate", 0.0)))
