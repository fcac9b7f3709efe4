"""
affectdiag — Diagnostics Service

Runs every analysis stage for one expression and folds the findings into a
single ``DiagnosticResult``:

  static reachability → Monte-Carlo statistics → witness search → SMT → suggestions

Monte-Carlo simulation itself is external; its aggregate output is passed
in. Each stage is independent, so a failure to find a witness never hides
a static proof of impossibility and vice versa.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from affectdiag.clients.registry import require_registry
from affectdiag.config import AffectDiagConfig
from affectdiag.primitives.common import Direction
from affectdiag.systems.diagnosis.explainer import FailureExplainer
from affectdiag.systems.diagnosis.types import (
    DiagnosticResult,
    MonteCarloSummary,
    Suggestion,
)
from affectdiag.systems.gap.synthesizer import PrototypeGapSynthesizer
from affectdiag.systems.reachability.analyzer import PathSensitiveAnalyzer
from affectdiag.systems.reachability.types import PathSensitiveResult
from affectdiag.systems.smt.z3_bridge import Z3Bridge
from affectdiag.systems.witness.finder import WitnessStateFinder
from affectdiag.systems.witness.types import SearchResult

logger = structlog.get_logger().bind(system="diagnosis", component="service")


class DiagnosticsService:
    """
    Orchestrates the per-expression diagnosis pipeline.

    Collaborators default to instances built from ``config``; pass explicit
    ones to share caches or substitute test doubles.
    """

    def __init__(
        self,
        data_registry: Any,
        config: AffectDiagConfig | None = None,
        analyzer: PathSensitiveAnalyzer | None = None,
        finder: WitnessStateFinder | None = None,
        explainer: FailureExplainer | None = None,
        smt: Z3Bridge | None = None,
    ) -> None:
        require_registry(data_registry, "DiagnosticsService")
        self._config = config or AffectDiagConfig()
        gap = PrototypeGapSynthesizer(data_registry, self._config.gap)
        self._analyzer = analyzer or PathSensitiveAnalyzer(
            data_registry, self._config.reachability, gap_synthesizer=gap
        )
        self._finder = finder or WitnessStateFinder(data_registry, self._config.witness)
        self._explainer = explainer or FailureExplainer(data_registry, self._config.diagnosis)
        self._smt = smt or Z3Bridge(data_registry, check_timeout_ms=self._config.smt.timeout_ms)
        self._log = logger

    async def diagnose(
        self,
        expression: Mapping[str, Any],
        monte_carlo: MonteCarloSummary | Mapping[str, Any] | None = None,
        run_witness: bool = True,
        run_smt: bool | None = None,
    ) -> DiagnosticResult:
        if not isinstance(expression, Mapping) or not expression.get("id"):
            raise ValueError("DiagnosticsService requires expression with id")

        expression_id = str(expression["id"])
        run_smt = self._config.smt.enabled if run_smt is None else run_smt
        result = DiagnosticResult(expression_id=expression_id)

        # 1. Static analysis
        static = self._analyzer.analyze(expression)
        self._apply_static(result, static)

        # 2. Monte Carlo
        summary = None
        if monte_carlo is not None:
            summary = (
                monte_carlo
                if isinstance(monte_carlo, MonteCarloSummary)
                else MonteCarloSummary.model_validate(monte_carlo)
            )
            result.set_monte_carlo_results(
                trigger_rate=summary.trigger_rate,
                sample_count=summary.sample_count,
                distribution=summary.distribution,
                confidence_interval=summary.confidence_interval,
                clause_failures=summary.clause_failures,
            )

        # 3. Witness search
        search: SearchResult | None = None
        if run_witness:
            search = await self._finder.find_witness(expression)
            result.set_witness_result(search.found, search.best_state)

        # 4. SMT confirmation
        if run_smt:
            smt = self._smt.check_expression(expression)
            result.set_smt_result(smt.satisfiable, smt.unsat_core)

        # 5. Suggestions
        self._suggest_from_static(result, static)
        if summary is not None and summary.clause_failures:
            self._suggest_from_blockers(result, summary)
        if search is not None and not search.found and search.violated_clauses:
            result.add_suggestion(
                Suggestion(
                    type="witness",
                    message=(
                        f"No satisfying state found in {search.iterations_used} iterations; "
                        f"closest state still violates {len(search.violated_clauses)} clause(s)"
                    ),
                    details={
                        "bestFitness": search.best_fitness,
                        "violatedClauses": list(search.violated_clauses),
                    },
                )
            )

        self._log.info(
            "expression_diagnosed",
            expression=expression_id,
            rarity=result.rarity_category.value,
            impossible=result.is_impossible,
            witness_found=result.witness_found,
            smt=result.smt_result,
            suggestions=len(result.suggestions),
        )
        return result

    # ─── Stages ───────────────────────────────────────────────────

    @staticmethod
    def _apply_static(result: DiagnosticResult, static: PathSensitiveResult) -> None:
        conflicts = [c for b in static.branches for c in b.conflicts]
        unreachable = static.get_blocking_thresholds()

        # Impossible when no analysed branch is both conflict-free and unblocked,
        # and no path was left out by the branch limit
        blocked = {r.branch_id for r in unreachable}
        impossible = (
            not static.truncated
            and bool(static.branches)
            and all(b.is_infeasible or b.branch_id in blocked for b in static.branches)
        )
        reason = static.get_summary_message() if impossible else None
        result.set_static_analysis(conflicts, unreachable, is_impossible=impossible, reason=reason)

    @staticmethod
    def _suggest_from_static(result: DiagnosticResult, static: PathSensitiveResult) -> None:
        if static.truncated:
            result.add_suggestion(
                Suggestion(
                    type="branch_limit",
                    message=(
                        f"Only {static.branch_count} of {static.total_paths} OR paths were "
                        f"analysed; raise reachability.max_branches for a complete verdict"
                    ),
                    details={"analysed": static.branch_count, "total": static.total_paths},
                )
            )
        for conflict in result.gate_conflicts:
            gates = ", ".join(conflict.contributing_gates) or "unknown gates"
            result.add_suggestion(
                Suggestion(
                    type="gate_conflict",
                    message=f"{conflict.message}; relax one of: {gates}",
                    details={"axis": conflict.axis},
                )
            )
        for entry in result.unreachable_thresholds:
            if entry.direction == Direction.LOW:
                message = (
                    f"{entry.prototype_id} never drops below {entry.min_possible:.2f} on branch "
                    f"{entry.branch_id}; raise the threshold above {entry.min_possible:.2f}"
                )
            else:
                message = (
                    f"{entry.prototype_id} peaks at {entry.max_possible:.2f} on branch "
                    f"{entry.branch_id}; lower the threshold from {entry.threshold:.2f} "
                    f"or relax the gates constraining it"
                )
            result.add_suggestion(
                Suggestion(
                    type="unreachable_threshold",
                    message=message,
                    details={"branchId": entry.branch_id, "gap": entry.gap},
                )
            )
        for analysis in static.gap_analyses:
            if not analysis.gap_detected or analysis.suggested_prototype is None:
                continue
            suggested = analysis.suggested_prototype
            result.add_suggestion(
                Suggestion(
                    type="new_prototype",
                    message=(
                        f"Branch {analysis.branch_id} has no nearby prototype "
                        f"({analysis.coverage_warning}); consider adding one"
                    ),
                    details=suggested.to_dict(),
                )
            )

    def _suggest_from_blockers(self, result: DiagnosticResult, summary: MonteCarloSummary) -> None:
        blockers = self._explainer.analyze_prioritized_blockers(summary.clause_failures)
        result.add_suggestion(
            Suggestion(
                type="summary",
                message=self._explainer.generate_summary(summary.trigger_rate, blockers),
            )
        )
        for blocker in blockers[: self._config.diagnosis.top_blockers]:
            if blocker.failure_rate < self._config.diagnosis.min_failure_rate:
                continue
            diagnosis = blocker.diagnosis
            result.add_suggestion(
                Suggestion(
                    type="blocker",
                    message=f"#{blocker.rank} {blocker.clause_description}: {blocker.explanation.summary}",
                    details={
                        "recommendation": diagnosis.recommendation.value if diagnosis else None,
                        "priorityScore": diagnosis.priority_score if diagnosis else None,
                        "suggestions": list(blocker.explanation.suggestions),
                    },
                )
            )
