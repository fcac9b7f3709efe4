"""
affectdiag — Diagnosis

Aggregates static, stochastic, witness and SMT findings per expression,
explains failing clauses and ranks them by how much fixing each would help.
"""

from affectdiag.systems.diagnosis.explainer import ClauseDiagnoser, FailureExplainer, severity_for
from affectdiag.systems.diagnosis.service import DiagnosticsService
from affectdiag.systems.diagnosis.types import (
    RARITY_THRESHOLDS,
    STATUS_INDICATORS,
    Blocker,
    CeilingStatus,
    ClauseDiagnosis,
    ClauseFailure,
    DiagnosticResult,
    Explanation,
    FlatNode,
    HierarchyNode,
    LastMileStatus,
    MonteCarloSummary,
    NearMissLevel,
    PercentileShape,
    RarityCategory,
    Recommendation,
    Severity,
    StatusIndicator,
    Suggestion,
    wilson_interval,
)

__all__ = [
    "RARITY_THRESHOLDS",
    "STATUS_INDICATORS",
    "Blocker",
    "CeilingStatus",
    "ClauseDiagnoser",
    "ClauseDiagnosis",
    "ClauseFailure",
    "DiagnosticResult",
    "DiagnosticsService",
    "Explanation",
    "FailureExplainer",
    "FlatNode",
    "HierarchyNode",
    "LastMileStatus",
    "MonteCarloSummary",
    "NearMissLevel",
    "PercentileShape",
    "RarityCategory",
    "Recommendation",
    "Severity",
    "StatusIndicator",
    "Suggestion",
    "severity_for",
    "wilson_interval",
]
