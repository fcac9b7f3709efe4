"""
affectdiag — Feasibility

Interval algebra over gate constraints: derives the tightest per-axis ranges
implied by a conjunction of gates and reports contradictory axes.
"""

from affectdiag.primitives.interval import STRICT_EPSILON, Interval
from affectdiag.systems.feasibility.gate_analyzer import GateConstraintAnalyzer
from affectdiag.systems.feasibility.types import (
    GateAnalysisResult,
    GateConflict,
    GateContribution,
)

__all__ = [
    "STRICT_EPSILON",
    "GateAnalysisResult",
    "GateConflict",
    "GateConstraintAnalyzer",
    "GateContribution",
    "Interval",
]
