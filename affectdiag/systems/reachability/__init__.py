"""
affectdiag — Reachability

Path-sensitive static analysis: which OR-branches of an expression are
feasible, and whether each prototype threshold can be met on them.
"""

from affectdiag.systems.reachability.analyzer import (
    PathSensitiveAnalyzer,
    VolumeInterpretation,
)
from affectdiag.systems.reachability.types import (
    KNIFE_EDGE_THRESHOLD,
    AnalysisBranch,
    BranchReachability,
    KnifeEdge,
    KnifeEdgeSeverity,
    PathSensitiveResult,
    ReachabilityStatus,
)

__all__ = [
    "KNIFE_EDGE_THRESHOLD",
    "AnalysisBranch",
    "BranchReachability",
    "KnifeEdge",
    "KnifeEdgeSeverity",
    "PathSensitiveAnalyzer",
    "PathSensitiveResult",
    "ReachabilityStatus",
    "VolumeInterpretation",
]
