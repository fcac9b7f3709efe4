"""
affectdiag — Reachability Types

Branches, knife-edges, per-branch threshold reachability and the aggregate
path-sensitive result.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import Field, field_validator, model_validator

from affectdiag.primitives.axes import RAW_SCALE
from affectdiag.primitives.common import (
    DiagBaseModel,
    Direction,
    PrototypeType,
    utc_now,
)
from affectdiag.primitives.interval import Interval
from affectdiag.systems.feasibility.types import GateConflict
from affectdiag.systems.gap.types import GapAnalysis

# ─── Enums ────────────────────────────────────────────────────────


class KnifeEdgeSeverity(str, enum.Enum):
    CRITICAL = "critical"   # Exactly one admissible value
    WARNING = "warning"     # Width <= 0.01
    INFO = "info"


class ReachabilityStatus(str, enum.Enum):
    FULLY_REACHABLE = "fully_reachable"
    PARTIALLY_REACHABLE = "partially_reachable"
    UNREACHABLE = "unreachable"


# ─── Constants ────────────────────────────────────────────────────

KNIFE_EDGE_THRESHOLD: float = 0.02
KNIFE_EDGE_WARNING_WIDTH: float = 0.01

SEVERITY_EMOJI: dict[KnifeEdgeSeverity, str] = {
    KnifeEdgeSeverity.CRITICAL: "🔴",
    KnifeEdgeSeverity.WARNING: "🟡",
    KnifeEdgeSeverity.INFO: "🔵",
}

STATUS_EMOJI: dict[ReachabilityStatus, str] = {
    ReachabilityStatus.FULLY_REACHABLE: "🟢",
    ReachabilityStatus.PARTIALLY_REACHABLE: "🟡",
    ReachabilityStatus.UNREACHABLE: "🔴",
}

_DIRECTION_SYMBOL: dict[Direction, str] = {
    Direction.HIGH: ">=",
    Direction.LOW: "<",
}


# ─── Knife Edge ───────────────────────────────────────────────────


class KnifeEdge(DiagBaseModel):
    """
    An axis window so narrow that random states almost never land in it.

    Values are on the normalised scale; the ``raw_*`` accessors give the
    integer display scale.
    """

    model_config = {"frozen": True}

    axis: str = Field(min_length=1)
    min: float = Field(allow_inf_nan=False)
    max: float = Field(allow_inf_nan=False)
    contributing_prototypes: tuple[str, ...] = ()
    contributing_gates: tuple[str, ...] = ()

    @field_validator("axis", mode="before")
    @classmethod
    def _axis_is_text(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("KnifeEdge axis must be a non-empty string")
        return value

    @field_validator("min", "max", mode="before")
    @classmethod
    def _bound_is_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("KnifeEdge bounds must be numbers")
        return value

    @model_validator(mode="after")
    def _ordered(self) -> KnifeEdge:
        if self.max < self.min:
            raise ValueError(f"KnifeEdge max ({self.max}) must be >= min ({self.min})")
        return self

    @property
    def width(self) -> float:
        return self.max - self.min

    @property
    def is_point(self) -> bool:
        return self.width == 0

    @property
    def severity(self) -> KnifeEdgeSeverity:
        if self.is_point:
            return KnifeEdgeSeverity.CRITICAL
        if self.width <= KNIFE_EDGE_WARNING_WIDTH:
            return KnifeEdgeSeverity.WARNING
        return KnifeEdgeSeverity.INFO

    @property
    def raw_min(self) -> int:
        return round(self.min * RAW_SCALE)

    @property
    def raw_max(self) -> int:
        return round(self.max * RAW_SCALE)

    @property
    def raw_width(self) -> int:
        return round(self.width * RAW_SCALE)

    def is_below_threshold(self, threshold: float = KNIFE_EDGE_THRESHOLD) -> bool:
        return self.width <= threshold

    def format_interval(self) -> str:
        if self.is_point:
            return f"exactly {self.min:.2f}"
        return f"[{self.min:.2f}, {self.max:.2f}]"

    def format_dual_scale_interval(self) -> str:
        if self.is_point:
            return f"exactly {self.min:.2f} (raw: {self.raw_min})"
        return f"[{self.min:.2f}, {self.max:.2f}] (raw: [{self.raw_min}, {self.raw_max}])"

    def format_contributors(self) -> str:
        if not self.contributing_prototypes:
            return "unknown"
        return " ∧ ".join(self.contributing_prototypes)

    def to_warning_message(self) -> str:
        emoji = SEVERITY_EMOJI[self.severity]
        if self.is_point:
            window = f"must be exactly {self.min:.2f} ({self.raw_min} in game values)"
        else:
            window = (
                f"must be in [{self.min:.2f}, {self.max:.2f}] "
                f"({self.raw_min} to {self.raw_max} in game values)"
            )
        return (
            f"{emoji} Knife-edge on {self.axis}: {window}, "
            f"width: {self.width:.3f}, caused by: {self.format_contributors()}"
        )

    def to_display_object(self) -> dict[str, Any]:
        return {
            "axis": self.axis,
            "interval": self.format_interval(),
            "dualScaleInterval": self.format_dual_scale_interval(),
            "width": f"{self.width:.3f}",
            "rawWidth": self.raw_width,
            "severity": self.severity.value,
            "contributors": self.format_contributors(),
            "gates": list(self.contributing_gates),
        }

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            width=self.width,
            isPoint=self.is_point,
            severity=self.severity.value,
            rawMin=self.raw_min,
            rawMax=self.raw_max,
            rawWidth=self.raw_width,
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnifeEdge:
        """Inverse of ``to_dict``; derived fields are recomputed, not read."""
        return cls(
            axis=data.get("axis"),
            min=data.get("min"),
            max=data.get("max"),
            contributing_prototypes=tuple(data.get("contributingPrototypes") or ()),
            contributing_gates=tuple(data.get("contributingGates") or ()),
        )


# ─── Branch ───────────────────────────────────────────────────────


class AnalysisBranch(DiagBaseModel):
    """One conjunctive path through an expression's AND/OR tree."""

    model_config = {"frozen": True}

    branch_id: str = Field(min_length=1)
    description: str = ""
    required_prototypes: tuple[str, ...] = ()
    # Prototypes the branch needs high (gates enforced) / low (expected inactive)
    active_prototypes: tuple[str, ...] = ()
    inactive_prototypes: tuple[str, ...] = ()
    axis_intervals: dict[str, Interval] = Field(default_factory=dict)
    conflicts: tuple[GateConflict, ...] = ()
    knife_edges: tuple[KnifeEdge, ...] = ()

    @property
    def is_infeasible(self) -> bool:
        return len(self.conflicts) > 0

    @property
    def has_knife_edges(self) -> bool:
        return len(self.knife_edges) > 0

    def get_axis_interval(self, axis: str) -> Interval | None:
        return self.axis_intervals.get(axis)

    def with_prototype_partitioning(
        self, active: list[str] | tuple[str, ...], inactive: list[str] | tuple[str, ...]
    ) -> AnalysisBranch:
        return self.model_copy(
            update={"active_prototypes": tuple(active), "inactive_prototypes": tuple(inactive)}
        )

    def with_axis_intervals(self, intervals: dict[str, Interval]) -> AnalysisBranch:
        return self.model_copy(update={"axis_intervals": dict(intervals)})

    def with_conflicts(self, conflicts: list[GateConflict]) -> AnalysisBranch:
        return self.model_copy(update={"conflicts": tuple(conflicts)})

    def with_knife_edges(self, knife_edges: list[KnifeEdge]) -> AnalysisBranch:
        return self.model_copy(update={"knife_edges": tuple(knife_edges)})

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["isInfeasible"] = self.is_infeasible
        data["knifeEdges"] = [k.to_dict() for k in self.knife_edges]
        return data


# ─── Reachability ─────────────────────────────────────────────────


class BranchReachability(DiagBaseModel):
    model_config = {"frozen": True}

    branch_id: str = Field(min_length=1)
    branch_description: str = ""
    prototype_id: str = Field(min_length=1)
    type: PrototypeType = PrototypeType.EMOTION
    threshold: float = Field(allow_inf_nan=False)
    direction: Direction = Direction.HIGH
    # Comparison as written; None when only the direction is known
    operator: str | None = None
    min_possible: float = 0.0
    max_possible: float = 1.0
    knife_edges: tuple[KnifeEdge, ...] = ()

    @property
    def is_reachable(self) -> bool:
        if self.direction == Direction.LOW:
            return self.min_possible < self.threshold
        return self.max_possible >= self.threshold

    @property
    def is_blocking(self) -> bool:
        """True when no intensity in the branch's bounds satisfies the comparison."""
        if self.operator == "<=":
            return self.min_possible > self.threshold
        if self.operator == "<":
            return self.min_possible >= self.threshold
        if self.operator == ">=":
            return self.max_possible < self.threshold
        if self.operator == ">":
            return self.max_possible <= self.threshold
        return not self.is_reachable

    @property
    def gap(self) -> float:
        """Shortfall to the threshold; 0.0 when reachable."""
        if self.is_reachable:
            return 0.0
        if self.direction == Direction.LOW:
            return self.min_possible - self.threshold
        return self.threshold - self.max_possible

    def to_summary(self) -> str:
        symbol = _DIRECTION_SYMBOL[self.direction]
        bound = (
            f"min {self.min_possible:.2f}"
            if self.direction == Direction.LOW
            else f"max {self.max_possible:.2f}"
        )
        mark = "✓" if self.is_reachable else f"✗ (gap {self.gap:.2f})"
        return f"{self.prototype_id} {symbol} {self.threshold:.2f}: {bound} {mark}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(isReachable=self.is_reachable, gap=self.gap)
        data["knifeEdges"] = [k.to_dict() for k in self.knife_edges]
        return data


class PathSensitiveResult(DiagBaseModel):
    expression_id: str = Field(min_length=1)
    branches: list[AnalysisBranch] = Field(default_factory=list)
    reachability_by_branch: list[BranchReachability] = Field(default_factory=list)
    feasibility_volume: float | None = None
    gap_analyses: list[GapAnalysis] = Field(default_factory=list)
    # Set when the branch limit cut enumeration short; unanalysed paths may be feasible
    truncated: bool = False
    total_paths: int = Field(default=0, ge=0)
    analyzed_at: datetime = Field(default_factory=utc_now)

    @field_validator("expression_id", mode="before")
    @classmethod
    def _expression_id_is_text(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("PathSensitiveResult requires a non-empty expression_id")
        return value

    # ─── Counts ───────────────────────────────────────────────────

    @property
    def branch_count(self) -> int:
        return len(self.branches)

    @property
    def feasible_branch_count(self) -> int:
        return sum(1 for b in self.branches if not b.is_infeasible)

    @property
    def infeasible_branch_count(self) -> int:
        return sum(1 for b in self.branches if b.is_infeasible)

    # ─── Reachability ─────────────────────────────────────────────

    @property
    def fully_reachable_branch_ids(self) -> list[str]:
        ids: list[str] = []
        for branch in self.branches:
            if branch.is_infeasible:
                continue
            entries = self.get_reachability_for_branch(branch.branch_id)
            if entries and all(r.is_reachable for r in entries):
                ids.append(branch.branch_id)
        return ids

    @property
    def has_fully_reachable_branch(self) -> bool:
        return len(self.fully_reachable_branch_ids) > 0

    @property
    def all_knife_edges(self) -> list[KnifeEdge]:
        return [k for b in self.branches for k in b.knife_edges]

    @property
    def total_knife_edge_count(self) -> int:
        return len(self.all_knife_edges)

    @property
    def overall_status(self) -> ReachabilityStatus:
        if self.feasible_branch_count == 0:
            if self.truncated:
                return ReachabilityStatus.PARTIALLY_REACHABLE
            return ReachabilityStatus.UNREACHABLE
        if self.has_fully_reachable_branch:
            return ReachabilityStatus.FULLY_REACHABLE
        return ReachabilityStatus.PARTIALLY_REACHABLE

    @property
    def status_emoji(self) -> str:
        return STATUS_EMOJI[self.overall_status]

    # ─── Queries ──────────────────────────────────────────────────

    def get_branch(self, branch_id: str) -> AnalysisBranch | None:
        return next((b for b in self.branches if b.branch_id == branch_id), None)

    def get_reachability_for_branch(self, branch_id: str) -> list[BranchReachability]:
        return [r for r in self.reachability_by_branch if r.branch_id == branch_id]

    def get_reachability_for_prototype(self, prototype_id: str) -> list[BranchReachability]:
        return [r for r in self.reachability_by_branch if r.prototype_id == prototype_id]

    def get_unreachable_thresholds(self) -> list[BranchReachability]:
        return [r for r in self.reachability_by_branch if not r.is_reachable]

    def get_blocking_thresholds(self) -> list[BranchReachability]:
        return [r for r in self.reachability_by_branch if r.is_blocking]

    def get_summary_message(self) -> str:
        if self.truncated and self.feasible_branch_count == 0:
            return (
                f"No feasible branch among the first {self.branch_count} of "
                f"{self.total_paths} paths; the remaining paths were not analysed"
            )
        status = self.overall_status
        if status == ReachabilityStatus.FULLY_REACHABLE:
            return (
                f"Expression CAN trigger via {len(self.fully_reachable_branch_ids)} "
                f"of {self.branch_count} branches"
            )
        if status == ReachabilityStatus.PARTIALLY_REACHABLE:
            return (
                f"Expression has {self.feasible_branch_count} feasible branches, "
                f"but some thresholds may be unreachable"
            )
        return f"Expression CANNOT trigger: all {self.branch_count} branches are infeasible"

    def to_summary(self) -> str:
        return (
            f"{self.status_emoji} {self.expression_id}: "
            f"{len(self.fully_reachable_branch_ids)}/{self.branch_count} branches fully reachable, "
            f"{self.total_knife_edge_count} knife-edge(s)"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "expressionId": self.expression_id,
            "branches": [b.to_dict() for b in self.branches],
            "branchCount": self.branch_count,
            "feasibleBranchCount": self.feasible_branch_count,
            "infeasibleBranchCount": self.infeasible_branch_count,
            "reachabilityByBranch": [r.to_dict() for r in self.reachability_by_branch],
            "hasFullyReachableBranch": self.has_fully_reachable_branch,
            "fullyReachableBranchIds": self.fully_reachable_branch_ids,
            "allKnifeEdges": [k.to_dict() for k in self.all_knife_edges],
            "feasibilityVolume": self.feasibility_volume,
            "gapAnalyses": [g.to_dict() for g in self.gap_analyses],
            "truncated": self.truncated,
            "totalPaths": self.total_paths,
            "overallStatus": self.overall_status.value,
            "analyzedAt": self.analyzed_at.isoformat(),
        }
