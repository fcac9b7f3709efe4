"""
affectdiag — Path-Sensitive Reachability Analyzer

Static analysis of an expression's prerequisite tree:

1. The prerequisite list is an implicit AND. OR nodes fork the analysis,
   so every conjunctive path through the tree becomes a branch.
2. On each branch, prototypes compared with ``>=``/``>`` must be active, so
   their gates are folded into per-axis intervals (together with any direct
   mood/trait comparisons). An empty interval is a gate conflict and the
   branch is infeasible.
3. For every prototype threshold on the branch, the best and worst
   intensity achievable inside those intervals decides reachability.

Axes a branch never constrains range over their full legal range.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from affectdiag.clients.registry import PrototypeCatalog, require_registry
from affectdiag.config import ReachabilityConfig
from affectdiag.primitives.axes import (
    AFFECT_TRAITS,
    MOOD_AXES,
    SEXUAL_AROUSAL_AXIS,
    normalize,
    normalized_range,
)
from affectdiag.primitives.common import DiagBaseModel, Direction, PrototypeType
from affectdiag.primitives.expression import (
    EMOTIONS_ROOT,
    MOOD_ROOTS,
    SEXUAL_AROUSAL_ROOT,
    SEXUAL_STATES_ROOT,
    TRAITS_ROOT,
    Comparison,
    direction_of,
    extract_comparison,
    get_logic,
    get_prerequisites,
    operator_of,
    split_var_path,
)
from affectdiag.primitives.interval import Interval
from affectdiag.primitives.prototype import GateConstraint
from affectdiag.systems.feasibility.gate_analyzer import GateConstraintAnalyzer
from affectdiag.systems.feasibility.types import GateAnalysisResult, GateContribution
from affectdiag.systems.gap.synthesizer import PrototypeGapSynthesizer
from affectdiag.systems.reachability.types import (
    AnalysisBranch,
    BranchReachability,
    KnifeEdge,
    PathSensitiveResult,
)

logger = structlog.get_logger().bind(system="reachability", component="analyzer")

SINGLE_PATH_DESCRIPTION = "Single path (no OR branches)"
# Contributor label for constraints written directly in the expression
EXPRESSION_SOURCE = "expression"

_PROTOTYPE_ROOTS: dict[str, PrototypeType] = {
    EMOTIONS_ROOT: PrototypeType.EMOTION,
    SEXUAL_STATES_ROOT: PrototypeType.SEXUAL,
}


class VolumeInterpretation(DiagBaseModel):
    model_config = {"frozen": True}

    category: str
    description: str
    emoji: str


# ─── Internal Structures ──────────────────────────────────────────


@dataclass(frozen=True)
class ThresholdRequirement:
    prototype_id: str
    type: PrototypeType
    operator: str
    threshold: float
    direction: Direction


@dataclass(frozen=True)
class AxisRequirement:
    axis: str
    operator: str
    value: float
    source: str


@dataclass
class _Node:
    kind: str  # "root" | "and" | "or" | "leaf"
    children: list[_Node] = field(default_factory=list)
    comparison: Comparison | None = None

    def prototypes(self) -> list[str]:
        if self.kind == "leaf":
            req = _prototype_requirement(self.comparison)
            return [req.prototype_id] if req is not None else []
        return [p for child in self.children for p in child.prototypes()]


@dataclass
class _Path:
    choices: tuple[int, ...] = ()
    descriptors: tuple[str, ...] = ()
    leaves: tuple[_Node, ...] = ()

    @property
    def branch_id(self) -> str:
        return ".".join(["0", *(str(c) for c in self.choices)])

    @property
    def description(self) -> str:
        return " → ".join(self.descriptors) if self.descriptors else SINGLE_PATH_DESCRIPTION


def _prototype_requirement(comparison: Comparison | None) -> ThresholdRequirement | None:
    if comparison is None:
        return None
    root, key = split_var_path(comparison.var_path)
    prototype_type = _PROTOTYPE_ROOTS.get(root)
    direction = direction_of(comparison.operator)
    if prototype_type is None or key is None or direction is None:
        return None
    return ThresholdRequirement(
        prototype_id=key,
        type=prototype_type,
        operator=comparison.operator,
        threshold=comparison.value,
        direction=direction,
    )


def _axis_requirement(comparison: Comparison | None) -> AxisRequirement | None:
    """Direct comparisons on axes, converted to the normalised scale."""
    if comparison is None or comparison.operator == "!=":
        return None
    root, key = split_var_path(comparison.var_path)
    if root in MOOD_ROOTS and key in MOOD_AXES:
        axis, value = key, normalize(comparison.value)
    elif root == TRAITS_ROOT and key in AFFECT_TRAITS:
        axis, value = key, normalize(comparison.value)
    elif root == SEXUAL_AROUSAL_ROOT and key is None:
        axis, value = SEXUAL_AROUSAL_AXIS, comparison.value
    else:
        return None
    return AxisRequirement(
        axis=axis,
        operator=comparison.operator,
        value=value,
        source=f"{comparison.var_path} {comparison.operator} {comparison.value:g}",
    )


# ─── Analyzer ─────────────────────────────────────────────────────


class PathSensitiveAnalyzer:
    """
    Branch-by-branch reachability over an expression's AND/OR tree.

    Stateless across calls: each ``analyze`` builds a fresh prototype
    catalog, branch list and result.
    """

    def __init__(
        self,
        data_registry: Any,
        config: ReachabilityConfig | None = None,
        gap_synthesizer: PrototypeGapSynthesizer | None = None,
    ) -> None:
        require_registry(data_registry, "PathSensitiveAnalyzer")
        self._registry = data_registry
        self._config = config or ReachabilityConfig()
        self._gap_synthesizer = gap_synthesizer
        self._gate_analyzer = GateConstraintAnalyzer()
        self._log = logger

    def analyze(
        self,
        expression: Mapping[str, Any],
        max_branches: int | None = None,
        knife_edge_threshold: float | None = None,
        compute_volume: bool | None = None,
    ) -> PathSensitiveResult:
        if not isinstance(expression, Mapping) or not expression.get("id"):
            raise ValueError("PathSensitiveAnalyzer requires expression with id")

        cfg = self._config
        max_branches = cfg.max_branches if max_branches is None else max_branches
        threshold = cfg.knife_edge_threshold if knife_edge_threshold is None else knife_edge_threshold
        compute_volume = cfg.compute_volume if compute_volume is None else compute_volume

        expression_id = str(expression["id"])
        self._log.debug("reachability_analysis_started", expression=expression_id)

        catalog = PrototypeCatalog(self._registry)
        tree = self._build_tree(get_prerequisites(expression))
        paths, total_paths = self._enumerate_branches(tree, max_branches, expression_id)

        branches: list[AnalysisBranch] = []
        reachability: list[BranchReachability] = []
        gap_analyses = []

        for path in paths:
            branch, gates = self._analyze_branch(path, catalog, threshold)
            entries = self._compute_reachability(branch, path, catalog, gates)
            branches.append(branch)
            reachability.extend(entries)

            needs_gap_check = branch.is_infeasible or any(
                r.is_blocking and r.direction == Direction.HIGH for r in entries
            )
            if self._gap_synthesizer is not None and cfg.detect_gaps and needs_gap_check:
                gap_analyses.append(
                    self._gap_synthesizer.detect_gap(gates.intervals, branch_id=branch.branch_id)
                )

        volume = self._compute_feasibility_volume(branches) if compute_volume else None

        result = PathSensitiveResult(
            expression_id=expression_id,
            branches=branches,
            reachability_by_branch=reachability,
            feasibility_volume=volume,
            gap_analyses=gap_analyses,
            truncated=total_paths > len(paths),
            total_paths=total_paths,
        )
        self._log.debug(
            "reachability_analysis_complete",
            expression=expression_id,
            branches=result.branch_count,
            feasible=result.feasible_branch_count,
            checks=len(reachability),
            status=result.overall_status.value,
        )
        return result

    # ─── Tree ─────────────────────────────────────────────────────

    def _build_tree(self, prerequisites: list[dict[str, Any]]) -> _Node:
        return _Node(kind="root", children=[self._build_node(get_logic(p)) for p in prerequisites])

    def _build_node(self, logic: Any) -> _Node:
        parsed = operator_of(logic)
        if parsed is not None and parsed[0] in ("and", "or") and isinstance(parsed[1], list):
            return _Node(kind=parsed[0], children=[self._build_node(c) for c in parsed[1]])
        return _Node(kind="leaf", comparison=extract_comparison(logic))

    def _enumerate_branches(
        self, tree: _Node, max_branches: int, expression_id: str
    ) -> tuple[list[_Path], int]:
        """Paths to analyse, capped at max_branches, and the uncapped path count."""
        paths = self._enumerate(tree, _Path())
        total = len(paths)
        if len(paths) > max_branches:
            self._log.warning(
                "branch_limit_reached",
                expression=expression_id,
                limit=max_branches,
                found=len(paths),
            )
            paths = paths[:max_branches]
        if not paths:
            # An OR with no disjuncts eliminates every path; fall back to one branch
            paths = [_Path(leaves=tuple(self._collect_leaves(tree)))]
            total = 1
        return paths, total

    def _enumerate(self, node: _Node, path: _Path) -> list[_Path]:
        if node.kind == "leaf":
            return [_Path(path.choices, path.descriptors, (*path.leaves, node))]

        if node.kind in ("and", "root"):
            paths = [path]
            for child in node.children:
                paths = [extended for p in paths for extended in self._enumerate(child, p)]
            return paths

        forks: list[_Path] = []
        for i, child in enumerate(node.children):
            fork = _Path(
                (*path.choices, i),
                (*path.descriptors, self._describe_node(child)),
                path.leaves,
            )
            forks.extend(self._enumerate(child, fork))
        return forks

    def _collect_leaves(self, node: _Node) -> list[_Node]:
        if node.kind == "leaf":
            return [node]
        return [leaf for child in node.children for leaf in self._collect_leaves(child)]

    @staticmethod
    def _describe_node(node: _Node) -> str:
        if node.kind == "leaf":
            prototypes = node.prototypes()
            if prototypes:
                return f"{'/'.join(prototypes)} path"
            axis_req = _axis_requirement(node.comparison)
            return f"{axis_req.axis} condition" if axis_req else "condition"
        if node.kind == "and":
            prototypes = node.prototypes()
            if prototypes:
                more = "+..." if len(prototypes) > 2 else ""
                return f"{'+'.join(prototypes[:2])}{more} path"
            return "AND block"
        return "nested OR"

    # ─── Branch Analysis ──────────────────────────────────────────

    def _analyze_branch(
        self,
        path: _Path,
        catalog: PrototypeCatalog,
        knife_edge_threshold: float,
    ) -> tuple[AnalysisBranch, GateAnalysisResult]:
        requirements = [r for leaf in path.leaves if (r := _prototype_requirement(leaf.comparison))]
        axis_requirements = [a for leaf in path.leaves if (a := _axis_requirement(leaf.comparison))]

        required = list(dict.fromkeys(r.prototype_id for r in requirements))
        high = [r for r in requirements if r.direction == Direction.HIGH]
        active = list(dict.fromkeys(r.prototype_id for r in high))
        inactive = [
            p
            for p in dict.fromkeys(r.prototype_id for r in requirements if r.direction == Direction.LOW)
            if p not in active
        ]

        base: dict[str, Interval] = {}
        base_sources: dict[str, list[GateContribution]] = {}
        for req in axis_requirements:
            current = base.get(req.axis) or Interval.for_axis(req.axis)
            base[req.axis] = current.apply_constraint(req.operator, req.value)
            base_sources.setdefault(req.axis, []).append(
                GateContribution(prototype_id=EXPRESSION_SOURCE, gate=req.source)
            )

        active_prototypes = []
        seen: set[tuple[str, PrototypeType]] = set()
        for req in high:
            key = (req.prototype_id, req.type)
            if key in seen:
                continue
            seen.add(key)
            prototype = catalog.get(req.prototype_id, req.type)
            if prototype is None:
                self._log.debug("prototype_not_found", prototype=req.prototype_id, type=req.type.value)
                continue
            active_prototypes.append(prototype)

        gates = self._gate_analyzer.analyze(active_prototypes, base, base_sources)
        knife_edges = [
            KnifeEdge(
                axis=axis,
                min=interval.min,
                max=interval.max,
                contributing_prototypes=gates.contributing_prototypes(axis),
                contributing_gates=gates.contributing_gates(axis),
            )
            for axis, interval in gates.intervals.items()
            if not interval.is_empty() and interval.width() <= knife_edge_threshold
        ]

        branch = (
            AnalysisBranch(
                branch_id=path.branch_id,
                description=path.description,
                required_prototypes=tuple(required),
            )
            .with_prototype_partitioning(active, inactive)
            .with_axis_intervals(gates.intervals)
            .with_conflicts(gates.conflicts)
            .with_knife_edges(knife_edges)
        )
        return branch, gates

    def _compute_reachability(
        self,
        branch: AnalysisBranch,
        path: _Path,
        catalog: PrototypeCatalog,
        gates: GateAnalysisResult,
    ) -> list[BranchReachability]:
        entries: list[BranchReachability] = []
        seen: set[ThresholdRequirement] = set()

        for leaf in path.leaves:
            req = _prototype_requirement(leaf.comparison)
            if req is None or req in seen:
                continue
            seen.add(req)

            prototype = catalog.get(req.prototype_id, req.type)
            relevant_axes: set[str] = set()

            if branch.is_infeasible:
                min_possible, max_possible = 1.0, 0.0
            elif prototype is None:
                min_possible, max_possible = 0.0, 1.0
            else:
                relevant_axes = set(prototype.weights) | prototype.gated_axes
                min_possible, max_possible = prototype.intensity_bounds(gates.intervals)
                if req.direction == Direction.LOW and self._can_be_inactive(
                    prototype.parsed_gates, gates.intervals
                ):
                    min_possible = 0.0

            entries.append(
                BranchReachability(
                    branch_id=branch.branch_id,
                    branch_description=branch.description,
                    prototype_id=req.prototype_id,
                    type=req.type,
                    threshold=req.threshold,
                    direction=req.direction,
                    operator=req.operator,
                    min_possible=min_possible,
                    max_possible=max_possible,
                    knife_edges=tuple(k for k in branch.knife_edges if k.axis in relevant_axes),
                )
            )
        return entries

    @staticmethod
    def _can_be_inactive(
        prototype_gates: list[GateConstraint],
        intervals: Mapping[str, Interval],
    ) -> bool:
        """A gated prototype can be switched off if any of its gates can fail."""
        return any(
            gate.can_fail_within(intervals.get(gate.axis) or Interval.for_axis(gate.axis))
            for gate in prototype_gates
        )

    # ─── Feasibility Volume ───────────────────────────────────────

    def _compute_feasibility_volume(self, branches: list[AnalysisBranch]) -> float:
        """Largest normalised box volume over feasible branches (0 when none)."""
        best = 0.0
        for branch in branches:
            if branch.is_infeasible:
                continue
            best = max(best, self._branch_volume(branch.axis_intervals))
        return best

    @staticmethod
    def _branch_volume(intervals: Mapping[str, Interval]) -> float:
        volume = 1.0
        for axis, interval in intervals.items():
            if interval.is_empty():
                return 0.0
            lo, hi = normalized_range(axis)
            share = interval.width() / (hi - lo)
            # Axes left at (almost) their full range do not shrink the volume
            if share < 0.99:
                volume *= share
        return volume

    @staticmethod
    def interpret_volume(volume: float) -> VolumeInterpretation:
        if volume == 0:
            return VolumeInterpretation(
                category="impossible",
                description="Cannot trigger - constraints are contradictory",
                emoji="🔴",
            )
        if volume < 0.001:
            return VolumeInterpretation(
                category="extremely_unlikely",
                description="Extremely unlikely to trigger naturally (<0.1% of state space)",
                emoji="🟠",
            )
        if volume < 0.01:
            return VolumeInterpretation(
                category="very_unlikely",
                description="Very unlikely to trigger naturally (0.1-1% of state space)",
                emoji="🟡",
            )
        if volume < 0.1:
            return VolumeInterpretation(
                category="unlikely",
                description="Unlikely to trigger naturally (1-10% of state space)",
                emoji="🟡",
            )
        if volume < 0.5:
            return VolumeInterpretation(
                category="moderate",
                description="Moderate trigger likelihood (10-50% of state space)",
                emoji="🟢",
            )
        return VolumeInterpretation(
            category="likely",
            description="Likely to trigger naturally (>50% of state space)",
            emoji="🟢",
        )
