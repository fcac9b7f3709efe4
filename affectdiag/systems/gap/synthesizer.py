"""
affectdiag — Prototype Gap Synthesizer

Answers "does any existing prototype point where this branch needs to go?".

A branch's axis intervals become a target signature (which way each axis
should lean and how tightly it is pinned), which becomes a desired weight
vector. Every prototype is scored by a combined distance: root-mean-square
weight distance blended with the fraction of target axes its gates
contradict. When even the nearest prototype is far away and none of the k
nearest can reach a useful intensity inside the target region, the
neighbours are blended by inverse distance into a candidate prototype.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence

import numpy as np
import structlog

from affectdiag.clients.registry import PrototypeCatalog, require_registry
from affectdiag.config import GapConfig
from affectdiag.primitives.axes import canonical_axis, normalized_range
from affectdiag.primitives.common import PrototypeType
from affectdiag.primitives.interval import Interval
from affectdiag.primitives.prototype import GateConstraint, WeightedPrototype
from affectdiag.systems.gap.types import (
    GapAnalysis,
    NeighborMatch,
    SuggestedPrototype,
    TargetSignatureEntry,
)

logger = structlog.get_logger().bind(system="gap", component="synthesizer")

GAP_DISTANCE_THRESHOLD: float = 0.5
GAP_INTENSITY_THRESHOLD: float = 0.3
K_NEIGHBORS: int = 5

# Offset that keeps inverse-distance blending finite for exact matches
_BLEND_OFFSET = 0.01
_DIRECTION_DEADBAND = 1e-9


def build_target_signature(intervals: Mapping[str, Interval]) -> list[TargetSignatureEntry]:
    signature: list[TargetSignatureEntry] = []
    for axis, interval in intervals.items():
        mid = interval.midpoint()
        direction = 0 if abs(mid) < _DIRECTION_DEADBAND else (1 if mid > 0 else -1)
        importance = max(0.0, min(1.0, 1.0 - interval.width() / 2))
        signature.append(
            TargetSignatureEntry(axis=canonical_axis(axis), direction=direction, importance=importance)
        )
    return signature


def signature_to_weights(signature: Iterable[TargetSignatureEntry]) -> dict[str, float]:
    return {entry.axis: entry.desired_weight for entry in signature}


def weight_distance(desired: Mapping[str, float], actual: Mapping[str, float]) -> float:
    """Euclidean distance over the union of axes, normalised by axis count."""
    axes = sorted(set(desired) | set(actual))
    if not axes:
        return 0.0
    a = np.array([desired.get(axis, 0.0) for axis in axes], dtype=np.float64)
    b = np.array([actual.get(axis, 0.0) for axis in axes], dtype=np.float64)
    return float(np.linalg.norm(a - b) / math.sqrt(len(axes)))


def gate_distance(target: Mapping[str, Interval], gates: Sequence[GateConstraint]) -> float:
    """Fraction of target axes whose range a prototype gate rules out."""
    if not gates or not target:
        return 0.0
    conflicts = 0
    for axis, wanted in target.items():
        if wanted.is_empty():
            continue
        for gate in gates:
            if gate.axis == canonical_axis(axis) and gate.apply_to(wanted).is_empty():
                conflicts += 1
                break
    return conflicts / len(target)


class PrototypeGapSynthesizer:
    """
    Nearest-neighbour coverage check over the prototype registry.

    Builds a fresh ``PrototypeCatalog`` per call so registry changes are
    picked up; the prototype-to-prototype distance distribution used for
    calibration is cached per prototype set.
    """

    def __init__(self, data_registry: object, config: GapConfig | None = None) -> None:
        require_registry(data_registry, "PrototypeGapSynthesizer")
        self._registry = data_registry
        self._config = config or GapConfig()
        self._distance_stats: dict[tuple[str, ...], tuple[float, float, np.ndarray]] = {}
        self._log = logger

    # ─── Public API ───────────────────────────────────────────────

    def detect_gap(
        self,
        intervals: Mapping[str, Interval],
        branch_id: str = "",
        types: Sequence[PrototypeType] = (PrototypeType.EMOTION, PrototypeType.SEXUAL),
    ) -> GapAnalysis:
        cfg = self._config
        catalog = PrototypeCatalog(self._registry)  # type: ignore[arg-type]
        candidates = [p for t in types for p in catalog.prototypes(t).values()]

        if not candidates:
            return GapAnalysis(
                branch_id=branch_id,
                gap_threshold=cfg.distance_threshold,
                coverage_warning="No prototypes available for gap analysis",
            )

        signature = build_target_signature(intervals)
        desired = signature_to_weights(signature)

        matches = sorted(
            (self._score(prototype, desired, intervals) for prototype in candidates),
            key=lambda m: m.combined_distance,
        )
        nearest = matches[: cfg.k_neighbors]
        nearest_distance = nearest[0].combined_distance
        best_intensity = max(m.best_intensity for m in nearest)

        gap_detected = (
            nearest_distance > cfg.distance_threshold
            and best_intensity < cfg.intensity_threshold
        )

        analysis = GapAnalysis(
            branch_id=branch_id,
            gap_detected=gap_detected,
            nearest_distance=nearest_distance,
            k_nearest_neighbors=nearest,
            target_signature=signature,
            gap_threshold=cfg.distance_threshold,
        )
        self._calibrate(analysis, candidates)

        if gap_detected:
            analysis.coverage_warning = (
                f"No prototype within distance {cfg.distance_threshold:.2f}. "
                f"Nearest is {nearest[0].prototype_id} at {nearest_distance:.2f}."
            )
            by_id = {p.id: p for p in candidates}
            analysis.suggested_prototype = self.synthesize(nearest, by_id, intervals)
            self._log.info(
                "prototype_gap_detected",
                branch=branch_id,
                nearest=nearest[0].prototype_id,
                distance=round(nearest_distance, 3),
                best_intensity=round(best_intensity, 3),
            )
        return analysis

    def synthesize(
        self,
        neighbors: Sequence[NeighborMatch],
        prototypes: Mapping[str, WeightedPrototype],
        intervals: Mapping[str, Interval],
    ) -> SuggestedPrototype:
        """Inverse-distance blend of the neighbours' weights, gated to the target region."""
        blend: dict[str, float] = {}
        total = 0.0
        for neighbor in neighbors:
            w = 1.0 / (neighbor.combined_distance + _BLEND_OFFSET)
            total += w
            prototype = prototypes.get(neighbor.prototype_id)
            if prototype is None:
                continue
            for axis, value in prototype.weights.items():
                blend[axis] = blend.get(axis, 0.0) + value * w

        weights = {
            axis: round(value / total, 3)
            for axis, value in sorted(blend.items())
            if total > 0 and abs(value / total) >= self._config.min_weight
        }

        gates: list[str] = []
        for axis, interval in intervals.items():
            if interval.is_empty():
                continue
            floor, ceiling = normalized_range(axis)
            if interval.min > floor:
                gates.append(f"{axis} >= {interval.min:.2f}")
            if interval.max < ceiling:
                gates.append(f"{axis} <= {interval.max:.2f}")

        cited = ", ".join(f"{n.prototype_id} (d={n.combined_distance:.2f})" for n in neighbors)
        return SuggestedPrototype(
            weights=weights,
            gates=tuple(gates),
            rationale=(
                f"Synthesized from {len(neighbors)} nearest neighbors using "
                f"distance-weighted averaging: {cited}"
            ),
            neighbors=tuple(n.prototype_id for n in neighbors),
        )

    # ─── Scoring ──────────────────────────────────────────────────

    def _score(
        self,
        prototype: WeightedPrototype,
        desired: Mapping[str, float],
        intervals: Mapping[str, Interval],
    ) -> NeighborMatch:
        gates = prototype.parsed_gates
        w_dist = weight_distance(desired, prototype.weights)
        g_dist = gate_distance(intervals, gates)
        share = self._config.weight_distance_share
        return NeighborMatch(
            prototype_id=prototype.id,
            type=prototype.type,
            weight_distance=w_dist,
            gate_distance=g_dist,
            combined_distance=share * w_dist + (1.0 - share) * g_dist,
            best_intensity=self._best_intensity(prototype, gates, intervals),
        )

    @staticmethod
    def _best_intensity(
        prototype: WeightedPrototype,
        gates: Sequence[GateConstraint],
        intervals: Mapping[str, Interval],
    ) -> float:
        """Max intensity inside the target region with the prototype's own gates applied."""
        region = {axis: iv for axis, iv in intervals.items() if not iv.is_empty()}
        for gate in gates:
            current = region.get(gate.axis) or Interval.for_axis(gate.axis)
            narrowed = gate.apply_to(current)
            if narrowed.is_empty():
                return 0.0
            region[gate.axis] = narrowed
        return prototype.intensity_bounds(region)[1]

    # ─── Calibration ──────────────────────────────────────────────

    def _calibrate(self, analysis: GapAnalysis, prototypes: Sequence[WeightedPrototype]) -> None:
        """Place the nearest distance within the prototype nearest-neighbour distribution."""
        if analysis.nearest_distance is None or len(prototypes) < 2:
            return
        mean, std, sorted_distances = self._distance_distribution(prototypes)
        value = analysis.nearest_distance
        percentile = float(np.searchsorted(sorted_distances, value, side="right")) / len(
            sorted_distances
        )
        z_score = (value - mean) / std if std > 0 else 0.0

        analysis.distance_percentile = percentile
        analysis.distance_z_score = z_score
        analysis.distance_context = (
            f"Distance {value:.2f} is farther than {round(percentile * 100)}% of "
            f"prototype nearest-neighbor distances (z={z_score:.2f})."
        )

    def _distance_distribution(
        self, prototypes: Sequence[WeightedPrototype]
    ) -> tuple[float, float, np.ndarray]:
        key = tuple(sorted(f"{p.type.value}:{p.id}" for p in prototypes))
        cached = self._distance_stats.get(key)
        if cached is not None:
            return cached

        share = self._config.weight_distance_share
        ranges = [self._gate_ranges(p) for p in prototypes]
        gates = [p.parsed_gates for p in prototypes]
        nearest: list[float] = []
        for i, a in enumerate(prototypes):
            best = math.inf
            for j, b in enumerate(prototypes):
                if i == j:
                    continue
                g = (gate_distance(ranges[i], gates[j]) + gate_distance(ranges[j], gates[i])) / 2
                d = share * weight_distance(a.weights, b.weights) + (1.0 - share) * g
                best = min(best, d)
            nearest.append(best)

        arr = np.sort(np.array(nearest, dtype=np.float64))
        stats = (float(arr.mean()), float(arr.std()), arr)
        self._distance_stats[key] = stats
        return stats

    @staticmethod
    def _gate_ranges(prototype: WeightedPrototype) -> dict[str, Interval]:
        ranges: dict[str, Interval] = {}
        for gate in prototype.parsed_gates:
            current = ranges.get(gate.axis) or Interval.for_axis(gate.axis)
            ranges[gate.axis] = gate.apply_to(current)
        return ranges
