"""
affectdiag — Prototype Gap Types
"""

from __future__ import annotations

from pydantic import Field

from affectdiag.primitives.common import DiagBaseModel, PrototypeType


class TargetSignatureEntry(DiagBaseModel):
    """Desired direction and importance of one axis for a branch."""

    model_config = {"frozen": True}

    axis: str
    direction: int = Field(ge=-1, le=1)
    importance: float = Field(ge=0.0, le=1.0)

    @property
    def desired_weight(self) -> float:
        return self.direction * self.importance


class NeighborMatch(DiagBaseModel):
    model_config = {"frozen": True}

    prototype_id: str
    type: PrototypeType
    weight_distance: float
    gate_distance: float
    combined_distance: float
    # Highest intensity the prototype can reach inside the target region
    best_intensity: float


class SuggestedPrototype(DiagBaseModel):
    model_config = {"frozen": True}

    weights: dict[str, float] = Field(default_factory=dict)
    gates: tuple[str, ...] = ()
    rationale: str = ""
    neighbors: tuple[str, ...] = ()


class GapAnalysis(DiagBaseModel):
    branch_id: str = ""
    gap_detected: bool = False
    nearest_distance: float | None = None
    k_nearest_neighbors: list[NeighborMatch] = Field(default_factory=list)
    target_signature: list[TargetSignatureEntry] = Field(default_factory=list)
    suggested_prototype: SuggestedPrototype | None = None
    gap_threshold: float = 0.5
    coverage_warning: str | None = None
    distance_percentile: float | None = None
    distance_z_score: float | None = None
    distance_context: str | None = None

    @property
    def best_intensity(self) -> float:
        return max((n.best_intensity for n in self.k_nearest_neighbors), default=0.0)
