"""
affectdiag — Prototype Gap Synthesis

Detects regions of axis space no prototype covers and proposes a blended
candidate prototype for them.
"""

from affectdiag.systems.gap.synthesizer import (
    GAP_DISTANCE_THRESHOLD,
    GAP_INTENSITY_THRESHOLD,
    K_NEIGHBORS,
    PrototypeGapSynthesizer,
    build_target_signature,
    signature_to_weights,
)
from affectdiag.systems.gap.types import (
    GapAnalysis,
    NeighborMatch,
    SuggestedPrototype,
    TargetSignatureEntry,
)

__all__ = [
    "GAP_DISTANCE_THRESHOLD",
    "GAP_INTENSITY_THRESHOLD",
    "K_NEIGHBORS",
    "GapAnalysis",
    "NeighborMatch",
    "PrototypeGapSynthesizer",
    "SuggestedPrototype",
    "TargetSignatureEntry",
    "build_target_signature",
    "signature_to_weights",
]
