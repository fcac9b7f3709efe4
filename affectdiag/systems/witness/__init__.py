"""
affectdiag — Witness Search

Finds concrete states that satisfy (or nearly satisfy) an expression by
simulated annealing over the integer state space.
"""

from affectdiag.systems.witness.finder import SEARCH_AXES, WitnessStateFinder
from affectdiag.systems.witness.logic import (
    MAX_PENALTY,
    VAR_RESOLVERS,
    EvaluationContext,
    clause_penalty,
    evaluate,
    penalty,
    resolve_var,
)
from affectdiag.systems.witness.types import SearchResult, WitnessState

__all__ = [
    "MAX_PENALTY",
    "SEARCH_AXES",
    "VAR_RESOLVERS",
    "EvaluationContext",
    "SearchResult",
    "WitnessState",
    "WitnessStateFinder",
    "clause_penalty",
    "evaluate",
    "penalty",
    "resolve_var",
]
