"""
affectdiag — JSON-Logic Evaluation & Penalties

Evaluates prerequisite logic against one concrete state and measures how
far a failing clause is from passing. Variable paths are resolved through a
registry keyed by the path root (``emotions``, ``moodAxes``, ...), with an
explicit fallback entry for roots nothing registered.

Nothing here raises on bad input: an unknown operator or unresolvable
variable makes the clause false and gives it the maximum penalty.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from affectdiag.clients.registry import PrototypeCatalog
from affectdiag.primitives.axes import (
    AFFECT_TRAITS,
    MOOD_AXES,
    RAW_SCALE,
    SEXUAL_AROUSAL_AXIS,
    compute_sexual_arousal,
    normalize,
)
from affectdiag.primitives.common import PrototypeType, is_number
from affectdiag.primitives.expression import (
    EMOTIONS_ROOT,
    SEXUAL_AROUSAL_ROOT,
    SEXUAL_STATES_ROOT,
    TRAITS_ROOT,
    operator_of,
    split_var_path,
    var_of,
)

logger = structlog.get_logger("affectdiag.systems.witness.logic")

MAX_PENALTY: float = 10.0
# Smallest penalty a failing clause can carry, so "fails" never scores as "passes"
MIN_FAILING_PENALTY: float = 1e-6
STRICT_MARGIN: float = 1e-3

FALLBACK_ROOT = "*"


class EvaluationContext:
    """
    Read-only view of one raw state for expression evaluation.

    Prototype intensities are computed on first use and cached for the
    lifetime of the context (one candidate state).
    """

    def __init__(self, axis_values: Mapping[str, int], catalog: PrototypeCatalog) -> None:
        self._raw = axis_values
        self._catalog = catalog
        self._normalized = {axis: normalize(v) for axis, v in axis_values.items()}
        self._sexual_arousal = compute_sexual_arousal(
            axis_values.get("sex_excitation", 0),
            axis_values.get("sex_inhibition", 0),
            axis_values.get("baseline_libido", 0),
        )
        self._normalized[SEXUAL_AROUSAL_AXIS] = self._sexual_arousal
        self._intensities: dict[tuple[PrototypeType, str], float | None] = {}

    @property
    def sexual_arousal(self) -> float:
        return self._sexual_arousal

    def raw(self, axis: str) -> float | None:
        value = self._raw.get(axis)
        return float(value) if value is not None else None

    def intensity(self, prototype_type: PrototypeType, prototype_id: str) -> float | None:
        key = (prototype_type, prototype_id)
        if key not in self._intensities:
            prototype = self._catalog.get(prototype_id, prototype_type)
            self._intensities[key] = (
                prototype.intensity(self._normalized) if prototype is not None else None
            )
        return self._intensities[key]

    def to_dict(self) -> dict[str, Any]:
        """Materialise the full variable namespace (every prototype evaluated)."""
        mood = {axis: self._raw[axis] for axis in MOOD_AXES if axis in self._raw}
        return {
            "moodAxes": mood,
            "mood": dict(mood),
            "affectTraits": {a: self._raw[a] for a in AFFECT_TRAITS if a in self._raw},
            "sexualArousal": self._sexual_arousal,
            "emotions": {
                pid: self.intensity(PrototypeType.EMOTION, pid)
                for pid in self._catalog.prototypes(PrototypeType.EMOTION)
            },
            "sexualStates": {
                pid: self.intensity(PrototypeType.SEXUAL, pid)
                for pid in self._catalog.prototypes(PrototypeType.SEXUAL)
            },
        }


# ─── Variable Resolution ──────────────────────────────────────────

Resolver = Callable[[EvaluationContext, str | None], float | None]


def _resolve_mood(ctx: EvaluationContext, key: str | None) -> float | None:
    return ctx.raw(key) if key in MOOD_AXES else None


def _resolve_trait(ctx: EvaluationContext, key: str | None) -> float | None:
    return ctx.raw(key) if key in AFFECT_TRAITS else None


def _resolve_emotion(ctx: EvaluationContext, key: str | None) -> float | None:
    return ctx.intensity(PrototypeType.EMOTION, key) if key else None


def _resolve_sexual_state(ctx: EvaluationContext, key: str | None) -> float | None:
    return ctx.intensity(PrototypeType.SEXUAL, key) if key else None


def _resolve_sexual_arousal(ctx: EvaluationContext, key: str | None) -> float | None:
    return ctx.sexual_arousal if key is None else None


def _resolve_unknown(ctx: EvaluationContext, key: str | None) -> float | None:
    return None


VAR_RESOLVERS: dict[str, Resolver] = {
    "moodAxes": _resolve_mood,
    "mood": _resolve_mood,
    TRAITS_ROOT: _resolve_trait,
    EMOTIONS_ROOT: _resolve_emotion,
    SEXUAL_STATES_ROOT: _resolve_sexual_state,
    SEXUAL_AROUSAL_ROOT: _resolve_sexual_arousal,
    FALLBACK_ROOT: _resolve_unknown,
}

# Raw-scale roots; penalties divide by this so all shortfalls are comparable
_RAW_SCALE_ROOTS: frozenset[str] = frozenset({"moodAxes", "mood", TRAITS_ROOT})


def resolve_var(ctx: EvaluationContext, path: str) -> float | None:
    root, key = split_var_path(path)
    resolver = VAR_RESOLVERS.get(root, VAR_RESOLVERS[FALLBACK_ROOT])
    return resolver(ctx, key)


def _operand(ctx: EvaluationContext, node: Any) -> tuple[float | None, float]:
    """(value, scale) of a comparison operand."""
    if (path := var_of(node)) is not None:
        root, _ = split_var_path(path)
        scale = RAW_SCALE if root in _RAW_SCALE_ROOTS else 1.0
        return resolve_var(ctx, path), scale
    if is_number(node):
        return float(node), 1.0
    return None, 1.0


# ─── Evaluation ───────────────────────────────────────────────────

_COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
}


def evaluate(node: Any, ctx: EvaluationContext) -> bool:
    parsed = operator_of(node)
    if parsed is None:
        return False
    op, args = parsed

    if op == "and":
        return isinstance(args, list) and all(evaluate(a, ctx) for a in args)
    if op == "or":
        return isinstance(args, list) and any(evaluate(a, ctx) for a in args)
    if op == "var":
        value, _ = _operand(ctx, node)
        return value is not None and value != 0
    if op in ("!", "not"):
        inner = args[0] if isinstance(args, list) and len(args) == 1 else args
        if operator_of(inner) is None:
            return False
        # An unresolvable variable is malformed, so negating it must not pass
        if var_of(inner) is not None and _operand(ctx, inner)[0] is None:
            return False
        return not evaluate(inner, ctx)
    if op in _COMPARATORS:
        if not isinstance(args, list) or len(args) != 2:
            return False
        (left, _), (right, _) = _operand(ctx, args[0]), _operand(ctx, args[1])
        if left is None or right is None:
            return False
        return _COMPARATORS[op](left, right)

    logger.debug("unknown_logic_operator", operator=op)
    return False


def penalty(node: Any, ctx: EvaluationContext) -> float:
    """
    Distance from satisfying ``node``: 0.0 when it holds.

    Comparisons score their shortfall on the normalised scale; AND sums its
    children, OR takes the cheapest child.
    """
    parsed = operator_of(node)
    if parsed is None:
        return MAX_PENALTY
    op, args = parsed

    if op == "and":
        if not isinstance(args, list):
            return MAX_PENALTY
        return min(MAX_PENALTY, sum(penalty(a, ctx) for a in args))
    if op == "or":
        if not isinstance(args, list) or not args:
            return MAX_PENALTY
        return min(penalty(a, ctx) for a in args)
    if op in ("!", "not", "var"):
        if var_of(node) is not None and _operand(ctx, node)[0] is None:
            return MAX_PENALTY
        return 0.0 if evaluate(node, ctx) else 1.0
    if op in _COMPARATORS:
        return _comparison_penalty(op, args, ctx)
    return MAX_PENALTY


def _comparison_penalty(op: str, args: Any, ctx: EvaluationContext) -> float:
    if not isinstance(args, list) or len(args) != 2:
        return MAX_PENALTY
    (left, left_scale), (right, right_scale) = _operand(ctx, args[0]), _operand(ctx, args[1])
    if left is None or right is None:
        return MAX_PENALTY
    scale = max(left_scale, right_scale)
    diff = (left - right) / scale

    if op == ">=":
        return max(0.0, -diff)
    if op == "<=":
        return max(0.0, diff)
    if op == ">":
        return 0.0 if diff > 0 else -diff + STRICT_MARGIN
    if op == "<":
        return 0.0 if diff < 0 else diff + STRICT_MARGIN
    if op == "==":
        return abs(diff)
    return STRICT_MARGIN if diff == 0 else 0.0


def clause_penalty(logic: Any, ctx: EvaluationContext) -> float:
    """Penalty of one top-level prerequisite, strictly positive iff it fails."""
    if logic is None:
        return 0.0
    if evaluate(logic, ctx):
        return 0.0
    return max(MIN_FAILING_PENALTY, penalty(logic, ctx))
