"""
affectdiag — Expression Primitives

Expressions are JSON-logic shaped: ``{"id": ..., "prerequisites": [{"logic":
{...}}]}``. Helpers here read that shape defensively; a malformed
expression degrades to "no prerequisites" rather than raising.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from affectdiag.primitives.common import Direction, is_number

COMPARISON_OPERATORS: frozenset[str] = frozenset({">=", "<=", ">", "<", "=="})
EQUALITY_OPERATORS: frozenset[str] = frozenset({"==", "!="})
LOGICAL_OPERATORS: frozenset[str] = frozenset({"and", "or", "!", "not"})

# a OP b  <=>  b FLIPPED[OP] a
_FLIPPED: dict[str, str] = {">=": "<=", "<=": ">=", ">": "<", "<": ">", "==": "==", "!=": "!="}

# Variable-path roots
EMOTIONS_ROOT = "emotions"
SEXUAL_STATES_ROOT = "sexualStates"
SEXUAL_AROUSAL_ROOT = "sexualArousal"
MOOD_ROOTS: frozenset[str] = frozenset({"moodAxes", "mood"})
TRAITS_ROOT = "affectTraits"


@dataclass(frozen=True)
class Comparison:
    """``var <op> value`` with the variable always on the left."""

    var_path: str
    operator: str
    value: float


def get_prerequisites(expression: Any) -> list[dict[str, Any]]:
    if not isinstance(expression, Mapping):
        return []
    prerequisites = expression.get("prerequisites")
    if not isinstance(prerequisites, list):
        return []
    return [p for p in prerequisites if isinstance(p, Mapping)]


def get_logic(prerequisite: Mapping[str, Any]) -> Any:
    return prerequisite.get("logic")


def split_var_path(path: str) -> tuple[str, str | None]:
    root, _, rest = path.partition(".")
    return root, (rest or None)


def operator_of(node: Any) -> tuple[str, Any] | None:
    """The single ``(operator, args)`` pair of a logic node, if it has one."""
    if isinstance(node, Mapping) and len(node) == 1:
        op, args = next(iter(node.items()))
        return str(op), args
    return None


def var_of(node: Any) -> str | None:
    if isinstance(node, Mapping) and "var" in node:
        path = node["var"]
        if isinstance(path, list) and path:
            path = path[0]
        if isinstance(path, str) and path:
            return path
    return None


def extract_comparison(node: Any) -> Comparison | None:
    """Normalise ``{op: [var, number]}`` or ``{op: [number, var]}``."""
    parsed = operator_of(node)
    if parsed is None:
        return None
    op, args = parsed
    if op not in COMPARISON_OPERATORS | EQUALITY_OPERATORS:
        return None
    if not isinstance(args, list) or len(args) != 2:
        return None
    left, right = args
    if (path := var_of(left)) is not None and is_number(right):
        return Comparison(path, op, float(right))
    if (path := var_of(right)) is not None and is_number(left):
        return Comparison(path, _FLIPPED[op], float(left))
    return None


def direction_of(operator: str) -> Direction | None:
    if operator in (">=", ">"):
        return Direction.HIGH
    if operator in ("<=", "<"):
        return Direction.LOW
    return None


def describe_logic(node: Any, max_length: int = 120) -> str:
    """Compact human-readable rendering of a logic node."""
    text = _describe(node)
    if len(text) > max_length:
        return text[: max_length - 3] + "..."
    return text


def _describe(node: Any) -> str:
    if (path := var_of(node)) is not None:
        return path
    parsed = operator_of(node)
    if parsed is None:
        return repr(node) if not isinstance(node, str) else node
    op, args = parsed
    if op in ("and", "or") and isinstance(args, list):
        joined = f" {op.upper()} ".join(_describe(a) for a in args)
        return f"({joined})"
    if op in ("!", "not"):
        inner = args[0] if isinstance(args, list) and args else args
        return f"NOT {_describe(inner)}"
    if isinstance(args, list) and len(args) == 2:
        return f"{_describe(args[0])} {op} {_describe(args[1])}"
    return f"{op}(...)"
