"""
affectdiag — Z3 Satisfiability Bridge

Exact confirmation of static and stochastic findings. Every axis is an
integer Z3 variable on its raw display scale, so a ``sat`` model is directly
a witness state. Each referenced prototype's intensity is encoded as

    If(gates, clamp01(Σ w·(x / 100) / Σ|w|), 0)

and each top-level prerequisite is asserted as a tracked assumption named
``Clause N``; an ``unsat`` answer carries the clauses that conflict.

Uses z3-solver Python bindings directly. Constructs the encoder does not
understand make the check return ``unknown`` rather than guess.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

import structlog

from affectdiag.clients.registry import PrototypeCatalog, require_registry
from affectdiag.primitives.axes import (
    AFFECT_TRAITS,
    MOOD_AXES,
    RAW_RANGES,
    RAW_SCALE,
    SEXUAL_AROUSAL_AXIS,
)
from affectdiag.primitives.common import GateOperator, PrototypeType, is_number
from affectdiag.primitives.expression import (
    EMOTIONS_ROOT,
    MOOD_ROOTS,
    SEXUAL_AROUSAL_ROOT,
    SEXUAL_STATES_ROOT,
    TRAITS_ROOT,
    get_logic,
    get_prerequisites,
    operator_of,
    split_var_path,
    var_of,
)
from affectdiag.primitives.prototype import EQUALITY_TOLERANCE, WeightedPrototype
from affectdiag.systems.smt.types import SmtCheckResult, SmtStatus

logger = structlog.get_logger().bind(system="smt", component="z3_bridge")

_PROTOTYPE_ROOTS: dict[str, PrototypeType] = {
    EMOTIONS_ROOT: PrototypeType.EMOTION,
    SEXUAL_STATES_ROOT: PrototypeType.SEXUAL,
}


class UnsupportedLogicError(ValueError):
    """A logic construct the Z3 encoder cannot translate."""


class _Encoder:
    """Translates JSON-logic over one catalog into Z3 terms."""

    def __init__(self, z3: Any, catalog: PrototypeCatalog) -> None:
        self._z3 = z3
        self._catalog = catalog
        self.axes: dict[str, Any] = {}
        self.bounds: list[Any] = []
        self._intensities: dict[tuple[PrototypeType, str], Any] = {}

    # ─── Axes ─────────────────────────────────────────────────────

    def axis(self, name: str) -> Any:
        """Raw-scale integer variable for ``name``, bounded to its legal range."""
        if name not in self.axes:
            var = self._z3.Int(name)
            lo, hi = RAW_RANGES[name]
            self.axes[name] = var
            self.bounds.append(self._z3.And(var >= lo, var <= hi))
        return self.axes[name]

    def normalized(self, name: str) -> Any:
        if name == SEXUAL_AROUSAL_AXIS:
            return self.sexual_arousal()
        if name not in RAW_RANGES:
            # Axes nothing in the state defines read as 0
            return self._z3.RealVal(0)
        return self._z3.ToReal(self.axis(name)) / RAW_SCALE

    def sexual_arousal(self) -> Any:
        raw = (
            self.axis("sex_excitation") - self.axis("sex_inhibition") + self.axis("baseline_libido")
        )
        return self._clamp01(self._z3.ToReal(raw) / RAW_SCALE)

    # ─── Prototypes ───────────────────────────────────────────────

    def intensity(self, prototype: WeightedPrototype) -> Any:
        key = (prototype.type, prototype.id)
        if key in self._intensities:
            return self._intensities[key]

        z3 = self._z3
        norm = prototype.weight_norm
        if norm == 0:
            term = z3.RealVal(0)
        else:
            weighted = z3.Sum(
                [z3.RealVal(w) * self.normalized(axis) for axis, w in prototype.weights.items()]
            )
            term = self._clamp01(weighted / z3.RealVal(norm))
            gates = [self._gate(g.axis, g.operator, g.value) for g in prototype.parsed_gates]
            if gates:
                term = z3.If(z3.And(gates), term, z3.RealVal(0))
        self._intensities[key] = term
        return term

    def _gate(self, axis: str, operator: GateOperator, value: float) -> Any:
        x = self.normalized(axis)
        v = self._z3.RealVal(value)
        if operator == GateOperator.GTE:
            return x >= v
        if operator == GateOperator.LTE:
            return x <= v
        if operator == GateOperator.GT:
            return x > v
        if operator == GateOperator.LT:
            return x < v
        tolerance = self._z3.RealVal(EQUALITY_TOLERANCE)
        return self._z3.And(x - v < tolerance, v - x < tolerance)

    def _clamp01(self, term: Any) -> Any:
        z3 = self._z3
        return z3.If(term < 0, z3.RealVal(0), z3.If(term > 1, z3.RealVal(1), term))

    # ─── Logic ────────────────────────────────────────────────────

    def logic(self, node: Any) -> Any:
        z3 = self._z3
        parsed = operator_of(node)
        if parsed is None:
            raise UnsupportedLogicError(f"not a logic node: {node!r}")
        op, args = parsed

        if op in ("and", "or"):
            if not isinstance(args, list):
                raise UnsupportedLogicError(f"'{op}' expects a list")
            children = [self.logic(a) for a in args]
            if op == "and":
                return z3.And(children) if children else z3.BoolVal(True)
            return z3.Or(children) if children else z3.BoolVal(False)
        if op in ("!", "not"):
            inner = args[0] if isinstance(args, list) and len(args) == 1 else args
            return z3.Not(self.logic(inner))
        if op in (">=", "<=", ">", "<", "==", "!="):
            return self._comparison(op, args)
        raise UnsupportedLogicError(f"unsupported operator '{op}'")

    def _comparison(self, op: str, args: Any) -> Any:
        z3 = self._z3
        if not isinstance(args, list) or len(args) != 2:
            raise UnsupportedLogicError(f"'{op}' expects two operands")
        left, right = self._operand(args[0]), self._operand(args[1])
        if left is None or right is None:
            # An unresolvable variable never compares true
            return z3.BoolVal(False)
        if op == ">=":
            return left >= right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == "<":
            return left < right
        if op == "==":
            return left == right
        return left != right

    def _operand(self, node: Any) -> Any:
        if is_number(node):
            return self._z3.RealVal(node)
        path = var_of(node)
        if path is None:
            raise UnsupportedLogicError(f"unsupported operand {node!r}")

        root, key = split_var_path(path)
        if root in MOOD_ROOTS:
            return self._z3.ToReal(self.axis(key)) if key in MOOD_AXES else None
        if root == TRAITS_ROOT:
            return self._z3.ToReal(self.axis(key)) if key in AFFECT_TRAITS else None
        if root == SEXUAL_AROUSAL_ROOT:
            return self.sexual_arousal() if key is None else None
        if root in _PROTOTYPE_ROOTS and key:
            prototype = self._catalog.get(key, _PROTOTYPE_ROOTS[root])
            return self.intensity(prototype) if prototype is not None else None
        return None


class Z3Bridge:
    """
    Satisfiability check of an expression's prerequisites against the
    prototype registry. Stateless across calls.
    """

    def __init__(self, data_registry: Any, check_timeout_ms: int = 5000) -> None:
        require_registry(data_registry, "Z3Bridge")
        self._registry = data_registry
        self._check_timeout_ms = check_timeout_ms
        self._log = logger

    def check_expression(self, expression: Mapping[str, Any]) -> SmtCheckResult:
        expression_id = str(expression["id"]) if expression.get("id") is not None else None
        result = SmtCheckResult(expression_id=expression_id)

        try:
            import z3 as z3_lib
        except ImportError:
            result.reason = "z3-solver not installed"
            return result

        start = time.monotonic()
        encoder = _Encoder(z3_lib, PrototypeCatalog(self._registry))
        labelled: list[tuple[str, Any]] = []
        try:
            for index, prerequisite in enumerate(get_prerequisites(expression)):
                logic = get_logic(prerequisite)
                if logic is None:
                    continue
                labelled.append((f"Clause {index + 1}", encoder.logic(logic)))
        except UnsupportedLogicError as exc:
            result.reason = str(exc)
            self._log.debug("smt_encoding_unsupported", expression=expression_id, error=str(exc))
            return result

        solver = z3_lib.Solver()
        solver.set("timeout", self._check_timeout_ms)
        solver.set("unsat_core", True)
        for bound in encoder.bounds:
            solver.add(bound)
        for label, term in labelled:
            solver.assert_and_track(term, z3_lib.Bool(label))

        outcome = solver.check()
        result.check_time_ms = int((time.monotonic() - start) * 1000)

        if outcome == z3_lib.sat:
            model = solver.model()
            result.status = SmtStatus.SAT
            result.model = {
                name: model.eval(var, model_completion=True).as_long()
                for name, var in encoder.axes.items()
            }
        elif outcome == z3_lib.unsat:
            result.status = SmtStatus.UNSAT
            result.unsat_core = sorted(
                (str(label) for label in solver.unsat_core()),
                key=lambda label: int(label.split()[-1]),
            )
        else:
            result.reason = solver.reason_unknown() or "solver timeout or unknown"

        self._log.info(
            "smt_check_complete",
            expression=expression_id,
            status=result.status.value,
            clauses=len(labelled),
            unsat_core=result.unsat_core,
            check_time_ms=result.check_time_ms,
        )
        return result
