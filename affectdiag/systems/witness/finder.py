"""
affectdiag — Witness State Finder

Simulated annealing over the full integer state space, looking for a
concrete state that satisfies every prerequisite of an expression. It is
independent of the static reachability analysis: agreement between the two
is strong evidence, disagreement points at a modelling bug.

Each step perturbs every axis by a Gaussian delta scaled by temperature,
clamps to the axis's legal range and rounds to an integer. Candidates with
lower total penalty are always accepted; worse ones with probability
``exp(-delta / T)``. A run with no improvement for ``restart_threshold``
steps restarts from a fresh uniform state.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Mapping
from typing import Any

import numpy as np
import structlog
from pydantic.alias_generators import to_snake

from affectdiag.clients.registry import PrototypeCatalog, require_registry
from affectdiag.config import WitnessSearchConfig
from affectdiag.primitives.axes import AFFECT_TRAITS, MOOD_AXES, RAW_RANGES, SEXUAL_AXES
from affectdiag.primitives.expression import describe_logic, get_logic, get_prerequisites
from affectdiag.systems.witness.logic import EvaluationContext, clause_penalty
from affectdiag.systems.witness.types import SearchResult, WitnessState

logger = structlog.get_logger().bind(system="witness", component="finder")

SEARCH_AXES: tuple[str, ...] = (*MOOD_AXES, *SEXUAL_AXES, *AFFECT_TRAITS)
_LOWER = np.array([RAW_RANGES[a][0] for a in SEARCH_AXES], dtype=np.int64)
_UPPER = np.array([RAW_RANGES[a][1] for a in SEARCH_AXES], dtype=np.int64)
_SPAN = (_UPPER - _LOWER).astype(np.float64)


class _Score:
    __slots__ = ("penalty", "fitness", "passed")

    def __init__(self, penalty: float, fitness: float, passed: list[bool]) -> None:
        self.penalty = penalty
        self.fitness = fitness
        self.passed = passed

    def better_than(self, other: _Score) -> bool:
        if self.fitness != other.fitness:
            return self.fitness > other.fitness
        return self.penalty < other.penalty


class WitnessStateFinder:
    """
    Async witness search. Yields to the event loop every ``yield_every``
    iterations so long searches never stall a host loop.
    """

    def __init__(self, data_registry: Any, config: WitnessSearchConfig | None = None) -> None:
        require_registry(data_registry, "WitnessStateFinder")
        self._registry = data_registry
        self._config = config or WitnessSearchConfig()
        self._log = logger

    def resolve_config(
        self, overrides: WitnessSearchConfig | Mapping[str, Any] | None = None
    ) -> WitnessSearchConfig:
        """Merge per-call overrides (snake_case or camelCase keys) onto the defaults."""
        if overrides is None:
            return self._config
        if isinstance(overrides, WitnessSearchConfig):
            return overrides
        merged = self._config.model_dump()
        merged.update({to_snake(str(k)): v for k, v in overrides.items()})
        return WitnessSearchConfig.model_validate(merged)

    def build_context(self, state: WitnessState) -> dict[str, Any]:
        """The variable namespace an expression sees for ``state``."""
        catalog = PrototypeCatalog(self._registry)
        return EvaluationContext(state.axis_values(), catalog).to_dict()

    async def find_witness(
        self,
        expression: Any,
        config: WitnessSearchConfig | Mapping[str, Any] | None = None,
        start_state: WitnessState | None = None,
    ) -> SearchResult:
        cfg = self.resolve_config(config)
        expression_id = _expression_id(expression)
        clauses = [get_logic(p) for p in get_prerequisites(expression)]

        if not clauses:
            neutral = WitnessState.create_neutral()
            return SearchResult(
                expression_id=expression_id,
                found=True,
                witness=neutral.with_changes(fitness=1.0, is_exact=True, expression_id=expression_id),
                best_fitness=1.0,
                iterations_used=0,
            )

        catalog = PrototypeCatalog(self._registry)
        rng = np.random.default_rng(cfg.seed)

        if cfg.use_dynamics_constraints:
            origin = _to_vector(start_state or WitnessState.create_neutral())
            lower = np.maximum(_LOWER, origin - cfg.max_axis_delta)
            upper = np.minimum(_UPPER, origin + cfg.max_axis_delta)
            current = origin.copy()
        else:
            lower, upper = _LOWER, _UPPER
            current = _to_vector(start_state) if start_state else _random_vector(rng, lower, upper)

        current_score = self._score(current, clauses, catalog)
        best, best_score = current.copy(), current_score
        temperature = cfg.initial_temperature
        stall = 0
        restarts = 0
        iterations = 0

        self._log.debug(
            "witness_search_started",
            expression=expression_id,
            clauses=len(clauses),
            max_iterations=cfg.max_iterations,
        )

        while best_score.fitness < 1.0 and iterations < cfg.max_iterations:
            iterations += 1

            candidate = self._neighbor(current, temperature, rng, lower, upper, cfg.step_scale)
            candidate_score = self._score(candidate, clauses, catalog)
            delta = candidate_score.penalty - current_score.penalty
            if delta < 0 or rng.random() < math.exp(-delta / temperature):
                current, current_score = candidate, candidate_score

            if current_score.better_than(best_score):
                best, best_score = current.copy(), current_score
                stall = 0
            else:
                stall += 1

            temperature = max(cfg.min_temperature, temperature * cfg.cooling_rate)

            if stall >= cfg.restart_threshold:
                current = _random_vector(rng, lower, upper)
                current_score = self._score(current, clauses, catalog)
                temperature = cfg.initial_temperature
                stall = 0
                restarts += 1

            if iterations % cfg.yield_every == 0:
                await asyncio.sleep(0)

        found = best_score.fitness >= 1.0
        values = {axis: int(v) for axis, v in zip(SEARCH_AXES, best)}
        result = SearchResult(
            expression_id=expression_id,
            found=found,
            best_fitness=best_score.fitness,
            iterations_used=iterations,
            restarts=restarts,
        )
        if found:
            result.witness = WitnessState.from_axis_values(
                values, fitness=1.0, is_exact=True, expression_id=expression_id
            )
        else:
            result.nearest_miss = WitnessState.from_axis_values(
                values, fitness=best_score.fitness, is_exact=False, expression_id=expression_id
            )
            result.violated_clauses = [
                f"Clause {i + 1}: {_describe_clause(clauses[i])}"
                for i, ok in enumerate(best_score.passed)
                if not ok
            ]

        self._log.info(
            "witness_search_complete",
            expression=expression_id,
            found=found,
            best_fitness=round(best_score.fitness, 4),
            iterations=iterations,
            restarts=restarts,
        )
        return result

    # ─── Internals ────────────────────────────────────────────────

    @staticmethod
    def _score(vector: np.ndarray, clauses: list[Any], catalog: PrototypeCatalog) -> _Score:
        ctx = EvaluationContext({axis: int(v) for axis, v in zip(SEARCH_AXES, vector)}, catalog)
        penalties = [clause_penalty(logic, ctx) for logic in clauses]
        passed = [p == 0.0 for p in penalties]
        return _Score(sum(penalties), sum(passed) / len(clauses), passed)

    @staticmethod
    def _neighbor(
        vector: np.ndarray,
        temperature: float,
        rng: np.random.Generator,
        lower: np.ndarray,
        upper: np.ndarray,
        step_scale: float,
    ) -> np.ndarray:
        sigma = temperature * _SPAN * step_scale
        moved = vector + rng.normal(0.0, sigma)
        return np.clip(np.rint(moved), lower, upper).astype(np.int64)


def _expression_id(expression: Any) -> str | None:
    if isinstance(expression, Mapping) and expression.get("id") is not None:
        return str(expression["id"])
    return None


def _describe_clause(logic: Any) -> str:
    if logic is None:
        return "(no logic)"
    return describe_logic(logic)


def _to_vector(state: WitnessState) -> np.ndarray:
    values = state.axis_values()
    return np.array([values[a] for a in SEARCH_AXES], dtype=np.int64)


def _random_vector(rng: np.random.Generator, lower: np.ndarray, upper: np.ndarray) -> np.ndarray:
    return rng.integers(lower, upper, endpoint=True).astype(np.int64)
