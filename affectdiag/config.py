"""
affectdiag — Configuration System

All configuration is Pydantic-validated and loaded from:
1. A YAML file (defaults)
2. Environment variables (overrides, ``AFFECTDIAG_`` prefix, ``__`` nesting)

Every tunable parameter of the analysers lives here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class ReachabilityConfig(BaseModel):
    max_branches: int = Field(default=100, ge=1)
    knife_edge_threshold: float = Field(default=0.02, ge=0.0)
    compute_volume: bool = False
    # Run gap analysis on infeasible branches / unreachable thresholds
    detect_gaps: bool = True


class GapConfig(BaseModel):
    k_neighbors: int = Field(default=5, ge=1)
    distance_threshold: float = 0.5
    intensity_threshold: float = 0.3
    weight_distance_share: float = Field(default=0.7, ge=0.0, le=1.0)
    # Blended weights with magnitude below this are dropped from the candidate
    min_weight: float = 0.005


class WitnessSearchConfig(BaseModel):
    max_iterations: int = Field(default=10_000, ge=0)
    initial_temperature: float = Field(default=1.0, gt=0.0)
    cooling_rate: float = Field(default=0.995, gt=0.0, le=1.0)
    min_temperature: float = Field(default=0.01, gt=0.0)
    restart_threshold: int = Field(default=1000, ge=1)
    step_scale: float = Field(default=0.1, gt=0.0)
    yield_every: int = Field(default=100, ge=1)
    seed: int | None = None
    use_dynamics_constraints: bool = False
    max_axis_delta: int = Field(default=20, ge=0)

    @model_validator(mode="after")
    def _temperature_floor(self) -> WitnessSearchConfig:
        if self.min_temperature > self.initial_temperature:
            raise ValueError("min_temperature must not exceed initial_temperature")
        return self


class SmtConfig(BaseModel):
    enabled: bool = False
    timeout_ms: int = Field(default=5000, ge=1)


class DiagnosisConfig(BaseModel):
    top_blockers: int = Field(default=3, ge=1)
    # Clauses below this failure rate are not reported as blockers
    min_failure_rate: float = Field(default=0.0, ge=0.0, le=1.0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Config ──────────────────────────────────────────────────


class AffectDiagConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="AFFECTDIAG_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    reachability: ReachabilityConfig = Field(default_factory=ReachabilityConfig)
    gap: GapConfig = Field(default_factory=GapConfig)
    witness: WitnessSearchConfig = Field(default_factory=WitnessSearchConfig)
    smt: SmtConfig = Field(default_factory=SmtConfig)
    diagnosis: DiagnosisConfig = Field(default_factory=DiagnosisConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> AffectDiagConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.

    Explicit ``overrides`` win over both.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    if seed := os.environ.get("AFFECTDIAG_WITNESS__SEED"):
        raw.setdefault("witness", {})["seed"] = int(seed)
    if level := os.environ.get("AFFECTDIAG_LOGGING__LEVEL"):
        raw.setdefault("logging", {})["level"] = level
    if fmt := os.environ.get("AFFECTDIAG_LOGGING__FORMAT"):
        raw.setdefault("logging", {})["format"] = fmt

    if overrides:
        raw = _deep_merge(raw, overrides)

    return AffectDiagConfig(**raw)
