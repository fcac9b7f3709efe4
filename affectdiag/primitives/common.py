"""
affectdiag — Common Primitives

Shared base model, enums and small numeric helpers used across all systems.
"""

from __future__ import annotations

import enum
import math
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def is_number(value: Any) -> bool:
    """True for real ints/floats (bools excluded) that are not NaN."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


# ─── Enums ────────────────────────────────────────────────────────


class PrototypeType(str, enum.Enum):
    EMOTION = "emotion"
    SEXUAL = "sexual"


class Direction(str, enum.Enum):
    HIGH = "high"   # Threshold must be met or exceeded (>=, >)
    LOW = "low"     # Threshold must stay below (<=, <)


class GateOperator(str, enum.Enum):
    GTE = ">="
    LTE = "<="
    GT = ">"
    LT = "<"
    EQ = "=="


# ─── Base Model ───────────────────────────────────────────────────


class DiagBaseModel(BaseModel):
    """
    Base for all affectdiag data models.

    Serialised records use camelCase keys (``expressionId``), while Python
    code reads and writes snake_case attributes.
    """

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
        "alias_generator": to_camel,
    }

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
