"""
affectdiag — SMT Types
"""

from __future__ import annotations

import enum

from pydantic import Field

from affectdiag.primitives.common import DiagBaseModel


class SmtStatus(str, enum.Enum):
    """Outcome of Z3 checking an expression's prerequisites."""

    SAT = "sat"
    UNSAT = "unsat"
    UNKNOWN = "unknown"


class SmtCheckResult(DiagBaseModel):
    expression_id: str | None = None
    status: SmtStatus = SmtStatus.UNKNOWN
    # Raw-scale axis values of a satisfying assignment
    model: dict[str, int] = Field(default_factory=dict)
    # "Clause N" labels of a minimal-ish conflicting subset
    unsat_core: list[str] = Field(default_factory=list)
    reason: str = ""
    check_time_ms: int = 0

    @property
    def satisfiable(self) -> bool | None:
        if self.status == SmtStatus.SAT:
            return True
        if self.status == SmtStatus.UNSAT:
            return False
        return None
