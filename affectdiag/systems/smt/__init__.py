"""
affectdiag — SMT Confirmation

Z3 encoding of an expression's prerequisites for exact sat/unsat answers.
"""

from affectdiag.systems.smt.types import SmtCheckResult, SmtStatus
from affectdiag.systems.smt.z3_bridge import UnsupportedLogicError, Z3Bridge

__all__ = [
    "SmtCheckResult",
    "SmtStatus",
    "UnsupportedLogicError",
    "Z3Bridge",
]
