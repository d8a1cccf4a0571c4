"""
Error taxonomy.

Specification errors describe a malformed statement and are raised while a
statement is compiled against a schema, before any trace is scanned.
Evaluation errors happen while a well-formed expression is evaluated for a
particular transaction and are recorded per transaction by the verifier.
"""

from typing import Any, Optional


class TxSpecError(Exception):
    """Base class for all engine errors"""

    def __init__(self, message: str, expr: Optional[Any] = None):
        self.message = message
        self.expr = expr
        super().__init__(self._format())

    def _format(self) -> str:
        if self.expr is None:
            return self.message
        # Rendered lazily to keep this module free of AST imports
        from .expr import render
        return f"{self.message} (in `{render(self.expr)}`)"


class SpecificationError(TxSpecError):
    """A statement or expression is malformed with respect to the schema"""


class ParseError(SpecificationError):
    """Statement or expression text could not be parsed"""


class UnknownField(SpecificationError):
    """Reference to a field, view, function or parameter that is not declared"""


class TypeMismatch(SpecificationError):
    """Operand types are incompatible with the operator applied to them"""


class OldUnavailable(SpecificationError):
    """`old(...)` used where no pre-state is bound"""


class EvaluationError(TxSpecError):
    """Failure while evaluating an expression for a concrete transaction"""


class ArithmeticFault(EvaluationError):
    """Division by zero, or overflow/underflow under checked arithmetic"""


class TraceError(TxSpecError):
    """A transaction violates the trace ingestion invariants"""
