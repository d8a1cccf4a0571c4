"""
txspec: Statement checking for smart-contract execution traces
"""

import logging

from .core.config import EngineConfig
from .core.errors import (ArithmeticFault, EvaluationError, OldUnavailable,
                          ParseError, SpecificationError, TraceError,
                          TxSpecError, TypeMismatch, UnknownField)
from .core.models import (CallContext, Finished, Outcome, RevertMode, Reverted,
                          Transaction)
from .core.schema import ContractRegistry, ContractSchema
from .core.state import StateSnapshot
from .core.types import OverflowMode, TypedValue
from .engine.evaluator import EvalContext, Evaluator, evaluate, evaluate_text
from .ingest import dump_trace, load_trace
from .trace import TraceRepository, TraceView
from .translators.expressions import compile_expression
from .translators.statements import parse_statement
from .verdicts import CheckResult, FailureKind, ResultKind, StatementReport, VerdictStatus
from .verify import StatementSource, VerificationSummary, Verifier, verify_statement

__version__ = "0.1.0"
__all__ = [
    "Verifier",
    "verify_statement",
    "StatementSource",
    "VerificationSummary",
    "parse_statement",
    "compile_expression",
    "ContractSchema",
    "ContractRegistry",
    "StateSnapshot",
    "CallContext",
    "Transaction",
    "Outcome",
    "Reverted",
    "Finished",
    "RevertMode",
    "TraceRepository",
    "TraceView",
    "EvalContext",
    "Evaluator",
    "evaluate",
    "evaluate_text",
    "load_trace",
    "dump_trace",
    "EngineConfig",
    "OverflowMode",
    "TypedValue",
    "CheckResult",
    "StatementReport",
    "ResultKind",
    "FailureKind",
    "VerdictStatus",
    "TxSpecError",
    "SpecificationError",
    "ParseError",
    "UnknownField",
    "TypeMismatch",
    "OldUnavailable",
    "EvaluationError",
    "ArithmeticFault",
    "TraceError",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
