"""
Verdict data models: per-transaction results and per-statement reports
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .core.types import format_value


class ResultKind(str, Enum):
    """Outcome of checking one statement against one transaction"""
    PASS = "pass"
    NOT_APPLICABLE = "not_applicable"
    COUNTEREXAMPLE = "counterexample"
    ERROR = "error"


class FailureKind(str, Enum):
    EXPECTED_REVERT_BUT_SUCCEEDED = "expected_revert_but_succeeded"
    EXPECTED_SUCCESS_BUT_REVERTED = "expected_success_but_reverted"
    EXPECTED_SUCCESS = "expected_success"
    POSTCONDITION_VIOLATED = "postcondition_violated"


class VerdictStatus(str, Enum):
    """Aggregate verdict of a statement over a trace"""
    PASS = "pass"
    FAIL = "fail"
    INDETERMINATE = "indeterminate"
    ERROR = "error"
    SPEC_ERROR = "spec_error"


@dataclass
class ConjunctFailure:
    """One failing top-level conjunct of a postcondition"""
    expression: str
    value: Any
    left: Any = None
    right: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expression": self.expression,
            "value": format_value(self.value),
            "left": format_value(self.left),
            "right": format_value(self.right)
        }


@dataclass
class CheckResult:
    """
    Result of one (statement, transaction) check.

    A counterexample names the failing sub-expression and the concrete
    values on both sides of the failing comparison, where there is one.
    """
    statement_id: str
    seq: int
    kind: ResultKind
    failure: Optional[FailureKind] = None
    expression: Optional[str] = None
    values: Dict[str, Any] = field(default_factory=dict)
    conjuncts: List[ConjunctFailure] = field(default_factory=list)
    message: str = ""

    @property
    def is_counterexample(self) -> bool:
        return self.kind is ResultKind.COUNTEREXAMPLE

    def __repr__(self):
        status = self.failure.value if self.failure else self.kind.value
        return f"<{self.statement_id} @tx{self.seq}: {status}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statement": self.statement_id,
            "seq": self.seq,
            "kind": self.kind.value,
            "failure": self.failure.value if self.failure else None,
            "expression": self.expression,
            "values": {k: format_value(v) for k, v in self.values.items()},
            "conjuncts": [c.to_dict() for c in self.conjuncts],
            "message": self.message
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckResult":
        return cls(
            statement_id=data["statement"],
            seq=data["seq"],
            kind=ResultKind(data["kind"]),
            failure=FailureKind(data["failure"]) if data.get("failure") else None,
            expression=data.get("expression"),
            values=dict(data.get("values") or {}),
            conjuncts=[ConjunctFailure(**c) for c in data.get("conjuncts") or []],
            message=data.get("message", "")
        )


def passed(statement_id: str, seq: int) -> CheckResult:
    return CheckResult(statement_id, seq, ResultKind.PASS)


def not_applicable(statement_id: str, seq: int, message: str = "") -> CheckResult:
    return CheckResult(statement_id, seq, ResultKind.NOT_APPLICABLE, message=message)


def counterexample(statement_id: str, seq: int, failure: FailureKind, **details) -> CheckResult:
    return CheckResult(statement_id, seq, ResultKind.COUNTEREXAMPLE, failure=failure, **details)


@dataclass
class StatementReport:
    """Verdict of one statement over one trace view"""
    statement_id: str
    source: str
    status: VerdictStatus
    trace_length: int = 0
    results: List[CheckResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def counterexamples(self) -> List[CheckResult]:
        return [r for r in self.results if r.is_counterexample]

    @property
    def counterexample(self) -> Optional[CheckResult]:
        """Earliest failing transaction by sequence number"""
        failures = self.counterexamples
        return min(failures, key=lambda r: r.seq) if failures else None

    @property
    def checked(self) -> int:
        return len(self.results)

    def count(self, kind: ResultKind) -> int:
        return sum(1 for r in self.results if r.kind is kind)

    def __repr__(self):
        return f"<{self.statement_id}: {self.status.value} ({self.checked} checked)>"

    def to_dict(self) -> Dict[str, Any]:
        first = self.counterexample
        return {
            "statement": self.statement_id,
            "source": self.source,
            "status": self.status.value,
            "trace_length": self.trace_length,
            "checked": self.checked,
            "passed": self.count(ResultKind.PASS),
            "not_applicable": self.count(ResultKind.NOT_APPLICABLE),
            "counterexample": first.to_dict() if first else None,
            "results": [r.to_dict() for r in self.results],
            "error": self.error
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatementReport":
        return cls(
            statement_id=data["statement"],
            source=data.get("source", ""),
            status=VerdictStatus(data["status"]),
            trace_length=data.get("trace_length", 0),
            results=[CheckResult.from_dict(r) for r in data.get("results") or []],
            error=data.get("error")
        )
