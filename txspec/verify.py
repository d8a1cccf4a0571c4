"""
txspec verification library.
Main API for checking statements against transaction traces.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from .core.config import EngineConfig
from .core.errors import EvaluationError, SpecificationError
from .core.expr import BoolOp, Compare, Expr, Unary, conjuncts, render
from .core.models import Finished, RevertMode, Reverted, Statement, Transaction
from .engine.evaluator import EvalContext, Evaluator
from .proofs import VerdictCache
from .trace import TraceRepository, TraceView
from .translators.statements import parse_statement
from .verdicts import (CheckResult, ConjunctFailure, FailureKind, ResultKind,
                       StatementReport, VerdictStatus, counterexample,
                       not_applicable, passed)

logger = logging.getLogger(__name__)

TraceLike = Union[TraceRepository, TraceView]


@dataclass(frozen=True)
class StatementSource:
    """Statement text still to be compiled against a contract schema"""
    text: str
    contract: str
    label: Optional[str] = None
    oneway: bool = False


class VerificationSummary:
    """Reports of several statements verified against one trace view"""

    def __init__(self, trace_length: int):
        self.trace_length = trace_length
        self.reports: List[StatementReport] = []

    def add_report(self, report: StatementReport):
        self.reports.append(report)

    def _count(self, status: VerdictStatus) -> int:
        return sum(1 for r in self.reports if r.status is status)

    @property
    def total(self) -> int:
        return len(self.reports)

    @property
    def passed(self) -> int:
        return self._count(VerdictStatus.PASS)

    @property
    def failed(self) -> int:
        return self._count(VerdictStatus.FAIL)

    @property
    def indeterminate(self) -> int:
        return self._count(VerdictStatus.INDETERMINATE)

    @property
    def errors(self) -> int:
        return self._count(VerdictStatus.ERROR) + self._count(VerdictStatus.SPEC_ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trace_length": self.trace_length,
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "indeterminate": self.indeterminate,
            "errors": self.errors,
            "reports": [r.to_dict() for r in self.reports]
        }


class Verifier:
    """
    Decides statements against traces.

    The verifier holds configuration only; every check reads immutable
    snapshots, so verifying the same statement twice against the same trace
    view yields identical reports.
    """

    def __init__(self, config: Optional[EngineConfig] = None, cache: Optional[VerdictCache] = None):
        self.config = config or EngineConfig()
        self.evaluator = Evaluator()
        if cache is None and self.config.cache_dir:
            cache = VerdictCache(self.config.cache_dir)
        self.cache = cache

    # ------------------------------------------------------------------
    # Single transaction

    def check_transaction(self, statement: Statement, tx: Transaction,
                          trace: Optional[TraceLike] = None) -> CheckResult:
        """
        Check one statement against one transaction that matches its target.

        Evaluation failures (e.g. division by zero) are returned as an
        ERROR result; specification errors propagate.
        """
        view = _as_view(trace) if trace is not None else None
        try:
            if isinstance(statement, Reverted):
                result = self._check_reverted(statement, tx, view)
            else:
                result = self._check_finished(statement, tx, view)
        except EvaluationError as e:
            result = CheckResult(
                statement.identity, tx.seq, ResultKind.ERROR,
                expression=render(e.expr) if e.expr is not None else None,
                message=e.message
            )
        logger.debug("%s on transaction %d: %s", statement.identity, tx.seq, result.kind.value)
        return result

    def _check_reverted(self, statement: Reverted, tx: Transaction,
                        view: Optional[TraceView]) -> CheckResult:
        ctx = EvalContext.for_precondition(tx, view, self.config.overflow)
        holds = self.evaluator.truth(statement.predicate, ctx)
        sid = statement.identity

        if holds and tx.succeeded:
            return counterexample(
                sid, tx.seq, FailureKind.EXPECTED_REVERT_BUT_SUCCEEDED,
                expression=render(statement.predicate),
                values=self._explain(statement.predicate, ctx, holds, tx)
            )
        if not holds:
            if statement.mode is RevertMode.ONE_DIRECTIONAL:
                return not_applicable(sid, tx.seq, "predicate is false; no claim in one-directional mode")
            if not tx.succeeded:
                return counterexample(
                    sid, tx.seq, FailureKind.EXPECTED_SUCCESS_BUT_REVERTED,
                    expression=render(statement.predicate),
                    values=self._explain(statement.predicate, ctx, holds, tx)
                )
        return passed(sid, tx.seq)

    def _check_finished(self, statement: Finished, tx: Transaction,
                        view: Optional[TraceView]) -> CheckResult:
        sid = statement.identity
        pre_ctx = EvalContext.for_precondition(tx, view, self.config.overflow)
        if not self.evaluator.truth(statement.precondition, pre_ctx):
            return not_applicable(sid, tx.seq, "precondition is false")

        if not tx.succeeded:
            return counterexample(
                sid, tx.seq, FailureKind.EXPECTED_SUCCESS,
                expression=render(statement.precondition),
                values=self._explain(statement.precondition, pre_ctx, True, tx)
            )

        post_ctx = EvalContext.for_postcondition(tx, view, self.config.overflow)
        failures = []
        for part in conjuncts(statement.postcondition):
            if not self.evaluator.truth(part, post_ctx):
                left, right = self._sides(part, post_ctx)
                failures.append(ConjunctFailure(render(part), False, left, right))

        if failures:
            first = failures[0]
            return counterexample(
                sid, tx.seq, FailureKind.POSTCONDITION_VIOLATED,
                expression=first.expression,
                values={"left": first.left, "right": first.right},
                conjuncts=failures
            )
        return passed(sid, tx.seq)

    def _sides(self, node: Expr, ctx: EvalContext):
        """Concrete values on both sides of a comparison, if `node` is one"""
        if isinstance(node, Unary) and node.op == "!":
            return self._sides(node.operand, ctx)
        if not isinstance(node, Compare):
            return None, None
        return (self.evaluator.evaluate(node.left, ctx).value,
                self.evaluator.evaluate(node.right, ctx).value)

    def _explain(self, node: Expr, ctx: EvalContext, holds: bool, tx: Transaction) -> Dict[str, Any]:
        values: Dict[str, Any] = {"holds": holds, "outcome": tx.outcome.value}
        if isinstance(node, Compare):
            values["left"], values["right"] = self._sides(node, ctx)
        elif isinstance(node, BoolOp):
            for operand in node.operands:
                try:
                    values[render(operand)] = self.evaluator.evaluate(operand, ctx).value
                except EvaluationError as e:
                    # Operand skipped by short-circuiting may not be evaluable
                    values[render(operand)] = f"<{e.message}>"
        return values

    # ------------------------------------------------------------------
    # Whole trace

    def verify(self, statement: Statement, trace: TraceLike,
               report_all: Optional[bool] = None) -> StatementReport:
        """
        Fold the per-transaction check over every matching transaction.

        Stops at the earliest counterexample unless `report_all` is set.
        """
        view = _as_view(trace)
        report_all = self.config.report_all if report_all is None else report_all

        if self.cache is not None:
            cached = self.cache.lookup(statement, view, self._cache_variant(report_all))
            if cached is not None:
                logger.debug("Verdict cache hit for %s", statement.identity)
                # Labels and source spelling are not part of the fingerprint
                cached.statement_id = statement.identity
                cached.source = statement.source or statement.describe()
                for result in cached.results:
                    result.statement_id = statement.identity
                return cached

        report = StatementReport(statement.identity, statement.source or statement.describe(),
                                 VerdictStatus.PASS, trace_length=len(view))
        try:
            for tx in view.matching(contract=statement.contract, function=statement.function):
                result = self.check_transaction(statement, tx, view)
                report.results.append(result)
                if result.is_counterexample and not report_all:
                    break
        except SpecificationError as e:
            logger.warning("Specification error in %s: %s", statement.identity, e)
            report.status = VerdictStatus.SPEC_ERROR
            report.error = str(e)
            report.results = []
            return report

        report.status = _fold_status(report.results)
        logger.info("%s: %s over %d transactions", statement.identity,
                    report.status.value, report.checked)

        if self.cache is not None:
            self.cache.store(statement, view, report, self._cache_variant(report_all))
        return report

    def verify_source(self, source: StatementSource, trace: TraceLike,
                      report_all: Optional[bool] = None) -> StatementReport:
        """Compile a statement and verify it; specification errors give a SPEC_ERROR report"""
        view = _as_view(trace)
        try:
            schema = view.registry.schema_named(source.contract)
            statement = parse_statement(source.text, schema, source.label, source.oneway)
        except SpecificationError as e:
            logger.warning("Specification error in '%s': %s", source.text, e)
            return StatementReport(source.label or source.text, source.text,
                                   VerdictStatus.SPEC_ERROR, trace_length=len(view), error=str(e))
        return self.verify(statement, view, report_all)

    def verify_all(self, statements: Iterable[Union[Statement, StatementSource]],
                   trace: TraceLike,
                   report_all: Optional[bool] = None) -> VerificationSummary:
        """
        Verify several statements in parallel against one captured trace view.

        Reports come back in input order.
        """
        view = _as_view(trace)
        items = list(statements)
        summary = VerificationSummary(len(view))

        def run(item):
            if isinstance(item, StatementSource):
                return self.verify_source(item, view, report_all)
            return self.verify(item, view, report_all)

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            for report in pool.map(run, items):
                summary.add_report(report)
        return summary

    def _cache_variant(self, report_all: bool) -> str:
        return f"{self.config.overflow.value}:{'all' if report_all else 'first'}"


def _as_view(trace: TraceLike) -> TraceView:
    return trace.view() if isinstance(trace, TraceRepository) else trace


def _fold_status(results: List[CheckResult]) -> VerdictStatus:
    kinds = {r.kind for r in results}
    if ResultKind.COUNTEREXAMPLE in kinds:
        return VerdictStatus.FAIL
    if ResultKind.ERROR in kinds:
        return VerdictStatus.ERROR
    if ResultKind.PASS not in kinds:
        return VerdictStatus.INDETERMINATE
    return VerdictStatus.PASS


def verify_statement(text: str, trace: TraceLike, contract: str,
                     config: Optional[EngineConfig] = None, **kwargs) -> StatementReport:
    """
    Compile and verify a single statement.

    Args:
        text: Statement source, e.g. "finished(play, started |=> this.value > 0)"
        trace: Trace repository or view
        contract: Name of the contract the statement is about
        config: Optional engine configuration
        **kwargs: label, oneway, report_all

    Returns:
        StatementReport
    """
    report_all = kwargs.pop("report_all", None)
    source = StatementSource(text, contract, **kwargs)
    return Verifier(config).verify_source(source, trace, report_all)
