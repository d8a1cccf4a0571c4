"""
Expression evaluation against state snapshots and trace history
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional

from ..core import expr as E
from ..core.errors import ArithmeticFault, EvaluationError, OldUnavailable
from ..core.models import CallContext, Transaction
from ..core.state import StateSnapshot
from ..core.types import (BOOL, OverflowMode, TypedValue, coerce_value, fit_integer,
                          integer_power)
from ..trace import TraceView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvalContext:
    """
    Everything an expression can observe.

    `state` is the current snapshot (post-state in postconditions, pre-state
    in preconditions and inside `old`). `history_end` bounds the aggregate
    scans: only transactions with a smaller sequence number are visible.
    `pre_history_end` is the bound used once evaluation moves into `old`.
    """
    state: StateSnapshot
    subject: str
    call: Optional[CallContext] = None
    pre_state: Optional[StateSnapshot] = None
    trace: Optional[TraceView] = None
    history_end: Optional[int] = None
    pre_history_end: Optional[int] = None
    overflow: OverflowMode = OverflowMode.CHECKED
    bindings: Mapping[str, Transaction] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def for_precondition(cls, tx: Transaction, trace: Optional[TraceView],
                         overflow: OverflowMode = OverflowMode.CHECKED) -> "EvalContext":
        """Pre-state of `tx`; history is everything before it"""
        return cls(
            state=tx.pre,
            subject=tx.call.target,
            call=tx.call,
            trace=trace,
            history_end=tx.seq,
            overflow=overflow,
        )

    @classmethod
    def for_postcondition(cls, tx: Transaction, trace: Optional[TraceView],
                          overflow: OverflowMode = OverflowMode.CHECKED) -> "EvalContext":
        """Post-state of `tx` with its pre-state bound for `old`; history includes `tx`"""
        if tx.post is None:
            raise EvaluationError(f"Transaction {tx.seq} has no post-state")
        return cls(
            state=tx.post,
            subject=tx.call.target,
            call=tx.call,
            pre_state=tx.pre,
            trace=trace,
            history_end=tx.seq + 1,
            pre_history_end=tx.seq,
            overflow=overflow,
        )

    def entering_old(self, node: E.Expr) -> "EvalContext":
        if self.pre_state is None:
            raise OldUnavailable("No pre-state is bound for old()", node)
        return replace(self, state=self.pre_state, history_end=self.pre_history_end)

    def binding(self, var: str, tx: Transaction) -> "EvalContext":
        bindings = dict(self.bindings)
        bindings[var] = tx
        return replace(self, bindings=MappingProxyType(bindings))


class Evaluator:
    """
    Evaluates typed expressions.

    Holds no per-evaluation state, so one instance can be shared across
    threads and repeated evaluations are deterministic.
    """

    def evaluate(self, node: E.Expr, ctx: EvalContext) -> TypedValue:
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise EvaluationError(f"Cannot evaluate {type(node).__name__}", node)
        return method(node, ctx)

    def truth(self, node: E.Expr, ctx: EvalContext) -> bool:
        result = self.evaluate(node, ctx)
        if not isinstance(result.value, bool):
            raise EvaluationError(f"Expected a boolean, got {result.value!r}", node)
        return result.value

    # ------------------------------------------------------------------
    # Leaves

    def visit_Literal(self, node: E.Literal, ctx: EvalContext) -> TypedValue:
        return TypedValue(node.type, node.value)

    def visit_ThisRef(self, node: E.ThisRef, ctx: EvalContext) -> TypedValue:
        return TypedValue(node.type, ctx.subject)

    def visit_FieldRef(self, node: E.FieldRef, ctx: EvalContext) -> TypedValue:
        return ctx.state.read(ctx.subject, node.field)

    def visit_ViewRef(self, node: E.ViewRef, ctx: EvalContext) -> TypedValue:
        # Views see storage only, never the call or aggregate bindings
        return self.evaluate(node.body, replace(ctx, bindings=MappingProxyType({})))

    def visit_Index(self, node: E.Index, ctx: EvalContext) -> TypedValue:
        base = self.evaluate(node.base, ctx)
        key = self.evaluate(node.key, ctx)
        try:
            canonical = coerce_value(base.type.key, key.value)
        except ValueError as e:
            raise EvaluationError(f"Invalid mapping key: {e}", node.key) from None
        return TypedValue(node.type, base.value.get(canonical, node.type.zero()))

    def visit_ContextVar(self, node: E.ContextVar, ctx: EvalContext) -> TypedValue:
        call = self._call(node, ctx)
        return TypedValue(node.type, call.sender if node.name == "sender" else call.value)

    def visit_ArgRef(self, node: E.ArgRef, ctx: EvalContext) -> TypedValue:
        call = self._call(node, ctx)
        return TypedValue(node.type, call.args[node.index])

    def visit_BoundArg(self, node: E.BoundArg, ctx: EvalContext) -> TypedValue:
        tx = self._bound(node, ctx)
        return TypedValue(node.type, tx.call.args[node.index])

    def visit_BoundCall(self, node: E.BoundCall, ctx: EvalContext) -> TypedValue:
        tx = self._bound(node, ctx)
        if node.attr == "sender":
            return TypedValue(node.type, tx.call.sender)
        if node.attr == "value":
            return TypedValue(node.type, tx.call.value)
        return TypedValue(node.type, tx.call.args[node.index])

    @staticmethod
    def _call(node: E.Expr, ctx: EvalContext) -> CallContext:
        if ctx.call is None:
            raise EvaluationError("Expression refers to the call under test, but none is bound", node)
        return ctx.call

    @staticmethod
    def _bound(node, ctx: EvalContext) -> Transaction:
        try:
            return ctx.bindings[node.var]
        except KeyError:
            raise EvaluationError(f"'{node.var}' is not bound here", node) from None

    # ------------------------------------------------------------------
    # Operators

    def visit_Unary(self, node: E.Unary, ctx: EvalContext) -> TypedValue:
        operand = self.evaluate(node.operand, ctx)
        if node.op == "!":
            return TypedValue(BOOL, not operand.value)
        result = fit_integer(-operand.value, node.type, ctx.overflow, node)
        return TypedValue(node.type, result)

    def visit_Binary(self, node: E.Binary, ctx: EvalContext) -> TypedValue:
        left = self.evaluate(node.left, ctx).value
        right = self.evaluate(node.right, ctx).value
        op = node.op
        if op == "+":
            result = left + right
        elif op == "-":
            result = left - right
        elif op == "*":
            result = left * right
        elif op in ("/", "%"):
            if right == 0:
                raise ArithmeticFault("Division by zero" if op == "/" else "Modulo by zero", node)
            # Solidity semantics: truncate toward zero
            quotient = abs(left) // abs(right)
            if (left < 0) != (right < 0):
                quotient = -quotient
            result = quotient if op == "/" else left - right * quotient
        elif op == "**":
            mode = node.overflow or ctx.overflow
            return TypedValue(node.type, integer_power(left, right, node.type, mode, node))
        else:
            raise EvaluationError(f"Unknown operator {op}", node)
        mode = node.overflow or ctx.overflow
        return TypedValue(node.type, fit_integer(result, node.type, mode, node))

    def visit_Compare(self, node: E.Compare, ctx: EvalContext) -> TypedValue:
        left = self.evaluate(node.left, ctx).value
        right = self.evaluate(node.right, ctx).value
        op = node.op
        if op == "==":
            result = left == right
        elif op == "!=":
            result = left != right
        elif op == "<":
            result = left < right
        elif op == "<=":
            result = left <= right
        elif op == ">":
            result = left > right
        else:
            result = left >= right
        return TypedValue(BOOL, result)

    def visit_BoolOp(self, node: E.BoolOp, ctx: EvalContext) -> TypedValue:
        # Short-circuit like Solidity, left to right
        if node.op == "&&":
            for operand in node.operands:
                if not self.truth(operand, ctx):
                    return TypedValue(BOOL, False)
            return TypedValue(BOOL, True)
        for operand in node.operands:
            if self.truth(operand, ctx):
                return TypedValue(BOOL, True)
        return TypedValue(BOOL, False)

    def visit_Conditional(self, node: E.Conditional, ctx: EvalContext) -> TypedValue:
        branch = node.body if self.truth(node.test, ctx) else node.orelse
        return TypedValue(node.type, self.evaluate(branch, ctx).value)

    # ------------------------------------------------------------------
    # Built-ins

    def visit_Old(self, node: E.Old, ctx: EvalContext) -> TypedValue:
        return self.evaluate(node.operand, ctx.entering_old(node))

    def visit_Balance(self, node: E.Balance, ctx: EvalContext) -> TypedValue:
        address = self.evaluate(node.address, ctx).value
        return TypedValue(node.type, ctx.state.balance_of(address))

    def visit_FSum(self, node: E.FSum, ctx: EvalContext) -> TypedValue:
        """
        Fold over succeeded calls of `node.function` on the subject contract,
        in sequence order, summing the element of every call that passes the
        filter. An empty history sums to zero.
        """
        if ctx.trace is None:
            raise EvaluationError("fsum() needs a trace", node)
        total = 0
        counted = 0
        for tx in ctx.trace.matching(function=node.function, target=ctx.subject,
                                     succeeded_only=True, before=ctx.history_end):
            scope = ctx.binding(node.var, tx)
            if self.truth(node.filter, scope):
                element = self.evaluate(node.element, scope)
                if isinstance(element.value, bool) or not isinstance(element.value, int):
                    raise EvaluationError(
                        f"fsum() element is not numeric for transaction {tx.seq}", node.element
                    )
                total += element.value
                counted += 1
        logger.debug("fsum over %s: %d calls counted, total %d", node.function, counted, total)
        return TypedValue(node.type, fit_integer(total, node.type, ctx.overflow, node))


_default = Evaluator()


def evaluate(node: E.Expr, ctx: EvalContext) -> TypedValue:
    """Evaluate `node` with the shared stateless evaluator"""
    return _default.evaluate(node, ctx)


def evaluate_text(text: str, ctx: EvalContext, function: Optional[str] = None,
                  allow_old: bool = False) -> TypedValue:
    """Compile `text` against the subject's schema and evaluate it in `ctx`"""
    from ..translators.expressions import compile_expression
    schema = ctx.state.registry.schema_at(ctx.subject)
    if function is None and ctx.call is not None and ctx.call.target == ctx.subject:
        function = ctx.call.function
    return evaluate(compile_expression(text, schema, function, allow_old), ctx)


__all__ = ["EvalContext", "Evaluator", "evaluate", "evaluate_text"]
