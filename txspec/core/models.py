"""
Data models for transactions and statements
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from .errors import TraceError, TypeMismatch
from .expr import Expr, render
from .schema import ContractRegistry
from .state import StateSnapshot
from .types import TypedValue, coerce_value, normalize_address


@dataclass(frozen=True)
class CallContext:
    """Who called which function with what; immutable once a transaction begins"""
    sender: str
    target: str
    function: str
    args: Tuple[Any, ...] = ()
    value: int = 0

    @classmethod
    def create(cls,
               registry: ContractRegistry,
               sender,
               target,
               function: str,
               args: Union[Sequence[Any], Mapping[str, Any]] = (),
               value: int = 0) -> "CallContext":
        """
        Build a call with arguments converted to their declared parameter types.

        `args` may be positional or keyed by parameter name.
        """
        target = normalize_address(target)
        decl = registry.schema_at(target).lookup_function(function)
        if isinstance(args, Mapping):
            missing = [p.name for p in decl.params if p.name not in args]
            if missing:
                raise TypeMismatch(f"Call to {function} is missing arguments: {', '.join(missing)}")
            args = [args[p.name] for p in decl.params]
        if len(args) != len(decl.params):
            raise TypeMismatch(f"{function} takes {len(decl.params)} arguments, got {len(args)}")
        converted = []
        for param, raw in zip(decl.params, args):
            try:
                converted.append(coerce_value(param.type, raw))
            except ValueError as e:
                raise TypeMismatch(f"Argument '{param.name}' of {function}: {e}") from None
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise TypeMismatch(f"Call value must be a non-negative integer, got {value!r}")
        return cls(normalize_address(sender), target, function, tuple(converted), value)


class Outcome(str, Enum):
    REVERTED = "reverted"
    SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class Transaction:
    """One executed call with the state before and, if it succeeded, after"""
    seq: int
    call: CallContext
    pre: StateSnapshot
    outcome: Outcome
    post: Optional[StateSnapshot] = None

    def __post_init__(self):
        if self.outcome is Outcome.SUCCEEDED and self.post is None:
            raise TraceError(f"Transaction {self.seq} succeeded but has no post-state")
        if self.outcome is Outcome.REVERTED and self.post is not None:
            raise TraceError(f"Transaction {self.seq} reverted but carries a post-state")

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCEEDED

    @property
    def effective_state(self) -> StateSnapshot:
        """State after this transaction; a revert leaves the pre-state in place"""
        return self.post if self.post is not None else self.pre

    def argument(self, index: int) -> TypedValue:
        decl = self.pre.registry.schema_at(self.call.target).lookup_function(self.call.function)
        return TypedValue(decl.params[index].type, self.call.args[index])


class RevertMode(str, Enum):
    """Reading of a `reverted` statement"""
    BICONDITIONAL = "biconditional"      # reverts iff predicate holds
    ONE_DIRECTIONAL = "one_directional"  # predicate holds => reverts


@dataclass(frozen=True)
class Reverted:
    """`reverted(function, predicate)`: the call reverts when the predicate holds"""
    contract: str
    function: str
    predicate: Expr
    mode: RevertMode = RevertMode.BICONDITIONAL
    label: Optional[str] = None
    source: str = field(default="", compare=False)

    kind = "reverted"

    @property
    def identity(self) -> str:
        return self.label or _fingerprint_name(self)

    def describe(self) -> str:
        suffix = ", oneway" if self.mode is RevertMode.ONE_DIRECTIONAL else ""
        return f"reverted({self.function}, {render(self.predicate)}{suffix})"


@dataclass(frozen=True)
class Finished:
    """`finished(function, pre |=> post)`: a call with `pre` succeeds and establishes `post`"""
    contract: str
    function: str
    precondition: Expr
    postcondition: Expr
    label: Optional[str] = None
    source: str = field(default="", compare=False)

    kind = "finished"

    @property
    def identity(self) -> str:
        return self.label or _fingerprint_name(self)

    def describe(self) -> str:
        return (f"finished({self.function}, {render(self.precondition)} |=> "
                f"{render(self.postcondition)})")


Statement = Union[Reverted, Finished]


def _fingerprint_name(statement: Statement) -> str:
    from ..proofs.hasher import compute_statement_hash
    return f"{statement.contract}.{statement.function}:{statement.kind}#{compute_statement_hash(statement)[:8]}"
