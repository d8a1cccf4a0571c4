"""
Typed expression AST.

Nodes are immutable and carry the type computed when the expression was
compiled against a contract schema. Every name is bound explicitly at
compile time: storage field, call argument, blockchain variable or
aggregate-bound variable.
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .types import ADDRESS, BOOL, OverflowMode, SolType, format_value


@dataclass(frozen=True)
class Expr:
    type: SolType


@dataclass(frozen=True)
class Literal(Expr):
    value: Any


@dataclass(frozen=True)
class ThisRef(Expr):
    """Address of the subject contract"""


@dataclass(frozen=True)
class FieldRef(Expr):
    """Storage field of the subject contract (`this.f` or bare `f`)"""
    field: str
    overflow: Optional[OverflowMode] = None


@dataclass(frozen=True)
class ViewRef(Expr):
    """Named view expanded from the schema (`goalReached()`)"""
    name: str
    body: Expr


@dataclass(frozen=True)
class Index(Expr):
    base: Expr
    key: Expr


@dataclass(frozen=True)
class ContextVar(Expr):
    """`sender` or `value` of the call under test"""
    name: str


@dataclass(frozen=True)
class ArgRef(Expr):
    """Argument of the call under test"""
    name: str
    index: int


@dataclass(frozen=True)
class BoundArg(Expr):
    """Aggregate variable bound to an argument of a historical call"""
    var: str
    index: int


@dataclass(frozen=True)
class BoundCall(Expr):
    """Attribute of a historical call bound by an aggregate (`x.sender`, `x.guess`)"""
    var: str
    attr: str
    index: Optional[int] = None


@dataclass(frozen=True)
class Unary(Expr):
    op: str
    operand: Expr


@dataclass(frozen=True)
class Binary(Expr):
    op: str
    left: Expr
    right: Expr
    overflow: Optional[OverflowMode] = None


@dataclass(frozen=True)
class Compare(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class BoolOp(Expr):
    op: str
    operands: Tuple[Expr, ...]


@dataclass(frozen=True)
class Conditional(Expr):
    test: Expr
    body: Expr
    orelse: Expr


@dataclass(frozen=True)
class Old(Expr):
    operand: Expr


@dataclass(frozen=True)
class Balance(Expr):
    address: Expr


@dataclass(frozen=True)
class FSum(Expr):
    element: Expr
    filter: Expr
    var: str
    function: str
    param_index: Optional[int] = None


def literal(value: Any, sol_type: SolType) -> Literal:
    return Literal(sol_type, value)


TRUE = Literal(BOOL, True)


def conjuncts(expr: Expr) -> Tuple[Expr, ...]:
    """Split an expression on its top-level `&&`"""
    if isinstance(expr, BoolOp) and expr.op == "&&":
        parts = []
        for operand in expr.operands:
            parts.extend(conjuncts(operand))
        return tuple(parts)
    return (expr,)


def contains_old(expr: Expr) -> bool:
    return any(isinstance(node, Old) for node in walk(expr))


def walk(expr: Expr):
    """Yield every node of the tree, parents first"""
    yield expr
    for child in children(expr):
        yield from walk(child)


def children(expr: Expr) -> Tuple[Expr, ...]:
    if isinstance(expr, Index):
        return (expr.base, expr.key)
    if isinstance(expr, ViewRef):
        return (expr.body,)
    if isinstance(expr, Unary):
        return (expr.operand,)
    if isinstance(expr, (Binary, Compare)):
        return (expr.left, expr.right)
    if isinstance(expr, BoolOp):
        return expr.operands
    if isinstance(expr, Conditional):
        return (expr.test, expr.body, expr.orelse)
    if isinstance(expr, Old):
        return (expr.operand,)
    if isinstance(expr, Balance):
        return (expr.address,)
    if isinstance(expr, FSum):
        return (expr.element, expr.filter)
    return ()


def render(expr: Expr) -> str:
    """Render an expression back into statement syntax"""
    if isinstance(expr, Literal):
        if expr.type == BOOL:
            return "true" if expr.value else "false"
        if expr.type == ADDRESS:
            return f"address({expr.value})"
        return str(format_value(expr.value))
    if isinstance(expr, ThisRef):
        return "this"
    if isinstance(expr, FieldRef):
        return f"this.{expr.field}"
    if isinstance(expr, ViewRef):
        return f"{expr.name}()"
    if isinstance(expr, Index):
        return f"{render(expr.base)}[{render(expr.key)}]"
    if isinstance(expr, ContextVar):
        return expr.name
    if isinstance(expr, ArgRef):
        return expr.name
    if isinstance(expr, BoundArg):
        return expr.var
    if isinstance(expr, BoundCall):
        return f"{expr.var}.{expr.attr}"
    if isinstance(expr, Unary):
        return f"{expr.op}{_wrap(expr.operand)}"
    if isinstance(expr, (Binary, Compare)):
        return f"{_wrap(expr.left)} {expr.op} {_wrap(expr.right)}"
    if isinstance(expr, BoolOp):
        return f" {expr.op} ".join(_wrap(o) for o in expr.operands)
    if isinstance(expr, Conditional):
        return f"{_wrap(expr.body)} if {_wrap(expr.test)} else {_wrap(expr.orelse)}"
    if isinstance(expr, Old):
        return f"old({render(expr.operand)})"
    if isinstance(expr, Balance):
        return f"balance({render(expr.address)})"
    if isinstance(expr, FSum):
        return f"fsum({render(expr.element)}, {render(expr.filter)}, {expr.var}, {expr.function})"
    raise TypeError(f"Unknown expression node: {type(expr).__name__}")


def _wrap(expr: Expr) -> str:
    text = render(expr)
    if isinstance(expr, (Binary, Compare, BoolOp, Conditional)):
        return f"({text})"
    return text


__all__ = [
    "Expr", "Literal", "ThisRef", "FieldRef", "ViewRef", "Index", "ContextVar",
    "ArgRef", "BoundArg", "BoundCall", "Unary", "Binary", "Compare", "BoolOp",
    "Conditional", "Old", "Balance", "FSum", "TRUE", "literal",
    "conjuncts", "contains_old", "walk", "children", "render",
]
