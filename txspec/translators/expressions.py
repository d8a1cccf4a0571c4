"""
Statement expression compilation: text -> Python AST -> typed expression AST
"""

import ast
import re
from typing import Dict, Optional, Set, Tuple

from ..core import expr as E
from ..core.config import (BIN_OP_SYMBOLS, BLOCKCHAIN_VARIABLES, BOOLEAN_NAMES,
                           BUILTINS, CMP_OP_SYMBOLS, TOKEN_REWRITES)
from ..core.errors import OldUnavailable, ParseError, TypeMismatch, UnknownField
from ..core.schema import ContractSchema, FunctionDecl
from ..core.types import (ADDRESS, BOOL, INT_LITERAL, AddressType, BoolType,
                          BytesType, IntType, MappingType, SolType, UIntType,
                          normalize_address, parse_type, wider_integer)

_BANG = re.compile(r"!(?!=)")

# Aggregate binding: either a parameter index of the summed function, or the whole call
_CALL = object()


def to_python_source(text: str) -> str:
    """Rewrite statement operators (`&&`, `||`, `!`) into Python syntax"""
    for token, replacement in TOKEN_REWRITES:
        text = text.replace(token, replacement)
    return _BANG.sub(" not ", text).strip()


class ExpressionTranslator(ast.NodeVisitor):
    """
    Compiles statement expressions into the typed AST of `txspec.core.expr`.

    Names are resolved once, here, against the subject contract's schema:
    `sender`/`value` bind to the call under test, other bare names to a
    parameter of the target function, then to a storage field, then to a
    view. `this.<name>` always means storage (or a view).
    """

    def __init__(self,
                 schema: ContractSchema,
                 function: Optional[FunctionDecl] = None,
                 allow_old: bool = False,
                 _bound: Optional[Dict[str, Tuple[FunctionDecl, object]]] = None,
                 _views_in_progress: Optional[Set[str]] = None):
        self.schema = schema
        self.function = function
        self.allow_old = allow_old
        self.bound = dict(_bound or {})
        self.views_in_progress = set(_views_in_progress or ())

    def compile(self, text: str) -> E.Expr:
        source = to_python_source(text)
        if not source:
            raise ParseError("Empty expression")
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as e:
            raise ParseError(f"Cannot parse expression '{text}': {e.msg}") from None
        return self.visit(tree.body)

    def compile_bool(self, text: str) -> E.Expr:
        node = self.compile(text)
        _expect(node, BoolType, "boolean expression")
        return node

    def _child(self, **changes) -> "ExpressionTranslator":
        settings = {
            "schema": self.schema,
            "function": self.function,
            "allow_old": self.allow_old,
            "_bound": self.bound,
            "_views_in_progress": self.views_in_progress,
        }
        settings.update(changes)
        return ExpressionTranslator(**settings)

    # ------------------------------------------------------------------
    # Leaves

    def visit_Constant(self, node: ast.Constant) -> E.Expr:
        if isinstance(node.value, bool):
            return E.Literal(BOOL, node.value)
        if isinstance(node.value, int):
            return E.Literal(INT_LITERAL, node.value)
        if isinstance(node.value, bytes):
            return E.Literal(BytesType(None), node.value)
        raise ParseError(f"Unsupported literal: {node.value!r}")

    def visit_Name(self, node: ast.Name) -> E.Expr:
        name = node.id
        if name in BOOLEAN_NAMES:
            return E.Literal(BOOL, BOOLEAN_NAMES[name])
        if name == "this":
            return E.ThisRef(ADDRESS)

        if name in self.bound:
            func, binding = self.bound[name]
            if binding is _CALL:
                raise TypeMismatch(
                    f"'{name}' is bound to a whole call; use {name}.sender, {name}.value or {name}.<param>"
                )
            return E.BoundArg(func.params[binding].type, name, binding)

        # Views read storage only, so `value` there is the field
        if name in BLOCKCHAIN_VARIABLES and not self.views_in_progress:
            return E.ContextVar(parse_type(BLOCKCHAIN_VARIABLES[name]), name)

        if self.function is not None:
            index = self.function.index_of(name)
            if index is not None:
                return E.ArgRef(self.function.params[index].type, name, index)

        return self._member(name)

    def _member(self, name: str) -> E.Expr:
        """Storage field or view of the subject contract"""
        if name in self.schema.fields:
            decl = self.schema.fields[name]
            return E.FieldRef(decl.type, name, decl.overflow or self.schema.overflow)
        if name in self.schema.views:
            return self._view(name)
        raise UnknownField(f"{self.schema.name} has no field, view or parameter '{name}'")

    def _view(self, name: str) -> E.ViewRef:
        if name in self.views_in_progress:
            raise ParseError(f"View '{name}' is defined in terms of itself")
        translator = ExpressionTranslator(
            self.schema,
            function=None,
            allow_old=False,
            _views_in_progress=self.views_in_progress | {name},
        )
        body = translator.compile(self.schema.views[name])
        return E.ViewRef(body.type, name, body)

    def visit_Attribute(self, node: ast.Attribute) -> E.Expr:
        if not isinstance(node.value, ast.Name):
            raise ParseError(f"Unsupported attribute access: .{node.attr}")
        owner = node.value.id

        if owner == "this":
            return self._member(node.attr)

        if owner in self.bound:
            func, binding = self.bound[owner]
            if node.attr in BLOCKCHAIN_VARIABLES:
                return E.BoundCall(parse_type(BLOCKCHAIN_VARIABLES[node.attr]), owner, node.attr)
            if binding is not _CALL:
                raise TypeMismatch(f"'{owner}' is bound to an argument, not a call")
            index = func.index_of(node.attr)
            if index is None:
                raise UnknownField(f"Function '{func.name}' has no parameter '{node.attr}'")
            return E.BoundCall(func.params[index].type, owner, node.attr, index)

        raise ParseError(f"Unsupported attribute access: {owner}.{node.attr}")

    # ------------------------------------------------------------------
    # Operators

    def visit_UnaryOp(self, node: ast.UnaryOp) -> E.Expr:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            _expect(operand, BoolType, "operand of '!'")
            return E.Unary(BOOL, "!", operand)
        if isinstance(node.op, ast.USub):
            if isinstance(operand, E.Literal) and operand.type == INT_LITERAL:
                return E.Literal(INT_LITERAL, -operand.value)
            _expect(operand, IntType, "operand of unary '-'")
            return E.Unary(operand.type, "-", operand)
        if isinstance(node.op, ast.UAdd):
            _expect_integer(operand, "operand of unary '+'")
            return operand
        raise ParseError(f"Unsupported unary operator: {type(node.op).__name__}")

    def visit_BinOp(self, node: ast.BinOp) -> E.Expr:
        op = BIN_OP_SYMBOLS.get(type(node.op))
        if not op:
            raise ParseError(f"Unsupported binary operator: {type(node.op).__name__}")
        left = self.visit(node.left)
        right = self.visit(node.right)
        _expect_integer(left, f"left operand of '{op}'")
        _expect_integer(right, f"right operand of '{op}'")
        result_type = wider_integer(left.type, right.type)
        return E.Binary(result_type, op, left, right, _overflow_of(left) or _overflow_of(right))

    def visit_BoolOp(self, node: ast.BoolOp) -> E.Expr:
        op = "&&" if isinstance(node.op, ast.And) else "||"
        operands = tuple(self.visit(v) for v in node.values)
        for operand in operands:
            _expect(operand, BoolType, f"operand of '{op}'")
        return E.BoolOp(BOOL, op, operands)

    def visit_Compare(self, node: ast.Compare) -> E.Expr:
        if not (len(node.ops) == 1 and len(node.comparators) == 1):
            raise ParseError("Chained comparisons not supported; join them with &&")

        op = CMP_OP_SYMBOLS.get(type(node.ops[0]))
        if not op:
            raise ParseError(f"Unsupported comparison: {type(node.ops[0]).__name__}")

        left = self.visit(node.left)
        right = self.visit(node.comparators[0])
        if op in ("==", "!="):
            if not _comparable(left.type, right.type):
                raise TypeMismatch(f"Cannot compare {left.type} with {right.type}",
                                   E.Compare(BOOL, op, left, right))
        else:
            _expect_integer(left, f"left operand of '{op}'")
            _expect_integer(right, f"right operand of '{op}'")
        return E.Compare(BOOL, op, left, right)

    def visit_IfExp(self, node: ast.IfExp) -> E.Expr:
        test = self.visit(node.test)
        body = self.visit(node.body)
        orelse = self.visit(node.orelse)
        _expect(test, BoolType, "condition")
        if not _comparable(body.type, orelse.type):
            raise TypeMismatch(f"Branches have different types: {body.type} and {orelse.type}")
        result_type = wider_integer(body.type, orelse.type) if body.type.is_integer else body.type
        return E.Conditional(result_type, test, body, orelse)

    def visit_Subscript(self, node: ast.Subscript) -> E.Expr:
        base = self.visit(node.value)
        key_node = node.slice
        # Python < 3.9 wraps subscripts in ast.Index
        if type(key_node).__name__ == "Index":
            key_node = key_node.value
        return self._index(base, self.visit(key_node))

    def _index(self, base: E.Expr, key: E.Expr) -> E.Expr:
        if not isinstance(base.type, MappingType):
            raise TypeMismatch(f"{base.type} is not a mapping", base)
        if not _assignable(key.type, base.type.key):
            raise TypeMismatch(f"Key of type {key.type} used for {base.type}", key)
        return E.Index(base.type.value, base, key)

    # ------------------------------------------------------------------
    # Calls: built-ins, views and public getters

    def visit_Call(self, node: ast.Call) -> E.Expr:
        if node.keywords:
            raise ParseError("Keyword arguments are not supported")

        if isinstance(node.func, ast.Name):
            callee = node.func.id
            if callee in BUILTINS:
                low, high = BUILTINS[callee]
                if not low <= len(node.args) <= high:
                    raise ParseError(f"{callee}() takes {low}..{high} arguments, got {len(node.args)}")
                return getattr(self, f"_builtin_{callee}")(node.args)
            return self._getter(callee, node.args)

        if (isinstance(node.func, ast.Attribute) and isinstance(node.func.value, ast.Name)
                and node.func.value.id == "this"):
            return self._getter(node.func.attr, node.args)

        raise ParseError("Only built-ins, views and storage getters can be called")

    def _getter(self, name: str, args) -> E.Expr:
        if name in self.schema.views:
            if args:
                raise ParseError(f"View '{name}' takes no arguments")
            return self._view(name)
        if name in self.schema.fields:
            result = self._member(name)
            for arg in args:
                result = self._index(result, self.visit(arg))
            return result
        raise UnknownField(f"{self.schema.name} has no view or getter '{name}'")

    def _builtin_old(self, args) -> E.Expr:
        if not self.allow_old:
            raise OldUnavailable("old() is only available in postconditions")
        operand = self.visit(args[0])
        return E.Old(operand.type, operand)

    def _builtin_balance(self, args) -> E.Expr:
        address = self.visit(args[0])
        _expect(address, AddressType, "argument of balance()")
        return E.Balance(UIntType(None), address)

    def _builtin_address(self, args) -> E.Expr:
        operand = self.visit(args[0])
        if isinstance(operand.type, AddressType):
            return operand
        if isinstance(operand, E.Literal) and operand.type == INT_LITERAL:
            try:
                return E.Literal(ADDRESS, normalize_address(operand.value))
            except ValueError as e:
                raise TypeMismatch(str(e), operand) from None
        raise TypeMismatch("address() takes an integer literal or an address", operand)

    def _builtin_fsum(self, args) -> E.Expr:
        var_node = args[2]
        if not isinstance(var_node, ast.Name):
            raise ParseError("fsum() binds a plain variable name as its third argument")
        var = var_node.id

        if len(args) == 4:
            if not isinstance(args[3], ast.Name):
                raise ParseError("fsum() takes a function name as its fourth argument")
            func = self.schema.lookup_function(args[3].id)
        elif self.function is not None:
            func = self.function
        else:
            raise ParseError("fsum() needs a function name outside of a statement")

        index = func.index_of(var)
        binding = index if index is not None else _CALL
        scope = dict(self.bound)
        scope[var] = (func, binding)
        inner = self._child(_bound=scope)

        element = inner.visit(args[0])
        condition = inner.visit(args[1])
        _expect_integer(element, "element of fsum()")
        _expect(condition, BoolType, "filter of fsum()")

        total_type = IntType(None) if getattr(element.type, "signed", True) else UIntType(None)
        return E.FSum(total_type, element, condition, var, func.name, index)

    def generic_visit(self, node: ast.AST) -> E.Expr:
        raise ParseError(f"Unsupported expression: {type(node).__name__}")


def _expect(node: E.Expr, kind: type, what: str) -> None:
    if not isinstance(node.type, kind):
        raise TypeMismatch(f"Expected {kind.__name__[:-4].lower()} for {what}, got {node.type}", node)


def _expect_integer(node: E.Expr, what: str) -> None:
    if not node.type.is_integer:
        raise TypeMismatch(f"Expected integer for {what}, got {node.type}", node)


def _comparable(left: SolType, right: SolType) -> bool:
    if isinstance(left, MappingType) or isinstance(right, MappingType):
        return False
    if left.is_integer and right.is_integer:
        return True
    if isinstance(left, BytesType) and isinstance(right, BytesType):
        return True
    return type(left) is type(right)


def _assignable(value: SolType, target: SolType) -> bool:
    if target.is_integer:
        return value.is_integer
    if isinstance(target, BytesType):
        return isinstance(value, BytesType)
    return type(value) is type(target)


def _overflow_of(node: E.Expr):
    if isinstance(node, (E.FieldRef, E.Binary)):
        return node.overflow
    if isinstance(node, E.Old):
        return _overflow_of(node.operand)
    if isinstance(node, E.Index):
        return _overflow_of(node.base)
    return None


def compile_expression(text: str,
                       schema: ContractSchema,
                       function: Optional[str] = None,
                       allow_old: bool = False) -> E.Expr:
    """
    Compile one expression against a schema.

    Args:
        text: Expression in statement syntax, e.g. "this.value == old(this.value) + guess"
        schema: Subject contract schema
        function: Optional target function, whose parameters become visible
        allow_old: Whether old(...) is permitted (postconditions only)

    Raises:
        SpecificationError: on parse, name resolution or type errors
    """
    decl = schema.lookup_function(function) if function else None
    return ExpressionTranslator(schema, decl, allow_old).compile(text)
