"""
Statement parsing: `reverted(...)` and `finished(...)` forms
"""

import re
from typing import List, Optional

from ..core.config import IMPLIES_POST, ONE_WAY_FLAG, STATEMENT_KINDS
from ..core.errors import ParseError
from ..core.expr import TRUE
from ..core.models import Finished, RevertMode, Reverted, Statement
from ..core.schema import ContractSchema
from .expressions import ExpressionTranslator

_HEAD = re.compile(r"^\s*(\w+)\s*\((.*)\)\s*;?\s*$", re.DOTALL)
_OPEN = "([{"
_CLOSE = ")]}"


def split_top_level(text: str, separator: str) -> List[str]:
    """Split on `separator` where it is not nested inside brackets"""
    parts = []
    depth = 0
    start = 0
    i = 0
    while i < len(text):
        char = text[i]
        if char in _OPEN:
            depth += 1
        elif char in _CLOSE:
            depth -= 1
            if depth < 0:
                raise ParseError(f"Unbalanced brackets in '{text}'")
        elif depth == 0 and text.startswith(separator, i):
            parts.append(text[start:i])
            i += len(separator)
            start = i
            continue
        i += 1
    if depth != 0:
        raise ParseError(f"Unbalanced brackets in '{text}'")
    parts.append(text[start:])
    return parts


def parse_statement(text: str,
                    schema: ContractSchema,
                    label: Optional[str] = None,
                    oneway: bool = False) -> Statement:
    """
    Parse and type-check one statement against the subject contract schema.

    Forms:
        reverted(<function>, <predicate>)
        reverted(<function>, <predicate>, oneway)
        finished(<function>, <pre> |=> <post>)
        finished(<function>, <post>)

    Args:
        text: Statement source
        schema: Schema of the contract the statement is about
        label: Optional human-readable identity
        oneway: Force the one-directional reading of a `reverted` statement

    Raises:
        SpecificationError: if the statement is malformed
    """
    match = _HEAD.match(text)
    if not match:
        raise ParseError(f"Not a statement: '{text.strip()}'")
    kind, body = match.group(1), match.group(2)
    if kind not in STATEMENT_KINDS:
        raise ParseError(f"Unknown statement kind '{kind}'; expected one of {', '.join(STATEMENT_KINDS)}")

    args = [a.strip() for a in split_top_level(body, ",")]
    if len(args) < 2:
        raise ParseError(f"{kind}() takes a function name and a condition")
    function_name = args[0]
    if not function_name.isidentifier():
        raise ParseError(f"Invalid function name '{function_name}'")
    function = schema.lookup_function(function_name)
    source = text.strip()

    if kind == "reverted":
        if len(args) == 3:
            if args[2] != ONE_WAY_FLAG:
                raise ParseError(f"Unknown reverted() flag '{args[2]}'")
            oneway = True
        elif len(args) > 3:
            raise ParseError("reverted() takes at most three arguments")
        predicate = ExpressionTranslator(schema, function).compile_bool(args[1])
        mode = RevertMode.ONE_DIRECTIONAL if oneway else RevertMode.BICONDITIONAL
        return Reverted(schema.name, function_name, predicate, mode, label, source)

    if len(args) != 2:
        # Commas inside the condition are only valid within brackets
        raise ParseError("finished() takes a function name and one condition")
    sides = split_top_level(args[1], IMPLIES_POST)
    if len(sides) > 2:
        raise ParseError(f"At most one '{IMPLIES_POST}' per statement")
    if len(sides) == 2:
        pre = ExpressionTranslator(schema, function).compile_bool(sides[0])
        post_text = sides[1]
    else:
        pre = TRUE
        post_text = sides[0]
    post = ExpressionTranslator(schema, function, allow_old=True).compile_bool(post_text)
    return Finished(schema.name, function_name, pre, post, label, source)
