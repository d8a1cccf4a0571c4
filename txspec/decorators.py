"""
Decorators for attaching statements to contract interface classes.

Usage:
    @contract("Lottery")
    class LotteryInterface:
        @reverted("!started")
        @finished("started && value > cost |=> this.value == old(this.value) + guess")
        def play(self, guess: int):
            ...

The method name is the target function; `collect_statements` compiles every
attached statement against the contract schema.
"""

import inspect
from typing import Callable, List, Optional

from .core.models import Statement
from .core.schema import ContractSchema
from .translators.statements import parse_statement

_ATTR = "__txspec_statements__"


def contract(name: Optional[str] = None) -> Callable:
    """
    Name the contract an interface class describes.

    Without this decorator the class name is used.
    """
    def decorator(cls):
        cls.__txspec_contract__ = name or cls.__name__
        return cls
    return decorator


def _attach(func: Callable, entry: dict) -> Callable:
    # Decorators apply bottom-up; insert at the front to keep source order
    entries = getattr(func, _ATTR, None)
    if entries is None:
        entries = []
        setattr(func, _ATTR, entries)
    entries.insert(0, entry)
    return func


def reverted(predicate: str, oneway: bool = False, label: Optional[str] = None) -> Callable:
    """
    The call reverts when `predicate` holds over the pre-state.

    Args:
        predicate: Statement expression (e.g., "!started || value < cost")
        oneway: Only claim predicate => revert, nothing about the converse
        label: Optional statement identity
    """
    def decorator(func: Callable) -> Callable:
        return _attach(func, {"kind": "reverted", "condition": predicate,
                              "oneway": oneway, "label": label})
    return decorator


def finished(condition: str, label: Optional[str] = None) -> Callable:
    """
    A call satisfying the precondition succeeds and establishes the postcondition.

    Args:
        condition: "<pre> |=> <post>" or just "<post>"
        label: Optional statement identity
    """
    def decorator(func: Callable) -> Callable:
        return _attach(func, {"kind": "finished", "condition": condition,
                              "oneway": False, "label": label})
    return decorator


def collect_statements(cls, schema: ContractSchema) -> List[Statement]:
    """
    Compile the statements attached to the methods of `cls`.

    Raises:
        SpecificationError: if a statement does not fit the schema
        ValueError: if the class describes a different contract
    """
    name = getattr(cls, "__txspec_contract__", cls.__name__)
    if name != schema.name:
        raise ValueError(f"{cls.__name__} describes '{name}', not '{schema.name}'")

    statements = []
    for method_name, method in inspect.getmembers(cls, inspect.isfunction):
        for entry in getattr(method, _ATTR, []):
            text = f"{entry['kind']}({method_name}, {entry['condition']})"
            statements.append(parse_statement(text, schema, entry["label"], entry["oneway"]))
    return statements
