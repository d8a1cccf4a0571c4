"""
Operator tables and engine configuration
"""

import ast
import os
from dataclasses import dataclass
from typing import Optional

from .types import OverflowMode

# Operator mappings (Python AST operator -> statement syntax)
BIN_OP_SYMBOLS = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.FloorDiv: "/",
    ast.Mod: "%",
    ast.Pow: "**",
}

CMP_OP_SYMBOLS = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">="
}

# Statement syntax rewritten into Python before `ast.parse`
TOKEN_REWRITES = [
    ("&&", " and "),
    ("||", " or "),
]

# Names bound to the call under test rather than to storage
BLOCKCHAIN_VARIABLES = {
    "sender": "address",
    "value": "uint256",
}

BOOLEAN_NAMES = {"true": True, "false": False}

# Built-in functions and their arity (min, max)
BUILTINS = {
    "old": (1, 1),
    "balance": (1, 1),
    "fsum": (3, 4),
    "address": (1, 1),
}

STATEMENT_KINDS = ("reverted", "finished")
IMPLIES_POST = "|=>"
ONE_WAY_FLAG = "oneway"


@dataclass
class EngineConfig:
    """Runtime configuration for the verifier"""
    overflow: OverflowMode = OverflowMode.CHECKED
    report_all: bool = False
    max_workers: Optional[int] = None
    cache_dir: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Build a configuration from `TXSPEC_*` environment variables.

        TXSPEC_OVERFLOW: wrapping | saturating | checked
        TXSPEC_REPORT_ALL: 1/true to collect every failing transaction
        TXSPEC_MAX_WORKERS: thread pool size for multi-statement runs
        TXSPEC_CACHE_DIR: directory of the on-disk verdict cache
        """
        overflow = os.getenv("TXSPEC_OVERFLOW", OverflowMode.CHECKED.value)
        report_all = os.getenv("TXSPEC_REPORT_ALL", "").lower() in ("1", "true", "yes")
        workers = os.getenv("TXSPEC_MAX_WORKERS")
        return cls(
            overflow=OverflowMode(overflow.lower()),
            report_all=report_all,
            max_workers=int(workers) if workers else None,
            cache_dir=os.getenv("TXSPEC_CACHE_DIR") or None
        )
