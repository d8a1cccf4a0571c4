"""
Parser for statement files.

Format:
    # comment
    contract Lottery
    @label pays_out
    finished(play, started && value > cost |=> this.value == old(this.value) + guess)
    @oneway
    reverted(play, !started)

A statement may span several lines while its brackets are open. `@label`
and `@oneway` apply to the next statement; `contract` sets the subject for
all statements that follow.
"""

import re
from typing import Any, Dict, List, Optional

from .core.errors import ParseError, SpecificationError
from .core.models import Statement
from .core.schema import ContractRegistry
from .translators.statements import parse_statement

_CONTRACT = re.compile(r"^contract\s+(\w+)\s*$")
_LABEL = re.compile(r"^@label\s+([\w.\-]+)\s*$")


class SpecFileParser:
    """Parse statement files into statement descriptors"""

    def parse_file(self, file_path: str) -> List[Dict[str, Any]]:
        """
        Parse a statement file.

        Args:
            file_path: Path to the statement file

        Returns:
            List of dicts with statement info:
            {
                "source": str,
                "contract": str or None,
                "label": str or None,
                "oneway": bool,
                "lineno": int
            }
        """
        with open(file_path, 'r') as f:
            return self.parse_text(f.read())

    def parse_text(self, text: str) -> List[Dict[str, Any]]:
        statements = []
        contract: Optional[str] = None
        label: Optional[str] = None
        oneway = False
        buffer: List[str] = []
        start_line = 0
        depth = 0

        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.split("#", 1)[0].rstrip()
            if not line.strip():
                continue

            if not buffer:
                stripped = line.strip()
                match = _CONTRACT.match(stripped)
                if match:
                    contract = match.group(1)
                    continue
                match = _LABEL.match(stripped)
                if match:
                    label = match.group(1)
                    continue
                if stripped == "@oneway":
                    oneway = True
                    continue
                if stripped.startswith("@"):
                    raise ParseError(f"Line {lineno}: unknown annotation '{stripped}'")
                start_line = lineno

            buffer.append(line.strip())
            depth += line.count("(") - line.count(")")
            if depth < 0:
                raise ParseError(f"Line {lineno}: unbalanced ')'")
            if depth == 0:
                statements.append({
                    "source": " ".join(buffer),
                    "contract": contract,
                    "label": label,
                    "oneway": oneway,
                    "lineno": start_line
                })
                buffer = []
                label = None
                oneway = False

        if buffer:
            raise ParseError(f"Line {start_line}: statement is not closed")
        return statements


def load_statements(file_path: str,
                    registry: ContractRegistry,
                    default_contract: Optional[str] = None) -> List[Statement]:
    """
    Parse and compile every statement of a file.

    Raises:
        SpecificationError: for the first malformed statement, with its line number
    """
    compiled = []
    for info in SpecFileParser().parse_file(file_path):
        contract = info["contract"] or default_contract
        if contract is None:
            raise ParseError(f"Line {info['lineno']}: no contract declared for statement")
        try:
            schema = registry.schema_named(contract)
            compiled.append(parse_statement(info["source"], schema, info["label"], info["oneway"]))
        except SpecificationError as e:
            raise type(e)(f"Line {info['lineno']}: {e.message}", e.expr) from None
    return compiled
