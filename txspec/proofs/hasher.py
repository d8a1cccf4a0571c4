"""
Fingerprints for statements and traces.
Stable across formatting changes of the statement text.
"""

import hashlib
import json
from typing import Any, Dict


def _digest(components: Any) -> str:
    # Serialize to canonical JSON (sorted keys for stability)
    canonical = json.dumps(components, sort_keys=True, separators=(',', ':'), default=str)
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def statement_components(statement) -> Dict[str, Any]:
    """
    Semantic components of a statement.

    Expressions are rendered from the compiled AST, so whitespace, redundant
    parentheses and `this.` qualifiers do not change the result, while
    any change in meaning does.
    """
    from ..core.expr import render

    components = {
        "kind": statement.kind,
        "contract": statement.contract,
        "function": statement.function,
    }
    if statement.kind == "reverted":
        components["predicate"] = render(statement.predicate)
        components["mode"] = statement.mode.value
    else:
        components["precondition"] = render(statement.precondition)
        components["postcondition"] = render(statement.postcondition)
    return components


def compute_statement_hash(statement) -> str:
    """64-character SHA-256 hex digest of a compiled statement"""
    return _digest(statement_components(statement))


def registry_components(registry) -> Dict[str, Any]:
    """Deployed contracts with their declared fields, functions, views and overflow modes"""
    from ..ingest import schema_to_dict
    return {
        address: schema_to_dict(registry.schema_at(address))
        for address in sorted(registry.as_mapping())
    }


def compute_trace_hash(view) -> str:
    """
    SHA-256 of a trace view: deployed schemas, then every transaction's
    call, outcome and snapshots.

    Two views with identical content hash identically, whichever repository
    they come from.
    """
    from ..ingest import transaction_to_dict
    return _digest({
        "registry": registry_components(view.registry),
        "transactions": [transaction_to_dict(tx) for tx in view]
    })
