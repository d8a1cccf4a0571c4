"""
txspec fingerprints and verdict cache

This module fingerprints statements and traces, enabling:
- Stable statement identities for counterexample reports
- Reuse of verdicts for an unchanged statement over an unchanged trace
"""

from txspec.proofs.hasher import compute_statement_hash, compute_trace_hash
from txspec.proofs.manager import VerdictCache

__all__ = ['compute_statement_hash', 'compute_trace_hash', 'VerdictCache']
