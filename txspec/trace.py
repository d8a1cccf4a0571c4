"""
Append-only trace of executed transactions.

The execution environment is the single writer; verification only reads.
Readers work on a `TraceView`, which captures the trace length when it is
created, so a scan is unaffected by transactions appended afterwards.
"""

import logging
import threading
from typing import Dict, Iterator, List, Optional

from .core.errors import TraceError
from .core.models import CallContext, Outcome, Transaction
from .core.schema import ContractRegistry
from .core.state import StateSnapshot

logger = logging.getLogger(__name__)


class TraceView:
    """Read-only, length-bounded window onto a trace"""

    def __init__(self, transactions: List[Transaction], length: int, registry: ContractRegistry):
        self._transactions = transactions
        self._length = length
        self.registry = registry

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> Iterator[Transaction]:
        for i in range(self._length):
            yield self._transactions[i]

    def __getitem__(self, index: int) -> Transaction:
        if not -self._length <= index < self._length:
            raise IndexError(index)
        return self._transactions[index % self._length]

    def by_seq(self, seq: int) -> Optional[Transaction]:
        for tx in self:
            if tx.seq == seq:
                return tx
        return None

    def matching(self,
                 contract: Optional[str] = None,
                 function: Optional[str] = None,
                 target: Optional[str] = None,
                 succeeded_only: bool = False,
                 before: Optional[int] = None) -> Iterator[Transaction]:
        """
        Transactions in sequence order that call `function`.

        Args:
            contract: Contract schema name the call must target
            function: Function name
            target: Exact contract address the call must target
            succeeded_only: Skip reverted calls
            before: Only transactions with a sequence number below this
        """
        for tx in self:
            if before is not None and tx.seq >= before:
                break
            if function is not None and tx.call.function != function:
                continue
            if target is not None and tx.call.target != target:
                continue
            if contract is not None and self.registry.schema_at(tx.call.target).name != contract:
                continue
            if succeeded_only and not tx.succeeded:
                continue
            yield tx


class TraceRepository:
    """
    Ordered, append-only log of transactions.

    `append` enforces the ingestion invariants: strictly increasing sequence
    numbers, registered call targets, and causal continuity (the pre-state
    of a transaction agrees with the latest earlier state for every contract
    both mention).
    """

    def __init__(self, registry: ContractRegistry, check_causality: bool = True):
        self.registry = registry
        self.check_causality = check_causality
        self._transactions: List[Transaction] = []
        self._latest: Dict[str, StateSnapshot] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._transactions)

    def append(self, tx: Transaction) -> Transaction:
        with self._lock:
            if self._transactions and tx.seq <= self._transactions[-1].seq:
                raise TraceError(
                    f"Sequence number {tx.seq} does not follow {self._transactions[-1].seq}"
                )
            if tx.call.target not in self.registry:
                raise TraceError(f"Transaction {tx.seq} targets unknown contract {tx.call.target}")
            if self.check_causality:
                self._check_continuity(tx)

            self._transactions.append(tx)
            state = tx.effective_state
            for address in set(state.contracts()) | {tx.call.target}:
                self._latest[address] = state

        logger.debug("Appended transaction %d: %s.%s -> %s",
                     tx.seq, tx.call.target, tx.call.function, tx.outcome.value)
        return tx

    def record(self,
               call: CallContext,
               pre: StateSnapshot,
               outcome: Outcome,
               post: Optional[StateSnapshot] = None) -> Transaction:
        """Append a transaction with the next sequence number"""
        with self._lock:
            seq = self._transactions[-1].seq + 1 if self._transactions else 0
            return self.append(Transaction(seq, call, pre, outcome, post))

    def _check_continuity(self, tx: Transaction) -> None:
        mentioned = set(tx.pre.contracts()) | {tx.call.target}
        for address in sorted(mentioned & set(self._latest)):
            if not self._latest[address].same_contract_state(tx.pre, address):
                raise TraceError(
                    f"Pre-state of transaction {tx.seq} disagrees with the trace for contract {address}"
                )

    def view(self) -> TraceView:
        """Snapshot of the trace as it is now"""
        with self._lock:
            return TraceView(self._transactions, len(self._transactions), self.registry)
