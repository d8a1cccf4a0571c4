"""
Trace and schema ingestion.

The execution environment hands traces over as JSON-like records; they are
validated here with pydantic and turned into the engine's typed objects.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator

from .core.errors import TraceError, TxSpecError
from .core.models import CallContext, Outcome, Transaction
from .core.schema import ContractRegistry, ContractSchema
from .core.state import StateSnapshot
from .core.types import OverflowMode, format_value
from .trace import TraceRepository


class SchemaRecord(BaseModel):
    """Declaration of a contract: fields, functions and views"""
    name: str
    fields: Dict[str, str] = Field(default_factory=dict)
    functions: Dict[str, List[Tuple[str, str]]] = Field(default_factory=dict)
    views: Dict[str, str] = Field(default_factory=dict)
    overflow: Optional[OverflowMode] = None
    field_overflow: Dict[str, OverflowMode] = Field(default_factory=dict)

    def to_schema(self) -> ContractSchema:
        return ContractSchema.build(
            self.name,
            fields=self.fields,
            functions=self.functions,
            views=self.views,
            overflow=self.overflow,
            field_overflow=self.field_overflow
        )


class DeploymentRecord(BaseModel):
    address: str
    contract: str


class StateRecord(BaseModel):
    storage: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    balances: Dict[str, int] = Field(default_factory=dict)

    def to_snapshot(self, registry: ContractRegistry) -> StateSnapshot:
        return StateSnapshot(registry, self.storage, self.balances)


class CallRecord(BaseModel):
    sender: str
    target: str
    function: str
    args: Union[List[Any], Dict[str, Any]] = Field(default_factory=list)
    value: int = 0


class TransactionRecord(BaseModel):
    seq: Optional[int] = None
    call: CallRecord
    pre: StateRecord
    outcome: Outcome
    post: Optional[StateRecord] = None

    @model_validator(mode="after")
    def _post_iff_succeeded(self):
        if self.outcome is Outcome.SUCCEEDED and self.post is None:
            raise ValueError("a succeeded transaction needs a post-state")
        if self.outcome is Outcome.REVERTED and self.post is not None:
            raise ValueError("a reverted transaction has no post-state")
        return self


class TraceRecord(BaseModel):
    """A complete trace: deployed schemas plus ordered transactions"""
    schemas: List[SchemaRecord]
    deployments: List[DeploymentRecord]
    transactions: List[TransactionRecord] = Field(default_factory=list)


def load_registry(schemas: List[SchemaRecord], deployments: List[DeploymentRecord]) -> ContractRegistry:
    by_name = {}
    for record in schemas:
        if record.name in by_name:
            raise TxSpecError(f"Schema '{record.name}' declared twice")
        by_name[record.name] = record.to_schema()
    registry = ContractRegistry()
    for deployment in deployments:
        if deployment.contract not in by_name:
            raise TxSpecError(f"Deployment of undeclared contract '{deployment.contract}'")
        registry.register(deployment.address, by_name[deployment.contract])
    return registry


def to_transaction(record: TransactionRecord, registry: ContractRegistry, seq: int) -> Transaction:
    call = CallContext.create(
        registry,
        sender=record.call.sender,
        target=record.call.target,
        function=record.call.function,
        args=record.call.args,
        value=record.call.value
    )
    post = record.post.to_snapshot(registry) if record.post is not None else None
    return Transaction(seq, call, record.pre.to_snapshot(registry), record.outcome, post)


def load_trace(data: Union[TraceRecord, Dict[str, Any]], check_causality: bool = True) -> TraceRepository:
    """
    Build a trace repository from a trace record.

    Transactions without an explicit `seq` are numbered after the previous one.

    Raises:
        pydantic.ValidationError: if the record is malformed
        TraceError: if the transactions violate the trace invariants
    """
    record = data if isinstance(data, TraceRecord) else TraceRecord.model_validate(data)
    registry = load_registry(record.schemas, record.deployments)
    repository = TraceRepository(registry, check_causality=check_causality)
    next_seq = 0
    for position, tx_record in enumerate(record.transactions):
        seq = tx_record.seq if tx_record.seq is not None else next_seq
        try:
            repository.append(to_transaction(tx_record, registry, seq))
        except TraceError:
            raise
        except TxSpecError as e:
            raise TraceError(f"Transaction #{position}: {e.message}") from None
        next_seq = seq + 1
    return repository


def schema_to_dict(schema: ContractSchema) -> Dict[str, Any]:
    return {
        "name": schema.name,
        "fields": {name: str(decl.type) for name, decl in sorted(schema.fields.items())},
        "functions": {
            name: [[p.name, str(p.type)] for p in decl.params]
            for name, decl in sorted(schema.functions.items())
        },
        "views": dict(sorted(schema.views.items())),
        "overflow": schema.overflow.value if schema.overflow else None,
        "field_overflow": {
            name: decl.overflow.value
            for name, decl in sorted(schema.fields.items()) if decl.overflow
        }
    }


def transaction_to_dict(tx: Transaction) -> Dict[str, Any]:
    return {
        "seq": tx.seq,
        "call": {
            "sender": tx.call.sender,
            "target": tx.call.target,
            "function": tx.call.function,
            "args": [format_value(a) for a in tx.call.args],
            "value": tx.call.value
        },
        "pre": tx.pre.to_dict(),
        "outcome": tx.outcome.value,
        "post": tx.post.to_dict() if tx.post is not None else None
    }


def dump_trace(repository: TraceRepository) -> Dict[str, Any]:
    """Inverse of `load_trace`"""
    registry = repository.registry
    return {
        "schemas": [schema_to_dict(s) for s in registry.schemas()],
        "deployments": [
            {"address": address, "contract": schema.name}
            for address, schema in sorted(registry.as_mapping().items())
        ],
        "transactions": [transaction_to_dict(tx) for tx in repository.view()]
    }
