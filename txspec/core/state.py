"""
Immutable snapshots of blockchain-visible state
"""

from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .errors import TypeMismatch, UnknownField
from .schema import ContractRegistry
from .types import MappingType, TypedValue, coerce_value, format_value, normalize_address


class StateSnapshot:
    """
    Contract storage and native balances at one point in time.

    Storage is keyed by contract address, then field name. Every field is
    validated against the registry's schema and converted to its canonical
    Python value; the resulting structure is read-only and can be shared by
    concurrent statement checks.
    """

    __slots__ = ("_storage", "_balances", "_registry")

    def __init__(self,
                 registry: ContractRegistry,
                 storage: Optional[Mapping[Any, Mapping[str, Any]]] = None,
                 balances: Optional[Mapping[Any, int]] = None):
        self._registry = registry
        frozen: Dict[str, Mapping[str, Any]] = {}
        for contract, fields in (storage or {}).items():
            address = normalize_address(contract)
            schema = registry.schema_at(address)
            values = {}
            for name, raw in fields.items():
                decl = schema.lookup_field(name)
                try:
                    values[name] = coerce_value(decl.type, raw)
                except ValueError as e:
                    raise TypeMismatch(f"{schema.name}.{name}: {e}") from None
            frozen[address] = MappingProxyType(values)
        self._storage = MappingProxyType(frozen)

        accounts = {}
        for account, amount in (balances or {}).items():
            if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
                raise TypeMismatch(f"Balance of {account} must be a non-negative integer")
            accounts[normalize_address(account)] = amount
        self._balances = MappingProxyType(accounts)

    @property
    def registry(self) -> ContractRegistry:
        return self._registry

    @property
    def balances(self) -> Mapping[str, int]:
        return self._balances

    def contracts(self):
        return self._storage.keys()

    def storage_of(self, contract) -> Mapping[str, Any]:
        return self._storage.get(normalize_address(contract), MappingProxyType({}))

    def read(self, contract, field: str, *indices) -> TypedValue:
        """
        Read a storage field, descending into mappings for each index.

        A field or mapping key that was never written reads as the zero value
        of its type.
        """
        address = normalize_address(contract)
        schema = self._registry.schema_at(address)
        decl = schema.lookup_field(field)

        current_type = decl.type
        current = self.storage_of(address).get(field, current_type.zero())
        for index in indices:
            if not isinstance(current_type, MappingType):
                raise TypeMismatch(f"{schema.name}.{field} of type {decl.type} is not indexable that deep")
            try:
                key = coerce_value(current_type.key, index)
            except ValueError as e:
                raise TypeMismatch(f"Bad key for {schema.name}.{field}: {e}") from None
            current_type = current_type.value
            current = current.get(key, current_type.zero())
        return TypedValue(current_type, current)

    def balance_of(self, address) -> int:
        return self._balances.get(normalize_address(address), 0)

    def updated(self,
                storage: Optional[Mapping[Any, Mapping[str, Any]]] = None,
                balances: Optional[Mapping[Any, int]] = None) -> "StateSnapshot":
        """
        Return a new snapshot with the given fields and balances replaced.

        Mapping fields are replaced wholesale, not merged.
        """
        merged: Dict[str, Dict[str, Any]] = {
            address: dict(fields) for address, fields in self._storage.items()
        }
        for contract, fields in (storage or {}).items():
            merged.setdefault(normalize_address(contract), {}).update(fields)
        new_balances = dict(self._balances)
        for account, amount in (balances or {}).items():
            new_balances[normalize_address(account)] = amount
        return StateSnapshot(self._registry, merged, new_balances)

    def same_contract_state(self, other: "StateSnapshot", contract) -> bool:
        """Whether both snapshots agree on storage and balance of `contract`"""
        address = normalize_address(contract)
        return (self._normalized(address) == other._normalized(address)
                and self.balance_of(address) == other.balance_of(address))

    def _normalized(self, address: str) -> Dict[str, Any]:
        # Unwritten fields read as zero, so compare with zeros filled in
        try:
            schema = self._registry.schema_at(address)
        except UnknownField:
            return {}
        stored = self.storage_of(address)
        return {
            name: _thaw(stored.get(name, decl.type.zero()))
            for name, decl in schema.fields.items()
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form, keys sorted for stable hashing"""
        return {
            "storage": {
                address: {name: format_value(fields[name]) for name in sorted(fields)}
                for address, fields in sorted(self._storage.items())
            },
            "balances": dict(sorted(self._balances.items()))
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, StateSnapshot):
            return NotImplemented
        addresses = set(self._storage) | set(other._storage)
        return (all(self._normalized(a) == other._normalized(a) for a in addresses)
                and _nonzero(self._balances) == _nonzero(other._balances))

    def __repr__(self) -> str:
        return f"StateSnapshot(contracts={len(self._storage)}, accounts={len(self._balances)})"


def _thaw(value):
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    return value


def _nonzero(balances: Mapping[str, int]) -> Dict[str, int]:
    return {a: b for a, b in balances.items() if b}
