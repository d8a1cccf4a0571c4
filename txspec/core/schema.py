"""
Contract schemas: declared storage fields, functions and views.

A schema is the static description that expressions are compiled against,
so an unknown field is detected before any trace is scanned.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import UnknownField
from .types import OverflowMode, SolType, normalize_address, parse_type

TypeSpec = Union[str, SolType]


def _as_type(spec: TypeSpec) -> SolType:
    return spec if isinstance(spec, SolType) else parse_type(spec)


@dataclass(frozen=True)
class FieldDecl:
    """A declared storage field"""
    name: str
    type: SolType
    overflow: Optional[OverflowMode] = None


@dataclass(frozen=True)
class Param:
    name: str
    type: SolType


@dataclass(frozen=True)
class FunctionDecl:
    """A declared external function and its ordered parameters"""
    name: str
    params: Tuple[Param, ...] = ()

    def index_of(self, name: str) -> Optional[int]:
        for i, param in enumerate(self.params):
            if param.name == name:
                return i
        return None


@dataclass
class ContractSchema:
    """
    Declaration of one contract type.

    Example:
        ContractSchema.build(
            "Lottery",
            fields={"started": "bool", "value": "uint256", "cost": "uint256"},
            functions={"play": [("guess", "uint256")]},
            views={"pot": "this.value + balance(this)"}
        )
    """
    name: str
    fields: Dict[str, FieldDecl] = field(default_factory=dict)
    functions: Dict[str, FunctionDecl] = field(default_factory=dict)
    views: Dict[str, str] = field(default_factory=dict)
    overflow: Optional[OverflowMode] = None

    @classmethod
    def build(cls,
              name: str,
              fields: Optional[Mapping[str, TypeSpec]] = None,
              functions: Optional[Mapping[str, Sequence[Tuple[str, TypeSpec]]]] = None,
              views: Optional[Mapping[str, str]] = None,
              overflow: Optional[Union[str, OverflowMode]] = None,
              field_overflow: Optional[Mapping[str, Union[str, OverflowMode]]] = None) -> "ContractSchema":
        field_overflow = field_overflow or {}
        decls = {}
        for field_name, spec in (fields or {}).items():
            mode = field_overflow.get(field_name)
            decls[field_name] = FieldDecl(
                field_name, _as_type(spec), OverflowMode(mode) if mode else None
            )
        funcs = {
            fn: FunctionDecl(fn, tuple(Param(p, _as_type(t)) for p, t in params))
            for fn, params in (functions or {}).items()
        }
        for view in (views or {}):
            if view in decls:
                raise ValueError(f"View {view!r} shadows a storage field of {name}")
        return cls(
            name=name,
            fields=decls,
            functions=funcs,
            views=dict(views or {}),
            overflow=OverflowMode(overflow) if overflow else None
        )

    def lookup_field(self, name: str) -> FieldDecl:
        try:
            return self.fields[name]
        except KeyError:
            raise UnknownField(f"{self.name} has no field '{name}'") from None

    def lookup_function(self, name: str) -> FunctionDecl:
        try:
            return self.functions[name]
        except KeyError:
            raise UnknownField(f"{self.name} has no function '{name}'") from None

    def overflow_for(self, name: str, default: OverflowMode) -> OverflowMode:
        decl = self.fields.get(name)
        if decl is not None and decl.overflow is not None:
            return decl.overflow
        return self.overflow or default


class ContractRegistry:
    """Maps deployed contract addresses to their schemas"""

    def __init__(self, deployments: Optional[Mapping[str, ContractSchema]] = None):
        self._by_address: Dict[str, ContractSchema] = {}
        for address, schema in (deployments or {}).items():
            self.register(address, schema)

    def register(self, address, schema: ContractSchema) -> str:
        address = normalize_address(address)
        existing = self._by_address.get(address)
        if existing is not None and existing is not schema:
            raise ValueError(f"Address {address} already registered as {existing.name}")
        self._by_address[address] = schema
        return address

    def schema_at(self, address) -> ContractSchema:
        address = normalize_address(address)
        try:
            return self._by_address[address]
        except KeyError:
            raise UnknownField(f"No contract deployed at {address}") from None

    def addresses_of(self, name: str) -> List[str]:
        return [a for a, s in self._by_address.items() if s.name == name]

    def schemas(self) -> Iterable[ContractSchema]:
        seen = {}
        for schema in self._by_address.values():
            seen.setdefault(schema.name, schema)
        return list(seen.values())

    def schema_named(self, name: str) -> ContractSchema:
        for schema in self._by_address.values():
            if schema.name == name:
                return schema
        raise UnknownField(f"No contract named '{name}' is deployed")

    def __contains__(self, address) -> bool:
        try:
            return normalize_address(address) in self._by_address
        except ValueError:
            return False

    def as_mapping(self) -> Mapping[str, ContractSchema]:
        return MappingProxyType(self._by_address)
