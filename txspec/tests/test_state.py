"""
Tests for state snapshots, schemas and values
"""

import pytest

from txspec.core.errors import ParseError, TypeMismatch, UnknownField
from txspec.core.schema import ContractRegistry, ContractSchema
from txspec.core.state import StateSnapshot
from txspec.core.types import (AddressType, BytesType, IntType, MappingType,
                               OverflowMode, UIntType, fit_integer,
                               normalize_address, parse_type)

LOTTERY = normalize_address(1)
ALICE = normalize_address(0xa11ce)


def test_parse_type():
    assert parse_type("uint256") == UIntType(256)
    assert parse_type("int8") == IntType(8)
    assert parse_type("address") == AddressType()
    assert parse_type("bytes32") == BytesType(32)
    assert parse_type("mapping(address => mapping(uint256 => bool))") == MappingType(
        AddressType(), MappingType(UIntType(256), parse_type("bool"))
    )
    assert str(parse_type("mapping(address=>uint8)")) == "mapping(address => uint8)"


def test_parse_type_errors():
    for bad in ["uint7", "uint512", "bytes33", "string", "mapping(address)"]:
        with pytest.raises(ParseError):
            parse_type(bad)


def test_normalize_address():
    assert normalize_address(1) == "0x" + "0" * 39 + "1"
    assert normalize_address("0xABC") == normalize_address(0xabc)
    with pytest.raises(ValueError):
        normalize_address("0xZZ")
    with pytest.raises(ValueError):
        normalize_address(-1)


def test_fit_integer_modes():
    u8 = UIntType(8)
    i8 = IntType(8)
    assert fit_integer(300, u8, OverflowMode.WRAPPING) == 44
    assert fit_integer(300, u8, OverflowMode.SATURATING) == 255
    assert fit_integer(-1, u8, OverflowMode.SATURATING) == 0
    assert fit_integer(128, i8, OverflowMode.WRAPPING) == -128
    assert fit_integer(-129, i8, OverflowMode.SATURATING) == -128


def test_schema_lookup(lottery):
    assert lottery.lookup_field("cost").type == UIntType(256)
    assert lottery.lookup_function("play").index_of("guess") == 0
    with pytest.raises(UnknownField):
        lottery.lookup_field("jackpot")
    with pytest.raises(UnknownField):
        lottery.lookup_function("refund")


def test_view_cannot_shadow_field():
    with pytest.raises(ValueError):
        ContractSchema.build("Bad", fields={"total": "uint256"}, views={"total": "1"})


def test_registry(lottery):
    registry = ContractRegistry()
    registry.register(1, lottery)
    assert registry.schema_at(LOTTERY) is lottery
    assert LOTTERY in registry
    assert "not an address" not in registry
    assert registry.addresses_of("Lottery") == [LOTTERY]
    assert registry.schema_named("Lottery") is lottery
    with pytest.raises(UnknownField):
        registry.schema_at(2)
    with pytest.raises(ValueError):
        registry.register(LOTTERY, ContractSchema.build("Other"))


def test_read_fields(genesis):
    assert genesis.read(LOTTERY, "value").value == 100
    assert genesis.read(LOTTERY, "started").value is True
    assert genesis.read(LOTTERY, "plays", ALICE).value == 0
    assert genesis.balance_of(ALICE) == 1000
    assert genesis.balance_of(normalize_address(99)) == 0


def test_nested_mapping_keys_are_normalized(registry):
    state = StateSnapshot(registry, {LOTTERY: {"plays": {"0xA11CE": 4}}})
    assert state.read(LOTTERY, "plays", 0xa11ce).value == 4
    with pytest.raises(TypeMismatch):
        state.read(LOTTERY, "cost", ALICE)


def test_construction_validates(registry):
    with pytest.raises(UnknownField):
        StateSnapshot(registry, {LOTTERY: {"jackpot": 1}})
    with pytest.raises(TypeMismatch):
        StateSnapshot(registry, {LOTTERY: {"value": "lots"}})
    with pytest.raises(TypeMismatch):
        StateSnapshot(registry, {LOTTERY: {"started": 1}})
    with pytest.raises(TypeMismatch):
        StateSnapshot(registry, {LOTTERY: {"round": 256}})
    with pytest.raises(TypeMismatch):
        StateSnapshot(registry, balances={ALICE: -5})
    with pytest.raises(UnknownField):
        StateSnapshot(registry, {normalize_address(99): {}})


def test_snapshot_is_immutable(genesis):
    with pytest.raises(TypeError):
        genesis.storage_of(LOTTERY)["value"] = 0
    with pytest.raises(TypeError):
        genesis.balances[ALICE] = 0


def test_updated_leaves_original(genesis):
    later = genesis.updated({LOTTERY: {"value": 150}}, {ALICE: 900})
    assert genesis.read(LOTTERY, "value").value == 100
    assert later.read(LOTTERY, "value").value == 150
    assert later.read(LOTTERY, "cost").value == 10
    assert later.balance_of(ALICE) == 900


def test_equality_ignores_explicit_zeros(registry):
    implicit = StateSnapshot(registry, {LOTTERY: {"value": 5}})
    explicit = StateSnapshot(registry, {LOTTERY: {"value": 5, "cost": 0, "plays": {}}}, {ALICE: 0})
    assert implicit == explicit
    assert implicit.same_contract_state(explicit, LOTTERY)
    assert implicit != StateSnapshot(registry, {LOTTERY: {"value": 6}})


def test_to_dict(registry):
    state = StateSnapshot(registry, {LOTTERY: {"value": 5, "cost": 1}}, {ALICE: 3})
    data = state.to_dict()
    assert list(data["storage"][LOTTERY]) == ["cost", "value"]
    assert data["balances"] == {ALICE: 3}
