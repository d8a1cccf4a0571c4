"""
Tests for integer typing and bounded arithmetic
"""

import pytest

from txspec.core.errors import ArithmeticFault
from txspec.core.schema import ContractRegistry, ContractSchema
from txspec.core.state import StateSnapshot
from txspec.core.types import (INT_LITERAL, IntType, OverflowMode, UIntType, integer_power,
                               normalize_address, parse_type, wider_integer)
from txspec.engine.evaluator import EvalContext, evaluate_text
from txspec.translators.statements import parse_statement
from txspec.verdicts import ResultKind, VerdictStatus
from txspec.verify import Verifier

WALLET = normalize_address(4)


def wallet_context(storage, overflow=OverflowMode.CHECKED):
    schema = ContractSchema.build(
        "Wallet",
        fields={"big": "int", "small": "int8", "total": "uint"},
        functions={"pay": []},
    )
    registry = ContractRegistry({WALLET: schema})
    return EvalContext(state=StateSnapshot(registry, {WALLET: storage}), subject=WALLET, overflow=overflow)


def test_bare_integer_names_are_256_bit():
    assert parse_type("uint") == UIntType(256)
    assert parse_type("int") == IntType(256)
    assert parse_type("mapping(address => uint)") == parse_type("mapping(address => uint256)")


def test_uint_field_wraps():
    ctx = wallet_context({"total": 2 ** 256 - 1}, OverflowMode.WRAPPING)
    assert evaluate_text("total + 1", ctx).value == 0
    with pytest.raises(ArithmeticFault):
        evaluate_text("total + 1", wallet_context({"total": 2 ** 256 - 1}))


def test_literal_type_is_distinct():
    """Only literals take the width of the other operand"""
    assert INT_LITERAL != IntType(None)
    assert wider_integer(INT_LITERAL, IntType(8)) == IntType(8)
    assert wider_integer(IntType(None), IntType(8)) == IntType(None)
    assert wider_integer(IntType(256), IntType(8)) == IntType(256)


def test_wide_plus_narrow_field():
    ctx = wallet_context({"big": 1000, "small": 1})
    assert evaluate_text("big + small == 1001", ctx).value is True
    assert evaluate_text("small + 1", ctx).value == 2


@pytest.mark.parametrize("base,exponent,sol_type,mode,expected", [
    (2, 8, UIntType(8), OverflowMode.WRAPPING, 0),
    (2, 8, UIntType(8), OverflowMode.SATURATING, 255),
    (2, 7, UIntType(8), OverflowMode.CHECKED, 128),
    (-2, 7, IntType(8), OverflowMode.CHECKED, -128),
    (-2, 9, IntType(8), OverflowMode.SATURATING, -128),
    (-2, 8, IntType(8), OverflowMode.SATURATING, 127),
    (3, 5, IntType(8), OverflowMode.WRAPPING, -13),
    (0, 0, UIntType(8), OverflowMode.CHECKED, 1),
    (-1, 2 ** 200 + 1, IntType(8), OverflowMode.CHECKED, -1),
    (2, 100, INT_LITERAL, OverflowMode.CHECKED, 2 ** 100),
])
def test_integer_power(base, exponent, sol_type, mode, expected):
    assert integer_power(base, exponent, sol_type, mode) == expected


def test_huge_power_is_bounded():
    """Results far beyond the type width are decided without building them"""
    huge = 2 ** 40
    assert integer_power(huge, huge, UIntType(256), OverflowMode.WRAPPING) == 0
    assert integer_power(huge, huge, UIntType(256), OverflowMode.SATURATING) == 2 ** 256 - 1
    with pytest.raises(ArithmeticFault):
        integer_power(huge, huge, UIntType(256), OverflowMode.CHECKED)
    with pytest.raises(ArithmeticFault):
        integer_power(2, 10 ** 6, INT_LITERAL, OverflowMode.WRAPPING)
    with pytest.raises(ArithmeticFault):
        integer_power(2, -1, UIntType(256), OverflowMode.WRAPPING)


def test_huge_power_is_an_error_result(chain, lottery):
    """An oversized power is an ERROR result and the run carries on"""
    chain.call("play", [2 ** 40], value=50)
    chain.call("play", [3], value=50)
    statement = parse_statement("reverted(play, guess ** guess > 5)", lottery)
    report = Verifier().verify(statement, chain.repository, report_all=True)

    assert report.status is VerdictStatus.FAIL
    assert [r.kind for r in report.results] == [ResultKind.ERROR, ResultKind.COUNTEREXAMPLE]
