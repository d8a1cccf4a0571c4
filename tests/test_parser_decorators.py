#!/usr/bin/env python3
"""
Test statement files and interface decorators.
"""

import pytest

from txspec.core.errors import ParseError, UnknownField
from txspec.core.models import Finished, RevertMode, Reverted
from txspec.decorators import collect_statements, contract, finished, reverted
from txspec.parser import SpecFileParser, load_statements

STATEMENTS = """
# Lottery rules
contract Lottery

@label needs_start
reverted(play, !started)

@label pays_out
finished(play,
         started && value > cost
         |=> this.value == old(this.value) + guess)

@oneway
reverted(play, value < cost)   # cheap plays revert

contract Crowdsale
reverted(finalize, isFinalized)
"""


def test_parse_text():
    """Annotations apply to the next statement only."""
    entries = SpecFileParser().parse_text(STATEMENTS)
    assert [e["contract"] for e in entries] == ["Lottery", "Lottery", "Lottery", "Crowdsale"]
    assert [e["label"] for e in entries] == ["needs_start", "pays_out", None, None]
    assert [e["oneway"] for e in entries] == [False, False, True, False]
    assert entries[1]["lineno"] == 9
    assert entries[1]["source"] == (
        "finished(play, started && value > cost |=> this.value == old(this.value) + guess)"
    )
    assert entries[2]["source"] == "reverted(play, value < cost)"


def test_unknown_annotation():
    with pytest.raises(ParseError):
        SpecFileParser().parse_text("@strict\nreverted(play, started)")


def test_unclosed_statement():
    with pytest.raises(ParseError):
        SpecFileParser().parse_text("reverted(play,\n  started")
    with pytest.raises(ParseError):
        SpecFileParser().parse_text("reverted(play, started))")


def test_load_statements(tmp_path, registry):
    path = tmp_path / "lottery.spec"
    path.write_text(STATEMENTS)
    statements = load_statements(str(path), registry)

    assert len(statements) == 4
    assert isinstance(statements[0], Reverted) and statements[0].identity == "needs_start"
    assert isinstance(statements[1], Finished) and statements[1].identity == "pays_out"
    assert statements[2].mode is RevertMode.ONE_DIRECTIONAL
    assert statements[3].contract == "Crowdsale"


def test_load_statements_reports_line(tmp_path, registry):
    path = tmp_path / "broken.spec"
    path.write_text("contract Lottery\n\nreverted(play, jackpot > 0)\n")
    with pytest.raises(UnknownField) as info:
        load_statements(str(path), registry)
    assert info.value.message.startswith("Line 3:")


def test_load_statements_needs_contract(tmp_path, registry):
    path = tmp_path / "anonymous.spec"
    path.write_text("reverted(play, !started)\n")
    with pytest.raises(ParseError):
        load_statements(str(path), registry)
    assert len(load_statements(str(path), registry, default_contract="Lottery")) == 1


@contract("Lottery")
class LotteryInterface:
    @reverted("!started", label="needs_start")
    @finished("started && value > cost |=> this.value == old(this.value) + guess", label="pays_out")
    def play(self, guess: int):
        ...

    @reverted("cost < amount", oneway=True)
    def withdraw(self, amount: int):
        ...

    def start(self):
        ...


def test_collect_statements(lottery):
    """Decorated methods yield their statements in source order."""
    statements = collect_statements(LotteryInterface, lottery)
    by_function = {}
    for statement in statements:
        by_function.setdefault(statement.function, []).append(statement)

    assert [s.identity for s in by_function["play"]] == ["needs_start", "pays_out"]
    assert by_function["withdraw"][0].mode is RevertMode.ONE_DIRECTIONAL
    assert "start" not in by_function


def test_collect_statements_wrong_contract(crowdsale):
    with pytest.raises(ValueError):
        collect_statements(LotteryInterface, crowdsale)


def test_class_name_is_default_contract(lottery):
    class Lottery:
        @reverted("!started")
        def play(self, guess):
            ...

    assert len(collect_statements(Lottery, lottery)) == 1
