"""
Tests for trace ingestion
"""

import pytest
from pydantic import ValidationError

from txspec.core.errors import TraceError, TxSpecError
from txspec.core.types import normalize_address
from txspec.ingest import TraceRecord, dump_trace, load_trace
from txspec.proofs import compute_trace_hash

TOKEN = normalize_address(0x70)
ALICE = normalize_address(0xa11ce)
BOB = normalize_address(0xb0b)


def token_trace():
    return {
        "schemas": [{
            "name": "Token",
            "fields": {"balances": "mapping(address => uint256)", "supply": "uint256"},
            "functions": {"transfer": [["to", "address"], ["amount", "uint256"]]},
            "views": {"circulating": "supply"},
        }],
        "deployments": [{"address": TOKEN, "contract": "Token"}],
        "transactions": [
            {
                "call": {"sender": ALICE, "target": TOKEN, "function": "transfer", "args": [BOB, 10]},
                "pre": {"storage": {TOKEN: {"balances": {ALICE: 50}, "supply": 50}}},
                "outcome": "succeeded",
                "post": {"storage": {TOKEN: {"balances": {ALICE: 40, BOB: 10}, "supply": 50}}},
            },
            {
                "call": {"sender": BOB, "target": TOKEN, "function": "transfer",
                         "args": {"amount": 20, "to": ALICE}},
                "pre": {"storage": {TOKEN: {"balances": {ALICE: 40, BOB: 10}, "supply": 50}}},
                "outcome": "reverted",
            },
        ],
    }


def test_load_trace():
    repository = load_trace(token_trace())
    view = repository.view()
    assert len(view) == 2
    assert [tx.seq for tx in view] == [0, 1]
    # Named arguments are put in parameter order
    assert view[1].call.args == (ALICE, 20)
    assert view[0].post.read(TOKEN, "balances", BOB).value == 10


def test_explicit_sequence_numbers():
    data = token_trace()
    data["transactions"][0]["seq"] = 5
    view = load_trace(data).view()
    assert [tx.seq for tx in view] == [5, 6]


def test_post_state_required():
    data = token_trace()
    del data["transactions"][0]["post"]
    with pytest.raises(ValidationError):
        load_trace(data)


def test_reverted_without_post_state():
    data = token_trace()
    data["transactions"][1]["post"] = {"storage": {}}
    with pytest.raises(ValidationError):
        load_trace(data)


def test_undeclared_contract():
    data = token_trace()
    data["deployments"].append({"address": BOB, "contract": "Vault"})
    with pytest.raises(TxSpecError):
        load_trace(data)


def test_causality_violation():
    data = token_trace()
    data["transactions"][1]["pre"]["storage"][TOKEN]["supply"] = 49
    with pytest.raises(TraceError):
        load_trace(data)
    assert len(load_trace(data, check_causality=False)) == 2


def test_bad_argument_becomes_trace_error():
    data = token_trace()
    data["transactions"][0]["call"]["args"] = [BOB]
    with pytest.raises(TraceError):
        load_trace(data)


def test_bad_storage_value():
    data = token_trace()
    data["transactions"][0]["pre"]["storage"][TOKEN]["supply"] = -1
    with pytest.raises(TraceError):
        load_trace(data)


def test_dump_and_reload_hash_identically():
    original = load_trace(token_trace())
    dumped = dump_trace(original)
    reloaded = load_trace(TraceRecord.model_validate(dumped))
    assert compute_trace_hash(reloaded.view()) == compute_trace_hash(original.view())
