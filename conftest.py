"""
Shared fixtures: a small two-contract world and a chain builder that
records transactions into a trace repository.
"""

import pytest

from txspec.core.models import CallContext, Outcome
from txspec.core.schema import ContractRegistry, ContractSchema
from txspec.core.state import StateSnapshot
from txspec.trace import TraceRepository

LOTTERY = "0x" + "1".rjust(40, "0")
CROWDSALE = "0x" + "2".rjust(40, "0")
ALICE = "0x" + "a11ce".rjust(40, "0")
BOB = "0x" + "b0b".rjust(40, "0")


def lottery_schema() -> ContractSchema:
    return ContractSchema.build(
        "Lottery",
        fields={
            "started": "bool",
            "value": "uint256",
            "cost": "uint256",
            "plays": "mapping(address => uint256)",
            "round": "uint8",
        },
        functions={
            "play": [("guess", "uint256")],
            "start": [],
            "withdraw": [("amount", "uint256")],
            "nextRound": [],
        },
        views={"pot": "value + balance(this)"},
    )


def crowdsale_schema() -> ContractSchema:
    return ContractSchema.build(
        "Crowdsale",
        fields={
            "isFinalized": "bool",
            "raised": "uint256",
            "goal": "uint256",
            "contributions": "mapping(address => uint256)",
        },
        functions={
            "finalize": [],
            "contribute": [],
        },
        views={"goalReached": "raised >= goal"},
    )


class Chain:
    """Records calls against an evolving state, like an execution environment would"""

    def __init__(self, registry: ContractRegistry, state: StateSnapshot):
        self.registry = registry
        self.repository = TraceRepository(registry)
        self.state = state
        self.lottery = LOTTERY
        self.crowdsale = CROWDSALE
        self.alice = ALICE
        self.bob = BOB

    def call(self, function, args=(), target=LOTTERY, sender=ALICE, value=0,
             storage=None, balances=None, reverts=False):
        call = CallContext.create(self.registry, sender, target, function, args, value)
        if reverts:
            return self.repository.record(call, self.state, Outcome.REVERTED)
        post = self.state.updated({target: storage or {}}, balances)
        tx = self.repository.record(call, self.state, Outcome.SUCCEEDED, post)
        self.state = post
        return tx

    def view(self):
        return self.repository.view()


@pytest.fixture
def lottery():
    return lottery_schema()


@pytest.fixture
def crowdsale():
    return crowdsale_schema()


@pytest.fixture
def registry(lottery, crowdsale):
    return ContractRegistry({LOTTERY: lottery, CROWDSALE: crowdsale})


@pytest.fixture
def genesis(registry):
    return StateSnapshot(
        registry,
        storage={
            LOTTERY: {"started": True, "value": 100, "cost": 10},
            CROWDSALE: {"isFinalized": False, "raised": 0, "goal": 1000},
        },
        balances={LOTTERY: 100, ALICE: 1000, BOB: 1000},
    )


@pytest.fixture
def make_chain(registry, genesis):
    """Factory for independent chains, optionally starting from a modified genesis"""
    def make(storage=None, balances=None):
        start = genesis.updated(storage, balances) if (storage or balances) else genesis
        return Chain(registry, start)
    return make


@pytest.fixture
def chain(make_chain):
    return make_chain()
