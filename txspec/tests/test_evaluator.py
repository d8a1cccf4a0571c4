"""
Tests for expression evaluation
"""

import pytest

from txspec.core.errors import ArithmeticFault, EvaluationError, OldUnavailable
from txspec.core.types import OverflowMode, normalize_address
from txspec.engine.evaluator import EvalContext, evaluate, evaluate_text
from txspec.translators.expressions import compile_expression

LOTTERY = normalize_address(1)


def pre(tx, view, overflow=OverflowMode.CHECKED):
    return EvalContext.for_precondition(tx, view, overflow)


def post(tx, view, overflow=OverflowMode.CHECKED):
    return EvalContext.for_postcondition(tx, view, overflow)


def test_storage_and_call(chain):
    """Fields read the snapshot; bare `value` reads the call"""
    tx = chain.call("play", [7], value=15, storage={"value": 107})
    ctx = pre(tx, chain.view())
    assert evaluate_text("this.value", ctx).value == 100
    assert evaluate_text("value", ctx).value == 15
    assert evaluate_text("guess", ctx).value == 7
    assert evaluate_text("sender", ctx).value == chain.alice
    assert evaluate_text("started && value > cost", ctx).value is True


def test_missing_mapping_key_reads_zero(chain):
    tx = chain.call("play", [1], value=10)
    assert evaluate_text("plays[sender]", pre(tx, chain.view())).value == 0
    assert evaluate_text("round", pre(tx, chain.view())).value == 0


def test_mapping_read(chain):
    tx = chain.call("play", [1], storage={"plays": {chain.alice: 3}})
    ctx = post(tx, chain.view())
    assert evaluate_text("plays[sender] == old(plays[sender]) + 3", ctx, allow_old=True).value is True


def test_old_reads_pre_state(chain):
    tx = chain.call("play", [5], value=20, storage={"value": 105})
    ctx = post(tx, chain.view())
    assert evaluate_text("this.value", ctx).value == 105
    assert evaluate_text("old(this.value)", ctx, allow_old=True).value == 100
    assert evaluate_text("this.value == old(this.value) + guess", ctx, allow_old=True).value is True


def test_old_without_pre_state(chain, lottery):
    tx = chain.call("play", [5])
    node = compile_expression("old(this.value)", lottery, "play", allow_old=True)
    with pytest.raises(OldUnavailable):
        evaluate(node, pre(tx, chain.view()))


def test_balance_and_view(chain):
    tx = chain.call("play", [1], value=10, balances={chain.lottery: 110})
    assert evaluate_text("balance(this)", pre(tx, chain.view())).value == 100
    assert evaluate_text("balance(this)", post(tx, chain.view())).value == 110
    assert evaluate_text("balance(sender)", pre(tx, chain.view())).value == 1000
    assert evaluate_text("pot()", pre(tx, chain.view())).value == 200


def test_short_circuit(chain):
    """The right operand of a decided `&&` is never evaluated"""
    tx = chain.call("play", [0])
    ctx = pre(tx, chain.view())
    assert evaluate_text("false && cost / guess > 0", ctx).value is False
    assert evaluate_text("true || cost / guess > 0", ctx).value is True
    with pytest.raises(ArithmeticFault):
        evaluate_text("true && cost / guess > 0", ctx)


def test_division_truncates_toward_zero(chain):
    tx = chain.call("start")
    ctx = pre(tx, chain.view())
    assert evaluate_text("-7 / 2", ctx).value == -3
    assert evaluate_text("-7 % 2", ctx).value == -1
    assert evaluate_text("7 / -2", ctx).value == -3
    assert evaluate_text("cost / 3", ctx).value == 3


def test_division_by_zero(chain):
    tx = chain.call("start")
    with pytest.raises(ArithmeticFault):
        evaluate_text("cost / 0", pre(tx, chain.view()))
    with pytest.raises(ArithmeticFault):
        evaluate_text("cost % 0", pre(tx, chain.view()))


@pytest.mark.parametrize("mode,expected", [
    (OverflowMode.WRAPPING, 0),
    (OverflowMode.SATURATING, 255),
])
def test_fixed_width_overflow(make_chain, mode, expected):
    """uint8 arithmetic follows the configured overflow mode"""
    chain = make_chain(storage={LOTTERY: {"round": 255}})
    tx = chain.call("nextRound")
    assert evaluate_text("round + 1", pre(tx, chain.view(), mode)).value == expected


def test_checked_overflow(make_chain):
    chain = make_chain(storage={LOTTERY: {"round": 255}})
    tx = chain.call("nextRound")
    with pytest.raises(ArithmeticFault):
        evaluate_text("round + 1", pre(tx, chain.view(), OverflowMode.CHECKED))


def test_uint256_underflow(chain):
    tx = chain.call("start")
    with pytest.raises(ArithmeticFault):
        evaluate_text("cost - 20", pre(tx, chain.view(), OverflowMode.CHECKED))
    wrapped = evaluate_text("cost - 20", pre(tx, chain.view(), OverflowMode.WRAPPING)).value
    assert wrapped == 2 ** 256 - 10


def test_unbounded_underflow_always_faults(chain):
    """Balances are unbounded unsigned: going below zero is never wrapped"""
    tx = chain.call("start")
    with pytest.raises(ArithmeticFault):
        evaluate_text("balance(this) - 200", pre(tx, chain.view(), OverflowMode.WRAPPING))


def test_per_field_overflow():
    from txspec.core.schema import ContractRegistry, ContractSchema
    from txspec.core.state import StateSnapshot
    counter = normalize_address(3)
    schema = ContractSchema.build(
        "Counter",
        fields={"n": "uint8"},
        functions={"inc": []},
        field_overflow={"n": "wrapping"},
    )
    reg = ContractRegistry({counter: schema})
    state = StateSnapshot(reg, {counter: {"n": 255}})
    ctx = EvalContext(state=state, subject=counter, overflow=OverflowMode.CHECKED)
    assert evaluate(compile_expression("n + 1", schema), ctx).value == 0


def test_fsum_empty_history(chain):
    tx = chain.call("play", [3])
    assert evaluate_text("fsum(guess, true, guess)", pre(tx, chain.view())).value == 0


def test_fsum_over_history(chain):
    """Two plays with guesses 3 and 5 sum to 8 for a later call"""
    chain.call("play", [3])
    chain.call("play", [5], sender=chain.bob)
    third = chain.call("play", [1])
    view = chain.view()
    assert evaluate_text("fsum(guess, true, guess)", pre(third, view)).value == 8
    # The post-state history includes the call itself
    assert evaluate_text("fsum(guess, true, guess)", post(third, view)).value == 9
    assert evaluate_text("old(fsum(guess, true, guess))", post(third, view), allow_old=True).value == 8


def test_fsum_filter_on_call(chain):
    chain.call("play", [3])
    chain.call("play", [5], sender=chain.bob)
    chain.call("play", [4])
    last = chain.call("withdraw", [0])
    ctx = pre(last, chain.view())
    assert evaluate_text("fsum(x.guess, x.sender == sender, x, play)", ctx).value == 7
    assert evaluate_text("fsum(x.guess, x.sender != sender, x, play)", ctx).value == 5


def test_fsum_skips_reverted_calls(chain):
    chain.call("play", [3])
    chain.call("play", [50], reverts=True)
    last = chain.call("play", [1])
    assert evaluate_text("fsum(guess, true, guess)", pre(last, chain.view())).value == 3


def test_fsum_ignores_other_contracts(make_chain):
    """Interleaving calls to other contracts does not change the sum"""
    plain = make_chain()
    plain.call("play", [3])
    plain.call("play", [5])
    plain_last = plain.call("withdraw", [0])

    mixed = make_chain()
    mixed.call("contribute", target=mixed.crowdsale, value=7, storage={"raised": 7})
    mixed.call("play", [3])
    mixed.call("contribute", target=mixed.crowdsale, value=9, storage={"raised": 16})
    mixed.call("play", [5])
    mixed_last = mixed.call("withdraw", [0])

    text = "fsum(x.guess, true, x, play)"
    assert (evaluate_text(text, pre(plain_last, plain.view())).value
            == evaluate_text(text, pre(mixed_last, mixed.view())).value
            == 8)


def test_fsum_needs_trace(chain):
    tx = chain.call("play", [3])
    ctx = EvalContext.for_precondition(tx, None)
    with pytest.raises(EvaluationError):
        evaluate_text("fsum(guess, true, guess)", ctx)


def test_evaluation_is_deterministic(chain):
    chain.call("play", [3])
    tx = chain.call("play", [5])
    ctx = post(tx, chain.view())
    text = "fsum(guess, true, guess) + pot() * 2"
    assert evaluate_text(text, ctx) == evaluate_text(text, ctx)
