"""
Property-based tests for the SDK.

These tests verify that properties hold true across many random inputs.
"""
import pytest
from hypothesis import given, settings, strategies as st

from confidential_sdk.calculator import Operation, build_msg, expected_entry
from confidential_sdk.chain.contracts import U128_MAX, CalculatorContract, ContractError, Env
from confidential_sdk.exceptions import InvalidPhaseTransition
from confidential_sdk.minting import MintingPhase, MintingStateMachine, MintRole
from confidential_sdk.models import TxEvent, TxLog, TxResult, coins

ADMIN = "secret1admin"
USERS = ["secret1alice", "secret1bob", "secret1carol"]

u128_strategy = st.one_of(
    st.integers(min_value=0, max_value=1000),
    st.integers(min_value=0, max_value=U128_MAX),
)

# Each step is one of: move phase, whitelist someone, regular mint, admin mint
step_strategy = st.one_of(
    st.tuples(st.just("advance"), st.sampled_from(list(MintingPhase))),
    st.tuples(st.just("whitelist"), st.sampled_from(USERS), st.integers(0, 5)),
    st.tuples(st.just("mint"), st.sampled_from(USERS + [ADMIN]), st.integers(-1, 6), st.booleans()),
    st.tuples(st.just("mint_admin"), st.integers(0, 4)),
)


@settings(max_examples=200)
@given(op=st.sampled_from(list(Operation)), n1=u128_strategy, n2=u128_strategy)
def test_expected_entry_matches_contract(op, n1, n2):
    """The predicted history line is what the contract records, and None exactly when it refuses"""
    env = Env(sender=ADMIN, contract_address="secret1calc", height=1, funds=[])
    contract = CalculatorContract(env, {})
    operand = None if op == Operation.SQRT else n2
    expected = expected_entry(op, n1, operand)

    if expected is None:
        with pytest.raises(ContractError):
            contract.execute(env, build_msg(op, n1, operand))
        assert contract.histories.get(ADMIN, []) == []
    else:
        contract.execute(env, build_msg(op, n1, operand))
        assert contract.histories[ADMIN] == [expected]


@settings(max_examples=100)
@given(steps=st.lists(step_strategy, max_size=30), nft_count=st.integers(0, 12))
def test_minting_bookkeeping_invariants(steps, nft_count):
    """Allowances never go negative and supply is never exceeded, whatever the call sequence"""
    model = MintingStateMachine(ADMIN, nft_count, price=10, whitelist_price=1)
    accepted = 0

    for step in steps:
        kind = step[0]
        if kind == "advance":
            before = model.phase
            if step[1] <= before:
                with pytest.raises(InvalidPhaseTransition):
                    model.advance(step[1])
                assert model.phase == before
            else:
                model.advance(step[1])
        elif kind == "whitelist":
            model.add_to_whitelist(step[1], step[2])
        elif kind == "mint":
            _, sender, amount, pays = step
            allowance = model.allowance(sender)
            price = model.unit_price(sender) * max(amount, 0)
            decision = model.mint(sender, amount, coins(price if pays else max(price - 1, 0)))
            if decision.allowed:
                accepted += amount
                if decision.role == MintRole.WHITELISTED and model.phase == MintingPhase.WHITELIST:
                    assert model.allowance(sender) == allowance - amount
            else:
                assert model.allowance(sender) == allowance
        else:
            decision = model.mint_admin(ADMIN, step[1])
            if decision.allowed:
                accepted += step[1]

        assert all(value >= 0 for value in model.whitelist.values())
        assert 0 <= model.minted <= nft_count
        assert model.minted == accepted


@settings(max_examples=50)
@given(
    attributes=st.lists(
        st.tuples(st.sampled_from(["message", "wasm", "transfer"]),
                  st.sampled_from(["action", "contract_address", "amount"]),
                  st.text(max_size=20)),
        max_size=10,
    ),
)
def test_find_attribute_returns_first_match(attributes):
    events = [
        TxEvent.model_validate({"type": event_type, "attributes": [{"key": key, "value": value}]})
        for event_type, key, value in attributes
    ]
    result = TxResult(txhash="ABC", logs=[TxLog(events=events)])

    for event_type, key, value in attributes:
        first = next(v for t, k, v in attributes if t == event_type and k == key)
        assert result.find_attribute(f"{event_type}.{key}") == first
    assert result.find_attribute("missing.key") is None
