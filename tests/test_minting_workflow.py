"""
Tests for the minting workflow against the simulated chain.
"""
import pytest

from confidential_sdk.exceptions import InvalidPhaseTransition
from confidential_sdk.minting import MintingPhase, MintingStateMachine, MintingWorkflow
from confidential_sdk.models import TxOutcome, coins

from tests.test_helpers import deploy_stub_contract

NFT_COUNT = 10
PRICE = 1_000_000
WHITELIST_PRICE = 100_000


@pytest.fixture
def workflow(client, admin):
    nft = deploy_stub_contract(client, "snip721", {"name": "GpigsTest", "symbol": "gpcc", "entropy": "YWE"})
    minter = deploy_stub_contract(client, "minter", {
        "nft_count": NFT_COUNT,
        "nft_contract": {"address": nft.address, "hash": nft.code_hash},
        "random_seed": "YWE",
        "price": str(PRICE),
        "whitelist_price": str(WHITELIST_PRICE),
    })
    model = MintingStateMachine(admin.address, NFT_COUNT, price=PRICE, whitelist_price=WHITELIST_PRICE)
    flow = MintingWorkflow(client, minter.address, nft.address, admin, model,
                           minter_code_hash=minter.code_hash, nft_code_hash=nft.code_hash)
    assert flow.add_minters(nft.address, [minter.address], code_hash=nft.code_hash).ok
    return flow


@pytest.fixture
def user(client, stub):
    account = stub.create_account("user")
    assert client.send_tokens(account.address, 10_000_000).succeeded
    return account


def test_admin_mints_while_disabled(workflow, admin):
    outcome = workflow.mint_admin(2)
    assert outcome.ok and outcome.as_expected
    assert len(workflow.view_tokens(admin.address)) == 2
    assert workflow.model.minted == 2


def test_regular_mint_refused_while_disabled(workflow, admin, stub):
    balance = stub.balance(admin.address)
    outcome = workflow.mint(admin, 2)

    assert outcome.rejected
    assert outcome.expected == TxOutcome.FAILURE
    assert outcome.as_expected
    assert "DISABLED" in outcome.reason
    # The attached payment was rolled back with the failed transaction
    assert stub.balance(admin.address) == balance
    assert len(workflow.view_tokens(admin.address)) == 0


def test_whitelist_sequence(workflow, user):
    assert workflow.change_phase(MintingPhase.WHITELIST).ok
    assert workflow.add_to_whitelist(user.address, 3).ok

    entry = workflow.is_whitelisted(user.address)
    assert entry.allowance == 3

    first = workflow.mint(user, 2)
    assert first.ok and first.as_expected
    assert len(workflow.view_tokens(user.address)) == 2
    assert workflow.reconcile_allowance(user.address)
    assert workflow.is_whitelisted(user.address).allowance == 1

    second = workflow.mint(user, 1)
    assert second.ok
    assert workflow.reconcile_allowance(user.address)

    third = workflow.mint(user, 1)
    assert third.rejected and third.as_expected
    assert len(workflow.view_tokens(user.address)) == 3
    assert workflow.model.allowance(user.address) == 0


def test_whitelisted_mint_pays_whitelist_price(workflow, user, stub):
    workflow.change_phase(MintingPhase.WHITELIST)
    workflow.add_to_whitelist(user.address, 3)

    before = stub.balance(user.address)
    assert workflow.mint(user, 2).ok
    assert stub.balance(user.address) == before - 2 * WHITELIST_PRICE
    assert stub.balance(workflow.minter) == 2 * WHITELIST_PRICE


def test_underpaid_mint_refused(workflow, user):
    workflow.change_phase(MintingPhase.WHITELIST)
    workflow.add_to_whitelist(user.address, 3)

    outcome = workflow.mint(user, 2, funds=coins(WHITELIST_PRICE))
    assert outcome.rejected and outcome.as_expected
    assert workflow.model.allowance(user.address) == 3


def test_non_whitelisted_refused(workflow, user):
    workflow.change_phase(MintingPhase.WHITELIST)
    outcome = workflow.mint(user, 1)
    assert outcome.rejected and outcome.as_expected
    assert workflow.is_whitelisted(user.address) is None


def test_public_phase(workflow, user):
    workflow.change_phase(MintingPhase.WHITELIST)
    workflow.change_phase(MintingPhase.PUBLIC)
    outcome = workflow.mint(user, 1)
    assert outcome.ok and outcome.as_expected
    assert len(workflow.view_tokens(user.address)) == 1


def test_phase_skipping_forward(workflow, user):
    assert workflow.change_phase(MintingPhase.PUBLIC).ok
    assert workflow.model.phase == MintingPhase.PUBLIC
    assert workflow.mint(user, 1).ok


def test_backward_phase_change_not_submitted(workflow, stub, admin):
    workflow.change_phase(MintingPhase.WHITELIST)
    sequence = stub.get_account(admin.address).sequence

    with pytest.raises(InvalidPhaseTransition):
        workflow.change_phase(MintingPhase.ADMIN_ONLY)
    with pytest.raises(InvalidPhaseTransition):
        workflow.change_phase(MintingPhase.WHITELIST)
    assert stub.get_account(admin.address).sequence == sequence


def test_admin_actions_refused_for_others(workflow, user):
    outcome = workflow.change_phase(MintingPhase.WHITELIST, account=user)
    assert outcome.rejected and outcome.as_expected
    assert workflow.model.phase == MintingPhase.DISABLED

    outcome = workflow.add_to_whitelist(user.address, 100, account=user)
    assert outcome.rejected and outcome.as_expected
    assert workflow.model.allowance(user.address) is None

    outcome = workflow.mint_admin(1, account=user)
    assert outcome.rejected and outcome.as_expected


def test_set_placeholder_and_attributes(workflow):
    assert workflow.set_placeholder_image("https://example.com/box.jpg").ok
    outcome = workflow.set_attributes([
        {"token_id": "0", "attributes": {"custom_traits": [{"trait_type": "length", "value": "0"}],
                                         "token_uri": "https://example.com/0.jpg"}},
    ])
    assert outcome.ok and outcome.as_expected


def test_supply_exhaustion(workflow, admin):
    assert workflow.mint_admin(NFT_COUNT).ok
    outcome = workflow.mint_admin(1)
    assert outcome.rejected and outcome.as_expected
    assert len(workflow.view_tokens(admin.address)) == NFT_COUNT


def test_unknown_outcome_marks_model_stale(workflow, stub, user):
    workflow.change_phase(MintingPhase.WHITELIST)
    workflow.add_to_whitelist(user.address, 3)

    stub.drop_next()
    outcome = workflow.mint(user, 2)

    assert outcome.unknown
    assert not outcome.as_expected
    assert workflow.stale
    # The model was not updated, the chain executed the mint anyway
    assert workflow.model.allowance(user.address) == 3
    assert not workflow.reconcile_allowance(user.address)


def test_unexpected_outcome_is_reported(workflow, user):
    workflow.change_phase(MintingPhase.WHITELIST)
    workflow.add_to_whitelist(user.address, 3)
    # The model believes the user has no allowance left
    workflow.model.whitelist[user.address] = 0

    outcome = workflow.mint(user, 1)
    assert outcome.expected == TxOutcome.FAILURE
    assert outcome.ok
    assert not outcome.as_expected
    assert workflow.stale
    assert workflow.model.minted == 0
