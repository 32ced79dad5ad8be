"""
Tests for the simulated contracts, called directly without a chain.
"""
import pytest

from confidential_sdk.chain.contracts import (
    CalculatorContract, ContractError, Env, MinterContract, Snip20Contract, Snip721Contract, U128_MAX
)
from confidential_sdk.minting import MintingPhase
from confidential_sdk.models import coins

ADMIN = "secret1admin"
USER = "secret1user"


def _env(sender=ADMIN, contract="secret1contract", height=10, funds=None):
    return Env(sender=sender, contract_address=contract, height=height, funds=funds or [])


def _key(contract, sender=ADMIN, entropy="e"):
    response = contract.execute(_env(sender), {"generate_viewing_key": {"entropy": entropy}})
    return response.data["generate_viewing_key"]["key"]


class TestDispatch:

    def test_unknown_variant(self):
        calculator = CalculatorContract(_env(), {})
        with pytest.raises(ContractError, match="unknown variant"):
            calculator.execute(_env(), {"pow": {"n1": "1", "n2": "2"}})

    @pytest.mark.parametrize("msg", [{}, {"add": {}, "sub": {}}, {"add": "1 2"}, "add"])
    def test_malformed_messages(self, msg):
        with pytest.raises(ContractError, match="Error parsing"):
            CalculatorContract(_env(), {}).execute(_env(), msg)

    def test_unexpected_fields(self):
        with pytest.raises(ContractError, match="Error parsing message"):
            CalculatorContract(_env(), {}).execute(_env(), {"add": {"n1": "1", "n2": "2", "n3": "3"}})

    @pytest.mark.parametrize("value", ["-1", "abc", str(U128_MAX + 1), None])
    def test_uint128_validation(self, value):
        with pytest.raises(ContractError, match="Invalid type"):
            CalculatorContract(_env(), {}).execute(_env(), {"add": {"n1": value, "n2": "1"}})


class TestViewingKeys:

    def test_generated_key_checks(self):
        contract = CalculatorContract(_env(), {"prng_seed": "seed"})
        key = _key(contract)
        assert key.startswith("api_key_")
        assert contract.check_viewing_key(ADMIN, key)
        assert not contract.check_viewing_key(USER, key)
        assert not contract.check_viewing_key(ADMIN, key + "x")

    def test_set_viewing_key(self):
        contract = Snip20Contract(_env(), {"prng_seed": "seed"})
        contract.execute(_env(USER), {"set_viewing_key": {"key": "my key"}})
        assert contract.check_viewing_key(USER, "my key")

    def test_no_key_never_matches(self):
        contract = CalculatorContract(_env(), {})
        assert not contract.check_viewing_key(ADMIN, None)
        assert not contract.check_viewing_key(ADMIN, "")

    def test_keys_differ_per_seed(self):
        one = _key(CalculatorContract(_env(), {"prng_seed": "one"}))
        two = _key(CalculatorContract(_env(), {"prng_seed": "two"}))
        assert one != two


class TestCalculator:

    def test_history_steps_back_zero(self):
        contract = CalculatorContract(_env(), {})
        contract.execute(_env(), {"add": {"n1": "1", "n2": "1"}})
        key = _key(contract)
        answer = contract.query({"get_history": {"address": ADMIN, "key": key, "steps_back": "0"}})
        assert answer == {"status": "Calculations history present", "history": []}

    def test_steps_back_larger_than_history(self):
        contract = CalculatorContract(_env(), {})
        contract.execute(_env(), {"mul": {"n1": "3", "n2": "4"}})
        key = _key(contract)
        answer = contract.query({"get_history": {"address": ADMIN, "key": key, "steps_back": "10"}})
        assert answer["history"] == ["3 * 4 = 12"]

    def test_large_values(self):
        contract = CalculatorContract(_env(), {})
        response = contract.execute(_env(), {"sub": {"n1": str(U128_MAX), "n2": "0"}})
        assert response.data["sub"]["n"] == str(U128_MAX)
        response = contract.execute(_env(), {"sqrt": {"n": str(U128_MAX)}})
        assert response.data["sqrt"]["n"] == str(2 ** 64 - 1)


class TestSnip721:

    def test_only_minters_mint(self):
        nft = Snip721Contract(_env(), {"name": "n", "symbol": "s"})
        with pytest.raises(ContractError, match="minters"):
            nft.execute(_env(USER), {"mint_nft": {"token_id": "1"}})
        nft.execute(_env(), {"add_minters": {"minters": [USER]}})
        nft.execute(_env(USER), {"mint_nft": {"token_id": "1", "owner": USER}})
        assert nft.query({"tokens": {"owner": USER}}) == {"token_list": {"tokens": ["1"]}}

    def test_add_minters_admin_only(self):
        nft = Snip721Contract(_env(), {})
        with pytest.raises(ContractError, match="unauthorized"):
            nft.execute(_env(USER), {"add_minters": {"minters": [USER]}})

    def test_token_ids_unique(self):
        nft = Snip721Contract(_env(), {})
        nft.execute(_env(), {"mint_nft": {"token_id": "7"}})
        with pytest.raises(ContractError, match="already in use"):
            nft.execute(_env(), {"batch_mint_nft": {"mints": [{"token_id": "8"}, {"token_id": "7"}]}})

    def test_tokens_sorted_numerically_and_paged(self):
        nft = Snip721Contract(_env(), {})
        mints = [{"token_id": t, "owner": USER} for t in ("10", "2", "33", "1")]
        nft.execute(_env(), {"batch_mint_nft": {"mints": mints}})
        assert nft.query({"tokens": {"owner": USER}})["token_list"]["tokens"] == ["1", "2", "10", "33"]
        assert nft.query({"tokens": {"owner": USER, "start_after": "2", "limit": 1}}) == {
            "token_list": {"tokens": ["10"]}
        }

    def test_tokens_with_wrong_key(self):
        nft = Snip721Contract(_env(), {"entropy": "YWE"})
        with pytest.raises(ContractError, match="Wrong viewing key"):
            nft.query({"tokens": {"owner": ADMIN, "viewing_key": "nope"}})
        key = _key(nft)
        assert nft.query({"tokens": {"owner": ADMIN, "viewing_key": key}}) == {"token_list": {"tokens": []}}


class TestSnip20:

    def test_transfer_and_balance(self):
        token = Snip20Contract(_env(), {"name": "bacon", "symbol": "BACON",
                                        "initial_balances": [{"address": ADMIN, "amount": "100"}]})
        token.execute(_env(), {"transfer": {"recipient": USER, "amount": "40"}})
        key = _key(token, USER)
        assert token.query({"balance": {"address": USER, "key": key}}) == {"balance": {"amount": "40"}}
        with pytest.raises(ContractError, match="insufficient funds"):
            token.execute(_env(), {"transfer": {"recipient": USER, "amount": "61"}})

    def test_mint_requires_minter(self):
        token = Snip20Contract(_env(), {})
        with pytest.raises(ContractError, match="minter accounts only"):
            token.execute(_env(USER), {"mint": {"recipient": USER, "amount": "1"}})

    def test_token_info(self):
        token = Snip20Contract(_env(), {"name": "bacon", "symbol": "BACON", "decimals": 6})
        assert token.query({"token_info": {}}) == {"token_info": {"name": "bacon", "symbol": "BACON", "decimals": 6}}


class TestMinter:

    @pytest.fixture
    def minter(self):
        return MinterContract(_env(), {
            "nft_count": 5,
            "nft_contract": {"address": "secret1nft"},
            "random_seed": "YWE",
            "price": "1000",
            "whitelist_price": "100",
        })

    def test_mint_sends_batch_to_nft_contract(self, minter):
        minter.execute(_env(), {"set_place_holder": {"token_uri": "https://x/box.jpg"}})
        response = minter.execute(_env(), {"mint_admin": {"amount": 2}})

        assert len(response.messages) == 1
        sub = response.messages[0]
        assert sub.contract == "secret1nft"
        mints = sub.msg["batch_mint_nft"]["mints"]
        assert [m["owner"] for m in mints] == [ADMIN, ADMIN]
        assert all(m["public_metadata"] == {"token_uri": "https://x/box.jpg"} for m in mints)
        assert response.data["mint"]["token_ids"] == [m["token_id"] for m in mints]

    def test_token_ids_are_a_permutation(self, minter):
        response = minter.execute(_env(), {"mint_admin": {"amount": 5}})
        assert sorted(response.data["mint"]["token_ids"]) == ["0", "1", "2", "3", "4"]

    def test_shuffle_is_seeded(self, minter):
        other = MinterContract(_env(), {"nft_count": 5, "nft_contract": {"address": "secret1nft"},
                                        "random_seed": "YWE"})
        first = minter.execute(_env(), {"mint_admin": {"amount": 5}}).data["mint"]["token_ids"]
        second = other.execute(_env(), {"mint_admin": {"amount": 5}}).data["mint"]["token_ids"]
        assert first == second

    def test_whitelist_mint_checks_payment(self, minter):
        minter.execute(_env(), {"changing_minting_state": {"mint_state": 2}})
        minter.execute(_env(), {"add_whitelist": {"addresses": [{"address": USER, "amount": 2}]}})

        with pytest.raises(ContractError, match="insufficient funds"):
            minter.execute(_env(USER, funds=coins(199)), {"mint": {"amount": 2}})
        minter.execute(_env(USER, funds=coins(200)), {"mint": {"amount": 2}})
        assert minter.query({"is_whitelisted": {"address": USER}}) == {
            "is_whitelisted": {"whitelisted": True, "amount": 0}
        }

    def test_phase_changes(self, minter):
        minter.execute(_env(), {"changing_minting_state": {"mint_state": 3}})
        assert minter.model.phase == MintingPhase.PUBLIC
        with pytest.raises(ContractError, match="Cannot change minting phase"):
            minter.execute(_env(), {"changing_minting_state": {"mint_state": 1}})
        with pytest.raises(ContractError, match="Invalid minting state"):
            minter.execute(_env(), {"changing_minting_state": {"mint_state": 9}})

    def test_admin_only_handlers(self, minter):
        for msg in ({"changing_minting_state": {"mint_state": 2}},
                    {"add_whitelist": {"addresses": []}},
                    {"set_place_holder": {"token_uri": "x"}},
                    {"set_attributes": {"tokens": []}}):
            with pytest.raises(ContractError, match="unauthorized"):
                minter.execute(_env(USER), msg)

    @pytest.mark.parametrize("msg", [
        {"mint_admin": {"amount": "two"}},
        {"add_whitelist": {"addresses": [{"address": USER, "amount": -1}]}},
        {"add_whitelist": {"addresses": [{"address": USER}]}},
        {"add_whitelist": {"addresses": [{"amount": 1}]}},
    ])
    def test_malformed_input_is_a_contract_error(self, minter, msg):
        with pytest.raises(ContractError, match="Invalid input"):
            minter.execute(_env(), msg)

    def test_not_whitelisted_answer(self, minter):
        assert minter.query({"is_whitelisted": {"address": USER}}) == {
            "is_whitelisted": {"whitelisted": False, "amount": 0}
        }
