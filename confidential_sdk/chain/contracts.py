"""
Simulated contracts for the in-memory chain.

These reproduce the externally observable message and response shapes of
the calculator, SNIP-721, SNIP-20 and minter contracts the SDK is exercised
against. Contract errors surface as failed transactions or rejected
queries, exactly like on a node.
"""
import base64
import hashlib
import hmac
import math
import random
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple

from ..exceptions import InvalidPhaseTransition
from ..minting import MintingStateMachine, MintingPhase, MintRole
from ..models import Coin

U128_MAX = 2 ** 128 - 1

HISTORY_PRESENT = "Calculations history present"
HISTORY_NOT_FOUND = "Calculations history not found."
CALCULATION_RECORDED = "Calculation performed and recorded!"


class ContractError(Exception):
    """Error returned by a contract; fails the transaction or query"""
    pass


@dataclass
class Env:
    """Execution environment handed to a contract"""
    sender: str
    contract_address: str
    height: int
    funds: List[Coin] = field(default_factory=list)


@dataclass
class SubMessage:
    """Execute message a contract sends to another contract"""
    contract: str
    msg: Dict[str, Any]
    funds: List[Coin] = field(default_factory=list)


@dataclass
class Response:
    data: Optional[Dict[str, Any]] = None
    attributes: List[Tuple[str, str]] = field(default_factory=list)
    messages: List[SubMessage] = field(default_factory=list)


def _single_variant(msg: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    if not isinstance(msg, dict) or len(msg) != 1:
        raise ContractError("Error parsing message: expected exactly one variant")
    (name, body), = msg.items()
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise ContractError(f"Error parsing message: {name} must be an object")
    return name, body


def _uint128(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ContractError(f"Invalid type: {name} must be a Uint128 string")
    if not 0 <= number <= U128_MAX:
        raise ContractError(f"Invalid type: {name} is out of the Uint128 range")
    return number


class SimulatedContract:
    """
    Base class: dispatches ``{"op": {...}}`` to ``handle_op`` / ``query_op``.
    """

    def __init__(self, env: Env, init_msg: Dict[str, Any]):
        self.address = env.contract_address
        self.creator = env.sender
        self.instantiate(env, init_msg)

    def instantiate(self, env: Env, init_msg: Dict[str, Any]) -> None:
        pass

    def execute(self, env: Env, msg: Dict[str, Any]) -> Response:
        name, body = _single_variant(msg)
        handler = getattr(self, f"handle_{name}", None)
        if handler is None:
            raise ContractError(f"Error parsing message: unknown variant `{name}`")
        try:
            return handler(env, **body)
        except TypeError as e:
            raise ContractError(f"Error parsing message: {e}")
        except (ValueError, KeyError) as e:
            raise ContractError(f"Invalid input: {e}")

    def query(self, msg: Dict[str, Any]) -> Dict[str, Any]:
        name, body = _single_variant(msg)
        handler = getattr(self, f"query_{name}", None)
        if handler is None:
            raise ContractError(f"Error parsing query: unknown variant `{name}`")
        try:
            return handler(**body)
        except TypeError as e:
            raise ContractError(f"Error parsing query: {e}")
        except (ValueError, KeyError) as e:
            raise ContractError(f"Invalid input: {e}")

    def _only_admin(self, env: Env, admin: str) -> None:
        if env.sender != admin:
            raise ContractError("unauthorized: this action is reserved for the admin")


class ViewingKeyMixin:
    """
    Viewing keys: ``generate_viewing_key``/``set_viewing_key`` handlers and a
    constant-time check. Only a hash of each key is stored.
    """

    def _init_viewing_keys(self, seed: str) -> None:
        self._prng_seed = hashlib.sha256(base64.b64encode(seed.encode())).digest()
        self._key_hashes: Dict[str, bytes] = {}

    def handle_generate_viewing_key(self, env: Env, entropy: str, padding: Optional[str] = None) -> Response:
        material = self._prng_seed + env.sender.encode() + entropy.encode() + str(env.height).encode()
        key = "api_key_" + base64.b64encode(hashlib.sha256(material).digest()).decode()
        self._key_hashes[env.sender] = hashlib.sha256(key.encode()).digest()
        return Response(data={"generate_viewing_key": {"key": key}})

    def handle_set_viewing_key(self, env: Env, key: str, padding: Optional[str] = None) -> Response:
        self._key_hashes[env.sender] = hashlib.sha256(key.encode()).digest()
        return Response(data={"set_viewing_key": {"status": "success"}})

    def check_viewing_key(self, address: str, key: Optional[str]) -> bool:
        expected = self._key_hashes.get(address, bytes(32))
        supplied = hashlib.sha256((key or "").encode()).digest()
        # Compare even when no key is set so timing does not reveal it
        return hmac.compare_digest(expected, supplied) and address in self._key_hashes


class CalculatorContract(ViewingKeyMixin, SimulatedContract):
    """Checked u128 calculator keeping a private per-address history"""

    def instantiate(self, env: Env, init_msg: Dict[str, Any]) -> None:
        self._init_viewing_keys(init_msg.get("prng_seed", ""))
        self.histories: Dict[str, List[str]] = {}

    def _record(self, env: Env, operation: str, line: str, result: int) -> Response:
        self.histories.setdefault(env.sender, []).append(line)
        return Response(
            data={operation: {"n": str(result), "status": CALCULATION_RECORDED}},
            attributes=[("operation", operation)]
        )

    def handle_add(self, env: Env, n1: Any, n2: Any) -> Response:
        a, b = _uint128(n1, "n1"), _uint128(n2, "n2")
        if a + b > U128_MAX:
            raise ContractError("Invalid input: The input numbers are too large")
        return self._record(env, "add", f"{a} + {b} = {a + b}", a + b)

    def handle_sub(self, env: Env, n1: Any, n2: Any) -> Response:
        a, b = _uint128(n1, "n1"), _uint128(n2, "n2")
        if b > a:
            raise ContractError(
                "Invalid input: The second argument is larger than the first, cannot calculate negative results"
            )
        return self._record(env, "sub", f"{a} - {b} = {a - b}", a - b)

    def handle_mul(self, env: Env, n1: Any, n2: Any) -> Response:
        a, b = _uint128(n1, "n1"), _uint128(n2, "n2")
        if a * b > U128_MAX:
            raise ContractError(
                "Invalid input: The multiplication is too large. Cannot calculate results larger than "
                f"{U128_MAX}"
            )
        return self._record(env, "mul", f"{a} * {b} = {a * b}", a * b)

    def handle_div(self, env: Env, n1: Any, n2: Any) -> Response:
        a, b = _uint128(n1, "n1"), _uint128(n2, "n2")
        if b == 0:
            raise ContractError("Invalid input: Cannot devide by zero!")
        return self._record(env, "div", f"{a} / {b} = {a // b}", a // b)

    def handle_sqrt(self, env: Env, n: Any) -> Response:
        a = _uint128(n, "n")
        root = math.isqrt(a)
        return self._record(env, "sqrt", f"√{a} = {root}", root)

    def query_get_history(self, address: str, key: str, steps_back: Optional[Any] = None) -> Dict[str, Any]:
        if not self.check_viewing_key(address, key):
            raise ContractError("unauthorized")
        history = self.histories.get(address)
        if history is None:
            return {"status": HISTORY_NOT_FOUND, "history": None}
        if steps_back is not None:
            steps = _uint128(steps_back, "steps_back")
            history = history[-steps:] if steps else []
        return {"status": HISTORY_PRESENT, "history": list(history)}


class Snip721Contract(ViewingKeyMixin, SimulatedContract):
    """NFT contract: minters, ownership and token listing"""

    def instantiate(self, env: Env, init_msg: Dict[str, Any]) -> None:
        self._init_viewing_keys(init_msg.get("entropy", ""))
        self.name = init_msg.get("name", "")
        self.symbol = init_msg.get("symbol", "")
        self.admin = init_msg.get("admin") or env.sender
        self.minters: List[str] = [self.admin]
        self.owners: Dict[str, str] = {}
        self.metadata: Dict[str, Dict[str, Any]] = {}

    def handle_add_minters(self, env: Env, minters: List[str], padding: Optional[str] = None) -> Response:
        self._only_admin(env, self.admin)
        for minter in minters:
            if minter not in self.minters:
                self.minters.append(minter)
        return Response(data={"add_minters": {"status": "success"}})

    def _mint_one(self, token_id: str, owner: str, public_metadata: Optional[Dict[str, Any]]) -> None:
        if token_id in self.owners:
            raise ContractError(f"Token ID {token_id} is already in use")
        self.owners[token_id] = owner
        if public_metadata:
            self.metadata[token_id] = public_metadata

    def handle_mint_nft(self, env: Env, token_id: str, owner: Optional[str] = None,
                        public_metadata: Optional[Dict[str, Any]] = None, **_ignored) -> Response:
        if env.sender not in self.minters:
            raise ContractError("Only designated minters are allowed to mint")
        self._mint_one(token_id, owner or env.sender, public_metadata)
        return Response(data={"mint_nft": {"token_id": token_id}}, attributes=[("minted", token_id)])

    def handle_batch_mint_nft(self, env: Env, mints: List[Dict[str, Any]], padding: Optional[str] = None) -> Response:
        if env.sender not in self.minters:
            raise ContractError("Only designated minters are allowed to mint")
        minted = []
        for mint in mints:
            self._mint_one(mint["token_id"], mint.get("owner") or env.sender, mint.get("public_metadata"))
            minted.append(mint["token_id"])
        return Response(
            data={"batch_mint_nft": {"token_ids": minted}},
            attributes=[("minted", ",".join(minted))]
        )

    def query_tokens(self, owner: str, viewer: Optional[str] = None, viewing_key: Optional[str] = None,
                     start_after: Optional[str] = None, limit: Optional[int] = None) -> Dict[str, Any]:
        if viewing_key is not None and not self.check_viewing_key(viewer or owner, viewing_key):
            raise ContractError("Wrong viewing key for this address or viewing key not set")
        tokens = sorted((t for t, o in self.owners.items() if o == owner), key=lambda t: (len(t), t))
        if start_after is not None:
            tokens = [t for t in tokens if (len(t), t) > (len(start_after), start_after)]
        if limit is not None:
            tokens = tokens[:limit]
        return {"token_list": {"tokens": tokens}}

    def query_num_tokens(self) -> Dict[str, Any]:
        return {"num_tokens": {"count": len(self.owners)}}


class Snip20Contract(ViewingKeyMixin, SimulatedContract):
    """Fungible token contract with minters and viewing-key protected balances"""

    def instantiate(self, env: Env, init_msg: Dict[str, Any]) -> None:
        self._init_viewing_keys(init_msg.get("prng_seed", ""))
        self.name = init_msg.get("name", "")
        self.symbol = init_msg.get("symbol", "")
        self.decimals = int(init_msg.get("decimals", 6))
        self.admin = init_msg.get("admin") or env.sender
        self.minters: List[str] = [self.admin]
        self.balances: Dict[str, int] = {}
        for entry in init_msg.get("initial_balances", []):
            self.balances[entry["address"]] = self.balances.get(entry["address"], 0) + _uint128(entry["amount"], "amount")

    def handle_add_minters(self, env: Env, minters: List[str], padding: Optional[str] = None) -> Response:
        self._only_admin(env, self.admin)
        for minter in minters:
            if minter not in self.minters:
                self.minters.append(minter)
        return Response(data={"add_minters": {"status": "success"}})

    def handle_mint(self, env: Env, recipient: str, amount: Any, padding: Optional[str] = None, **_ignored) -> Response:
        if env.sender not in self.minters:
            raise ContractError("Minting is allowed to minter accounts only")
        self.balances[recipient] = self.balances.get(recipient, 0) + _uint128(amount, "amount")
        return Response(data={"mint": {"status": "success"}})

    def handle_transfer(self, env: Env, recipient: str, amount: Any, padding: Optional[str] = None, **_ignored) -> Response:
        value = _uint128(amount, "amount")
        balance = self.balances.get(env.sender, 0)
        if value > balance:
            raise ContractError(f"insufficient funds: balance={balance}, required={value}")
        self.balances[env.sender] = balance - value
        self.balances[recipient] = self.balances.get(recipient, 0) + value
        return Response(data={"transfer": {"status": "success"}})

    def query_balance(self, address: str, key: str) -> Dict[str, Any]:
        if not self.check_viewing_key(address, key):
            return {"viewing_key_error": {"msg": "Wrong viewing key for this address or viewing key not set"}}
        return {"balance": {"amount": str(self.balances.get(address, 0))}}

    def query_token_info(self) -> Dict[str, Any]:
        return {"token_info": {"name": self.name, "symbol": self.symbol, "decimals": self.decimals}}


class MinterContract(SimulatedContract):
    """
    Minter in front of the NFT contract, governed by MintingStateMachine.

    Token ids are handed out in a shuffled order derived from the random seed.
    """

    def instantiate(self, env: Env, init_msg: Dict[str, Any]) -> None:
        nft_count = int(init_msg.get("nft_count", 0))
        self.model = MintingStateMachine(
            admin=env.sender,
            nft_count=nft_count,
            price=_uint128(init_msg.get("price", 0), "price"),
            whitelist_price=_uint128(init_msg.get("whitelist_price", 0), "whitelist_price"),
        )
        self.nft_contract = init_msg["nft_contract"]["address"]
        self.placeholder: Optional[str] = None
        self.attributes: Dict[str, Dict[str, Any]] = {}

        seed = hashlib.sha256(str(init_msg.get("random_seed", "")).encode()).digest()
        self._unminted = [str(i) for i in range(nft_count)]
        random.Random(seed).shuffle(self._unminted)

    def handle_set_place_holder(self, env: Env, token_uri: str) -> Response:
        self._only_admin(env, self.model.admin)
        self.placeholder = token_uri
        return Response(data={"set_place_holder": {"status": "success"}})

    def handle_set_attributes(self, env: Env, tokens: List[Dict[str, Any]]) -> Response:
        self._only_admin(env, self.model.admin)
        for token in tokens:
            self.attributes[str(token["token_id"])] = token.get("attributes", {})
        return Response(data={"set_attributes": {"status": "success"}})

    def handle_changing_minting_state(self, env: Env, mint_state: int) -> Response:
        self._only_admin(env, self.model.admin)
        try:
            self.model.advance(MintingPhase(int(mint_state)))
        except ValueError:
            raise ContractError(f"Invalid minting state {mint_state}")
        except InvalidPhaseTransition as e:
            raise ContractError(str(e))
        return Response(data={"changing_minting_state": {"status": "success"}},
                        attributes=[("mint_state", str(int(mint_state)))])

    def handle_add_whitelist(self, env: Env, addresses: List[Dict[str, Any]]) -> Response:
        self._only_admin(env, self.model.admin)
        for entry in addresses:
            self.model.add_to_whitelist(entry["address"], int(entry["amount"]))
        return Response(data={"add_whitelist": {"status": "success"}})

    def _mint_to(self, owner: str, amount: int) -> Response:
        token_ids = [self._unminted.pop() for _ in range(amount)]
        mints = []
        for token_id in token_ids:
            uri = self.placeholder or self.attributes.get(token_id, {}).get("token_uri")
            mint = {"token_id": token_id, "owner": owner}
            if uri:
                mint["public_metadata"] = {"token_uri": uri}
            mints.append(mint)
        return Response(
            data={"mint": {"status": "success", "token_ids": token_ids}},
            attributes=[("minted", str(amount))],
            messages=[SubMessage(self.nft_contract, {"batch_mint_nft": {"mints": mints}})]
        )

    def handle_mint(self, env: Env, amount: int) -> Response:
        decision = self.model.check_mint(env.sender, int(amount), env.funds)
        if not decision.allowed:
            raise ContractError(decision.reason)
        self.model.record_mint(env.sender, int(amount), decision.role)
        return self._mint_to(env.sender, int(amount))

    def handle_mint_admin(self, env: Env, amount: int) -> Response:
        decision = self.model.check_admin_mint(env.sender, int(amount))
        if not decision.allowed:
            raise ContractError(decision.reason)
        self.model.record_mint(env.sender, int(amount), MintRole.ADMIN)
        return self._mint_to(env.sender, int(amount))

    def query_is_whitelisted(self, address: str) -> Dict[str, Any]:
        allowance = self.model.allowance(address)
        return {"is_whitelisted": {"whitelisted": allowance is not None, "amount": allowance or 0}}


CONTRACT_KINDS = {
    "calculator": CalculatorContract,
    "snip721": Snip721Contract,
    "snip20": Snip20Contract,
    "minter": MinterContract,
}
