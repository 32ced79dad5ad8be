"""
In-memory simulated chain.

``StubTransport`` runs the simulated contracts from ``contracts`` behind the
same capability surface as a node: broadcasts are acknowledged immediately,
results only become visible to ``get_tx`` after a configurable number of
lookups, and transactions can be dropped so that they are never observed.
"""
import base64
import copy
import hashlib
import json
import logging
import secrets
import threading
from typing import Optional, Dict, Any, List, Tuple

from .contracts import CONTRACT_KINDS, ContractError, Env, SimulatedContract, SubMessage
from .transport import ChainTransport, BroadcastResponse
from ..exceptions import QueryFailed, TransportError
from ..models import (
    TxIntent, TxResult, TxLog, TxEvent, TxAttribute, Coin, AccountInfo, Account, DEFAULT_DENOM
)
from ..signer import Signer, LocalSigner
from ..signer.ec_constants import SECP256K1_MAX

# Configure logger
logger = logging.getLogger(__name__)

STUB_WASM_PREFIX = b"stub-wasm:"
BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"

# Cosmos SDK error codes
CODE_UNAUTHORIZED = 4
CODE_INSUFFICIENT_FUNDS = 5
CODE_OUT_OF_GAS = 11
CODE_CONTRACT_ERROR = 3

MAX_SUBMESSAGE_DEPTH = 8


def stub_wasm(kind: str) -> bytes:
    """
    Placeholder wasm understood by the simulated chain.

    Args:
        kind: One of ``calculator``, ``snip721``, ``snip20`` or ``minter``
    """
    if kind not in CONTRACT_KINDS:
        raise ValueError(f"Unknown contract kind '{kind}'. Known kinds: {', '.join(sorted(CONTRACT_KINDS))}")
    return STUB_WASM_PREFIX + kind.encode()


def stub_address(seed: bytes, prefix: str = "secret") -> str:
    """Deterministic bech32-looking address derived from ``seed``"""
    digest = hashlib.sha256(seed).digest() + hashlib.sha256(b"\x01" + seed).digest()
    return prefix + "1" + "".join(BECH32_CHARSET[b % 32] for b in digest[:38])


def make_stub_account(label: Optional[str] = None) -> Account:
    """Create an account with a fresh random key and a derived stub address"""
    while True:
        key = secrets.token_bytes(32)
        if 0 < int.from_bytes(key, "big") <= SECP256K1_MAX:
            break
    public_key = LocalSigner(key, address="unassigned").public_key
    signer = LocalSigner(key, address=stub_address(public_key))
    return Account(address=signer.address, signer=signer, label=label)


class _ExecutionFailed(Exception):
    def __init__(self, code: int, log: str):
        self.code = code
        self.log = log
        super().__init__(log)


def _event(event_type: str, attributes: List[Tuple[str, str]]) -> TxEvent:
    return TxEvent(type=event_type, attributes=[TxAttribute(key=k, value=v) for k, v in attributes])


class StubTransport(ChainTransport):
    """
    Simulated chain for development and tests.

    Args:
        chain_id: Chain id reported by the simulated node
        denom: Native fee denomination
        confirm_after: Number of ``get_tx`` lookups that miss before a
            transaction becomes visible
        gas_per_byte: Gas charged per byte of execute message on top of a
            fixed base cost
        logger: Optional logger instance
    """

    BASE_GAS = 40_000

    def __init__(
        self,
        chain_id: str = "secretdev-1",
        denom: str = DEFAULT_DENOM,
        confirm_after: int = 1,
        gas_per_byte: int = 10,
        logger: Optional[logging.Logger] = None,
        **_ignored
    ):
        self.chain_id = chain_id
        self.denom = denom
        self.confirm_after = confirm_after
        self.gas_per_byte = gas_per_byte
        self.logger = logger or logging.getLogger(__name__)

        self.height = 1
        self.balances: Dict[str, Dict[str, int]] = {}
        self.sequences: Dict[str, int] = {}
        self.account_numbers: Dict[str, int] = {}
        self.codes: Dict[int, Tuple[str, str]] = {}
        self.contracts: Dict[str, SimulatedContract] = {}
        self.contract_code_ids: Dict[str, int] = {}
        self.labels: Dict[str, str] = {}

        self._results: Dict[str, TxResult] = {}
        self._misses: Dict[str, int] = {}
        self._dropped: set = set()
        self._drop_next = 0
        self._failing_lookups = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Test controls
    # ------------------------------------------------------------------ #

    def fund(self, address: str, amount: int, denom: Optional[str] = None) -> None:
        """Credit ``amount`` to ``address`` out of thin air (genesis balance)"""
        denom = denom or self.denom
        with self._lock:
            self._touch(address)
            account = self.balances[address]
            account[denom] = account.get(denom, 0) + int(amount)

    def create_account(self, label: Optional[str] = None, balance: int = 0) -> Account:
        """Create a random account, optionally with a genesis balance"""
        account = make_stub_account(label)
        if balance:
            self.fund(account.address, balance)
        return account

    def drop_next(self, count: int = 1) -> None:
        """Make the next ``count`` broadcasts execute but never become visible"""
        self._drop_next += count

    def fail_lookups(self, count: int) -> None:
        """Make the next ``count`` calls to ``get_tx`` raise TransportError"""
        self._failing_lookups += count

    def balance(self, address: str, denom: Optional[str] = None) -> int:
        return self.balances.get(address, {}).get(denom or self.denom, 0)

    def contract(self, address: str) -> SimulatedContract:
        return self.contracts[address]

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _touch(self, address: str) -> None:
        if address not in self.balances:
            self.balances[address] = {}
            self.sequences[address] = 0
            self.account_numbers[address] = len(self.account_numbers)

    def _move(self, sender: str, recipient: str, funds: List[Coin]) -> None:
        self._touch(sender)
        self._touch(recipient)
        for coin in funds:
            amount = int(coin.amount)
            available = self.balances.get(sender, {}).get(coin.denom, 0)
            if amount > available:
                raise _ExecutionFailed(
                    CODE_INSUFFICIENT_FUNDS,
                    f"{available}{coin.denom} is smaller than {amount}{coin.denom}: insufficient funds"
                )
            self.balances[sender][coin.denom] = available - amount
            self.balances[recipient][coin.denom] = self.balances[recipient].get(coin.denom, 0) + amount

    def _tx_hash(self, sender: str, payload: Any) -> str:
        sequence = self.sequences.get(sender, 0)
        material = json.dumps([self.chain_id, sender, sequence, payload], sort_keys=True, default=str)
        return hashlib.sha256(material.encode()).hexdigest().upper()

    def _submit(self, signer: Signer, sender: str, payload: Any, gas_limit: int, run) -> BroadcastResponse:
        """
        CheckTx, then deliver the transaction atomically.

        ``run`` applies the state change and returns ``(events, data)``.
        """
        with self._lock:
            tx_hash = self._tx_hash(sender, payload)
            if signer.address != sender:
                self.logger.debug(f"Rejecting {tx_hash}: signer {signer.address} does not match {sender}")
                return BroadcastResponse(
                    tx_hash=tx_hash, code=CODE_UNAUTHORIZED, codespace="sdk",
                    raw_log=f"pubKey does not match signer address {sender}: invalid pubkey"
                )

            self._touch(sender)
            self.sequences[sender] += 1
            self.height += 1
            gas_used = self.BASE_GAS + self.gas_per_byte * len(json.dumps(payload, default=str))

            snapshot = (copy.deepcopy(self.balances), copy.deepcopy(self.contracts),
                        dict(self.contract_code_ids), dict(self.codes), dict(self.labels))
            try:
                if gas_used > gas_limit:
                    raise _ExecutionFailed(
                        CODE_OUT_OF_GAS, f"out of gas in location: WasmExecute; gasWanted: {gas_limit}, gasUsed: {gas_used}"
                    )
                events, data = run()
                result = TxResult(
                    tx_hash=tx_hash, height=self.height, raw_log="",
                    logs=[TxLog(msg_index=0, events=events)],
                    data=base64.b64encode(json.dumps(data).encode()).decode() if data is not None else None,
                    gas_used=gas_used, gas_wanted=gas_limit
                )
                result.raw_log = json.dumps([entry.model_dump() for entry in result.logs])
            except _ExecutionFailed as e:
                (self.balances, self.contracts, self.contract_code_ids, self.codes, self.labels) = snapshot
                result = TxResult(
                    tx_hash=tx_hash, height=self.height, code=e.code,
                    codespace="compute" if e.code == CODE_CONTRACT_ERROR else "sdk",
                    raw_log=e.log, gas_used=gas_used, gas_wanted=gas_limit
                )
            except Exception:
                (self.balances, self.contracts, self.contract_code_ids, self.codes, self.labels) = snapshot
                raise

            self._results[tx_hash] = result
            self._misses[tx_hash] = self.confirm_after
            if self._drop_next:
                self._drop_next -= 1
                self._dropped.add(tx_hash)

            self.logger.debug(f"Simulated tx {tx_hash} at height {self.height} with code {result.code}")
            return BroadcastResponse(tx_hash=tx_hash)

    def _run_contract(self, sender: str, contract: str, msg: Dict[str, Any], funds: List[Coin],
                      events: List[TxEvent], depth: int = 0) -> Optional[Dict[str, Any]]:
        if contract not in self.contracts:
            raise _ExecutionFailed(CODE_CONTRACT_ERROR, f"contract {contract} not found: execute contract failed")
        if depth > MAX_SUBMESSAGE_DEPTH:
            raise _ExecutionFailed(CODE_CONTRACT_ERROR, "submessage depth exceeded: execute contract failed")

        self._move(sender, contract, funds)
        env = Env(sender=sender, contract_address=contract, height=self.height, funds=list(funds))
        try:
            response = self.contracts[contract].execute(env, copy.deepcopy(msg))
        except ContractError as e:
            raise _ExecutionFailed(
                CODE_CONTRACT_ERROR,
                f"failed to execute message; message index: 0: {e}: execute contract failed"
            )

        events.append(_event("wasm", [("contract_address", contract)] + list(response.attributes)))
        for sub in response.messages:
            self._run_submessage(contract, sub, events, depth + 1)
        return response.data

    def _run_submessage(self, sender: str, sub: SubMessage, events: List[TxEvent], depth: int) -> None:
        self._run_contract(sender, sub.contract, sub.msg, sub.funds, events, depth)

    # ------------------------------------------------------------------ #
    # ChainTransport
    # ------------------------------------------------------------------ #

    def broadcast(self, intent: TxIntent, signer: Signer) -> BroadcastResponse:
        def run():
            events = [_event("message", [
                ("action", "execute"),
                ("module", "compute"),
                ("sender", intent.sender),
                ("contract_address", intent.contract),
            ])]
            data = self._run_contract(intent.sender, intent.contract, intent.msg, intent.funds, events)
            return events, data

        payload = {"execute": intent.msg, "contract": intent.contract,
                   "funds": [c.model_dump() for c in intent.funds], "memo": intent.memo}
        return self._submit(signer, intent.sender, payload, intent.gas_limit, run)

    def store_code(self, wasm: bytes, signer: Signer, gas_limit: int) -> BroadcastResponse:
        def run():
            kind = wasm[len(STUB_WASM_PREFIX):].decode(errors="replace") if wasm.startswith(STUB_WASM_PREFIX) else None
            if kind not in CONTRACT_KINDS:
                raise _ExecutionFailed(CODE_CONTRACT_ERROR, "Error calling the VM: invalid wasm byte code")
            code_id = len(self.codes) + 1
            self.codes[code_id] = (kind, hashlib.sha256(wasm).hexdigest())
            return [_event("message", [
                ("action", "/secret.compute.v1beta1.MsgStoreCode"),
                ("module", "compute"),
                ("sender", signer.address),
                ("code_id", str(code_id)),
            ])], None

        payload = {"store_code": hashlib.sha256(wasm).hexdigest()}
        return self._submit(signer, signer.address, payload, gas_limit, run)

    def instantiate(
        self,
        code_id: int,
        init_msg: Dict[str, Any],
        label: str,
        signer: Signer,
        gas_limit: int,
        code_hash: Optional[str] = None,
        funds: Optional[List[Coin]] = None
    ) -> BroadcastResponse:
        def run():
            if code_id not in self.codes:
                raise _ExecutionFailed(CODE_CONTRACT_ERROR, f"code with id {code_id} not found")
            kind, stored_hash = self.codes[code_id]
            if code_hash is not None and code_hash.lower() != stored_hash:
                raise _ExecutionFailed(CODE_CONTRACT_ERROR, "failed to verify code hash: instantiate contract failed")
            if label in self.labels.values():
                raise _ExecutionFailed(CODE_CONTRACT_ERROR, f"label already exists: {label}")

            address = stub_address(f"{code_id}:{label}:{signer.address}".encode())
            self._move(signer.address, address, funds or [])
            env = Env(sender=signer.address, contract_address=address, height=self.height, funds=list(funds or []))
            try:
                self.contracts[address] = CONTRACT_KINDS[kind](env, copy.deepcopy(init_msg))
            except (ContractError, KeyError, ValueError, TypeError) as e:
                raise _ExecutionFailed(
                    CODE_CONTRACT_ERROR,
                    f"failed to execute message; message index: 0: {e}: instantiate contract failed"
                )
            self.contract_code_ids[address] = code_id
            self.labels[address] = label
            return [
                _event("message", [
                    ("action", "/secret.compute.v1beta1.MsgInstantiateContract"),
                    ("module", "compute"),
                    ("sender", signer.address),
                    ("contract_address", address),
                ]),
                _event("wasm", [("contract_address", address)]),
            ], None

        payload = {"instantiate": code_id, "label": label, "init_msg": init_msg}
        return self._submit(signer, signer.address, payload, gas_limit, run)

    def send_tokens(
        self,
        recipient: str,
        amount: List[Coin],
        signer: Signer,
        gas_limit: int,
        memo: str = ""
    ) -> BroadcastResponse:
        def run():
            self._move(signer.address, recipient, amount)
            total = ",".join(f"{c.amount}{c.denom}" for c in amount)
            return [
                _event("message", [("action", "send"), ("module", "bank"), ("sender", signer.address)]),
                _event("transfer", [("recipient", recipient), ("sender", signer.address), ("amount", total)]),
            ], None

        payload = {"send": recipient, "amount": [c.model_dump() for c in amount], "memo": memo}
        return self._submit(signer, signer.address, payload, gas_limit, run)

    def get_tx(self, tx_hash: str) -> Optional[TxResult]:
        with self._lock:
            if self._failing_lookups:
                self._failing_lookups -= 1
                raise TransportError("Simulated node unavailable", status_code=503)
            if tx_hash not in self._results or tx_hash in self._dropped:
                return None
            if self._misses[tx_hash] > 0:
                self._misses[tx_hash] -= 1
                return None
            return self._results[tx_hash].model_copy(deep=True)

    def query_contract(
        self,
        contract: str,
        query: Dict[str, Any],
        code_hash: Optional[str] = None
    ) -> Any:
        with self._lock:
            if contract not in self.contracts:
                raise QueryFailed(f"Query rejected: contract {contract} not found", contract=contract)
            if code_hash is not None:
                expected = self.codes[self.contract_code_ids[contract]][1]
                if code_hash.lower() != expected:
                    raise QueryFailed("Query rejected: failed to verify code hash", contract=contract)
            try:
                answer = self.contracts[contract].query(copy.deepcopy(query))
            except ContractError as e:
                raise QueryFailed(f"Query rejected: {e}", contract=contract)
            # Round-trip through JSON like a real node answer
            return json.loads(json.dumps(answer))

    def get_code_hash(self, code_id: int) -> str:
        if code_id not in self.codes:
            raise TransportError(f"code with id {code_id} not found", status_code=404)
        return self.codes[code_id][1]

    def get_account(self, address: str) -> AccountInfo:
        with self._lock:
            balances = self.balances.get(address, {})
            return AccountInfo(
                address=address,
                account_number=self.account_numbers.get(address, 0),
                sequence=self.sequences.get(address, 0),
                balances=[Coin(denom=d, amount=str(a)) for d, a in sorted(balances.items()) if a]
            )

    def get_chain_id(self) -> str:
        return self.chain_id

    def get_height(self) -> int:
        return self.height
