"""
REST transport for the chain node.

Talks to the cosmos-sdk REST gateway (LCD) of a node. Transaction signing and
wire encoding are delegated to a TxBuilder, payload encryption to a
PayloadCipher.
"""
import base64
import binascii
import json
import logging
from typing import Optional, Dict, Any, List

import requests
from cachetools import LRUCache
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .transport import ChainTransport, BroadcastResponse, PayloadCipher, PlaintextCipher, TxBuilder
from ..config import ClientSettings, validate_url
from ..exceptions import ConfigurationError, QueryFailed, TransportError
from ..models import TxIntent, TxResult, TxLog, Coin, AccountInfo, parse_raw_log
from ..signer import Signer

logger = logging.getLogger(__name__)

MSG_EXECUTE = "/secret.compute.v1beta1.MsgExecuteContract"
MSG_INSTANTIATE = "/secret.compute.v1beta1.MsgInstantiateContract"
MSG_STORE_CODE = "/secret.compute.v1beta1.MsgStoreCode"
MSG_SEND = "/cosmos.bank.v1beta1.MsgSend"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class RestTransport(ChainTransport):
    """
    Transport over the node's REST API.

    Idempotent lookups are retried by the HTTP session on connection errors
    and 5xx answers; broadcasts are sent exactly once.
    """

    def __init__(
        self,
        lcd_url: str,
        tx_builder: Optional[TxBuilder] = None,
        cipher: Optional[PayloadCipher] = None,
        settings: Optional[ClientSettings] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the transport

        Args:
            lcd_url: REST endpoint (https unless localhost)
            tx_builder: Wire encoder, required for broadcasts
            cipher: Payload cipher, defaults to plaintext payloads
            settings: Fee and HTTP settings
            logger: Optional logger instance

        Raises:
            ConfigurationError: If the URL is not acceptable
        """
        self.lcd_url = validate_url("lcd_url", lcd_url)
        self.tx_builder = tx_builder
        self.cipher = cipher or PlaintextCipher()
        self.settings = settings or ClientSettings()
        self.logger = logger or logging.getLogger(__name__)
        self.timeout = self.settings.http_timeout
        self._chain_id: Optional[str] = None
        self._code_hashes: LRUCache = LRUCache(maxsize=256)

        self.session = requests.Session()
        retries = Retry(
            total=self.settings.http_retries,
            backoff_factor=0.5,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
            connect=self.settings.http_retries,
            read=self.settings.http_retries,
        )
        self.session.mount("http://", HTTPAdapter(max_retries=retries))
        self.session.mount("https://", HTTPAdapter(max_retries=retries))

    # ------------------------------------------------------------------ #
    # HTTP helpers
    # ------------------------------------------------------------------ #

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            return self.session.get(f"{self.lcd_url}{path}", params=params, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.error(f"GET {path} failed: {e}")
            raise TransportError(f"GET {path} failed: {e}")

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self._get(path, params)
        if response.status_code >= 400:
            raise TransportError(
                f"GET {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code
            )
        return self._json(response, path)

    def _json(self, response: requests.Response, path: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {path}: {e}")
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected answer from {path}: {str(body)[:200]}")
        return body

    def _code_hash_at(self, path: str) -> str:
        code_hash = self._get_json(path).get("code_hash")
        if not code_hash:
            raise TransportError(f"No code_hash in the answer from {path}")
        return code_hash

    # ------------------------------------------------------------------ #
    # Broadcasting
    # ------------------------------------------------------------------ #

    def _broadcast_messages(self, messages: List[Dict[str, Any]], signer: Signer, gas_limit: int, memo: str = "") -> BroadcastResponse:
        if self.tx_builder is None:
            raise ConfigurationError("A tx_builder is required to broadcast transactions")

        account = self.get_account(signer.address)
        tx_bytes = self.tx_builder.build(
            messages,
            self.settings.fee_for(gas_limit),
            memo,
            signer,
            account.account_number,
            account.sequence,
            self.get_chain_id()
        )

        try:
            response = self.session.post(
                f"{self.lcd_url}/cosmos/tx/v1beta1/txs",
                json={"tx_bytes": _b64(tx_bytes), "mode": "BROADCAST_MODE_SYNC"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            self.logger.error(f"Broadcast failed: {e}")
            raise TransportError(f"Broadcast failed: {e}")

        if response.status_code >= 400:
            raise TransportError(
                f"Broadcast returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code
            )
        try:
            tx_response = response.json()["tx_response"]
        except (ValueError, KeyError, TypeError) as e:
            raise TransportError(f"Malformed broadcast response: {e}")

        ack = BroadcastResponse(
            tx_hash=tx_response["txhash"],
            code=int(tx_response.get("code", 0)),
            raw_log=tx_response.get("raw_log", ""),
            codespace=tx_response.get("codespace", "")
        )
        self.logger.info(f"Transaction sent: {ack.tx_hash} (check code {ack.code})")
        return ack

    def broadcast(self, intent: TxIntent, signer: Signer) -> BroadcastResponse:
        message = {
            "@type": MSG_EXECUTE,
            "sender": intent.sender,
            "contract": intent.contract,
            "msg": _b64(self.cipher.encrypt(intent.code_hash, intent.msg)),
            "sent_funds": [coin.model_dump() for coin in intent.funds],
        }
        return self._broadcast_messages([message], signer, intent.gas_limit, intent.memo)

    def store_code(self, wasm: bytes, signer: Signer, gas_limit: int) -> BroadcastResponse:
        message = {
            "@type": MSG_STORE_CODE,
            "sender": signer.address,
            "wasm_byte_code": _b64(wasm),
            "source": "",
            "builder": "",
        }
        return self._broadcast_messages([message], signer, gas_limit)

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
        if code_hash is None:
            code_hash = self.get_code_hash(code_id)
        message = {
            "@type": MSG_INSTANTIATE,
            "sender": signer.address,
            "code_id": str(code_id),
            "label": label,
            "init_msg": _b64(self.cipher.encrypt(code_hash, init_msg)),
            "init_funds": [coin.model_dump() for coin in funds or []],
        }
        return self._broadcast_messages([message], signer, gas_limit)

    def send_tokens(
        self,
        recipient: str,
        amount: List[Coin],
        signer: Signer,
        gas_limit: int,
        memo: str = ""
    ) -> BroadcastResponse:
        message = {
            "@type": MSG_SEND,
            "from_address": signer.address,
            "to_address": recipient,
            "amount": [coin.model_dump() for coin in amount],
        }
        return self._broadcast_messages([message], signer, gas_limit, memo)

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    def get_tx(self, tx_hash: str) -> Optional[TxResult]:
        response = self._get(f"/cosmos/tx/v1beta1/txs/{tx_hash}")

        # Unknown hashes come back as 404, or 400 with a "not found" message
        # on older nodes
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            if "not found" in response.text.lower():
                return None
            raise TransportError(
                f"Transaction lookup returned {response.status_code}",
                status_code=response.status_code
            )

        try:
            tx_response = response.json()["tx_response"]
        except (ValueError, KeyError, TypeError) as e:
            raise TransportError(f"Malformed transaction response: {e}")

        return self._convert_tx_response(tx_response)

    def _convert_tx_response(self, tx_response: Dict[str, Any]) -> TxResult:
        """
        Convert a node tx_response into a TxResult.

        Newer nodes leave ``logs`` empty and report ``events`` at the top
        level; those are folded into a single log entry.
        """
        logs = [TxLog.model_validate(entry) for entry in tx_response.get("logs") or []]
        if not logs:
            logs = parse_raw_log(tx_response.get("raw_log"))
        if not logs and tx_response.get("events"):
            logs = [TxLog.model_validate({"msg_index": 0, "events": tx_response["events"]})]

        return TxResult(
            tx_hash=tx_response["txhash"],
            height=int(tx_response.get("height", 0)),
            code=int(tx_response.get("code", 0)),
            codespace=tx_response.get("codespace", ""),
            raw_log=tx_response.get("raw_log", ""),
            logs=logs,
            data=self._decrypt_data(tx_response.get("data")),
            gas_used=int(tx_response.get("gas_used", 0)),
            gas_wanted=int(tx_response.get("gas_wanted", 0)),
        )

    def _decrypt_data(self, data: Optional[str]) -> Optional[str]:
        """Decrypt the tx data field and return it base64 encoded"""
        if not data:
            return None
        try:
            raw = bytes.fromhex(data)
        except ValueError:
            try:
                raw = base64.b64decode(data, validate=True)
            except binascii.Error:
                self.logger.debug("Transaction data is neither hex nor base64, leaving it undecoded")
                return None
        return _b64(self.cipher.decrypt(raw))

    def query_contract(
        self,
        contract: str,
        query: Dict[str, Any],
        code_hash: Optional[str] = None
    ) -> Any:
        if code_hash is None:
            code_hash = self._contract_code_hash(contract)

        encrypted = _b64(self.cipher.encrypt(code_hash, query))
        response = self._get(f"/compute/v1beta1/query/{contract}", params={"query": encrypted})

        if response.status_code >= 500:
            raise TransportError(
                f"Query of {contract} returned {response.status_code}",
                status_code=response.status_code
            )
        try:
            body = response.json()
        except ValueError as e:
            raise QueryFailed(f"Invalid JSON in query response: {e}", contract=contract)

        if response.status_code >= 400:
            message = body.get("message", body) if isinstance(body, dict) else body
            raise QueryFailed(f"Query rejected: {message}", contract=contract)

        try:
            plaintext = self.cipher.decrypt(base64.b64decode(body["data"]))
            return json.loads(plaintext)
        except (KeyError, TypeError, binascii.Error, ValueError) as e:
            raise QueryFailed(f"Could not decode query response: {e}", contract=contract)

    def _contract_code_hash(self, contract: str) -> str:
        if contract not in self._code_hashes:
            self._code_hashes[contract] = self._code_hash_at(
                f"/compute/v1beta1/code_hash/by_contract_address/{contract}"
            )
        return self._code_hashes[contract]

    def get_code_hash(self, code_id: int) -> str:
        return self._code_hash_at(f"/compute/v1beta1/code_hash/by_code_id/{code_id}")

    def get_account(self, address: str) -> AccountInfo:
        path = f"/cosmos/auth/v1beta1/accounts/{address}"
        response = self._get(path)
        account: Dict[str, Any] = {}
        if response.status_code == 404:
            # Accounts only exist on-chain after they received funds
            self.logger.debug(f"Account {address} not found on chain")
        elif response.status_code >= 400:
            raise TransportError(
                f"Account lookup returned {response.status_code}",
                status_code=response.status_code
            )
        else:
            account = self._json(response, path).get("account") or {}

        balances = self._get_json(f"/cosmos/bank/v1beta1/balances/{address}").get("balances", [])
        return AccountInfo(
            address=address,
            account_number=int(account.get("account_number", 0)),
            sequence=int(account.get("sequence", 0)),
            balances=[Coin.model_validate(b) for b in balances]
        )

    def _latest_block_header(self) -> Dict[str, Any]:
        body = self._get_json("/cosmos/base/tendermint/v1beta1/blocks/latest")
        block = body.get("block") or body.get("sdk_block") or {}
        return block.get("header", {})

    def get_chain_id(self) -> str:
        if self._chain_id is None:
            self._chain_id = self._latest_block_header()["chain_id"]
        return self._chain_id

    def get_height(self) -> int:
        return int(self._latest_block_header().get("height", 0))

    def close(self) -> None:
        self.session.close()
