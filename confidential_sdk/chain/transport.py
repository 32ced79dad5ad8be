"""
Transport layer for the chain node.

This module defines the capability surface the SDK consumes from a node:
fire-and-acknowledge broadcasts, point lookups of transactions by hash,
stateless contract queries and a few account utilities. Concrete
implementations talk to a REST endpoint or simulate a chain in memory.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Protocol

from ..models import TxIntent, TxResult, Coin, AccountInfo, Fee
from ..signer import Signer

# Configure logger
logger = logging.getLogger(__name__)


class PayloadCipher(Protocol):
    """
    Encryption capability for contract payloads.

    Messages and queries sent to a confidential contract are encrypted for the
    contract, and the data it returns is decrypted by the caller. The
    primitives live outside the SDK.
    """

    def encrypt(self, code_hash: Optional[str], msg: Dict[str, Any]) -> bytes:
        """Encrypt a JSON message for the contract with the given code hash"""
        ...

    def decrypt(self, data: bytes) -> bytes:
        """Decrypt response bytes returned by a contract"""
        ...


class PlaintextCipher:
    """Cipher for development chains that accept unencrypted payloads"""

    def encrypt(self, code_hash: Optional[str], msg: Dict[str, Any]) -> bytes:
        return json.dumps(msg, separators=(",", ":")).encode("utf-8")

    def decrypt(self, data: bytes) -> bytes:
        return data


class TxBuilder(Protocol):
    """
    Wire encoding capability: turns messages into signed transaction bytes.
    """

    def build(
        self,
        messages: List[Dict[str, Any]],
        fee: Fee,
        memo: str,
        signer: Signer,
        account_number: int,
        sequence: int,
        chain_id: str
    ) -> bytes:
        ...


@dataclass
class BroadcastResponse:
    """
    Acknowledgment of a broadcast.

    ``code`` is the CheckTx code: non-zero means the transaction was refused
    before it could be included in a block.
    """
    tx_hash: str
    code: int = 0
    raw_log: str = ""
    codespace: str = ""

    @property
    def accepted(self) -> bool:
        return self.code == 0


class ChainTransport(ABC):
    """
    Abstract base class for chain transports.

    Broadcast methods return as soon as the node has accepted the transaction
    for propagation; the outcome must be looked up with ``get_tx``.
    """

    @abstractmethod
    def broadcast(self, intent: TxIntent, signer: Signer) -> BroadcastResponse:
        """
        Broadcast a contract execution.

        Args:
            intent: The execution to broadcast
            signer: Signer for ``intent.sender``

        Returns:
            Broadcast acknowledgment carrying the transaction hash

        Raises:
            TransportError: If the node could not be reached
        """
        pass

    @abstractmethod
    def get_tx(self, tx_hash: str) -> Optional[TxResult]:
        """
        Look up a transaction by hash.

        Returns:
            The transaction result with undecoded ``data``, or None if the
            node does not know the transaction (yet)

        Raises:
            TransportError: If the node could not be reached
        """
        pass

    @abstractmethod
    def query_contract(
        self,
        contract: str,
        query: Dict[str, Any],
        code_hash: Optional[str] = None
    ) -> Any:
        """
        Run a contract query and return its decoded JSON answer.

        Raises:
            QueryFailed: If the contract rejected the query
            TransportError: If the node could not be reached
        """
        pass

    @abstractmethod
    def store_code(self, wasm: bytes, signer: Signer, gas_limit: int) -> BroadcastResponse:
        """Broadcast an upload of contract code"""
        pass

    @abstractmethod
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
        """Broadcast a contract instantiation"""
        pass

    @abstractmethod
    def send_tokens(
        self,
        recipient: str,
        amount: List[Coin],
        signer: Signer,
        gas_limit: int,
        memo: str = ""
    ) -> BroadcastResponse:
        """Broadcast a bank transfer"""
        pass

    @abstractmethod
    def get_code_hash(self, code_id: int) -> str:
        """Return the code hash of uploaded code"""
        pass

    @abstractmethod
    def get_account(self, address: str) -> AccountInfo:
        """Return account number, sequence and balances of an address"""
        pass

    @abstractmethod
    def get_chain_id(self) -> str:
        pass

    @abstractmethod
    def get_height(self) -> int:
        pass

    def close(self) -> None:
        """Close any open connections or resources."""
        pass


def get_transport(
    lcd_url: Optional[str] = None,
    tx_builder: Optional[TxBuilder] = None,
    cipher: Optional[PayloadCipher] = None,
    **kwargs
) -> ChainTransport:
    """
    Get a transport implementation.

    Args:
        lcd_url: REST endpoint of a node; when omitted an in-memory simulated
            chain is returned
        tx_builder: Wire encoder used by the REST transport to sign transactions
        cipher: Payload cipher used by the REST transport
        **kwargs: Extra options passed to the transport constructor

    Returns:
        Transport implementation
    """
    if lcd_url:
        from .rest_transport import RestTransport
        logger.info(f"Using REST transport for {lcd_url}")
        return RestTransport(lcd_url, tx_builder=tx_builder, cipher=cipher, **kwargs)

    from .stub_transport import StubTransport
    logger.info("Using simulated in-memory chain")
    return StubTransport(**kwargs)
