"""
Viewing key management.

Confidential contracts answer queries about an address only when the query
carries that address's viewing key. Keys are generated on-chain with a
``generate_viewing_key`` execution and cached per (address, contract) pair
in a ViewingKeyContext for the lifetime of a session.
"""
import logging
import secrets
import threading
from typing import Dict, Optional, Tuple, Iterator

from .confirmation import TxConfirmationTracker
from .exceptions import KeyGenerationFailed, TransportError
from .models import Account, TxIntent

logger = logging.getLogger(__name__)


class ViewingKeyContext:
    """
    Session cache of viewing keys.

    Holds at most one key per (address, contract) pair; storing a key for a
    pair replaces the previous one.
    """

    def __init__(self):
        self._keys: Dict[Tuple[str, str], str] = {}
        self._lock = threading.RLock()

    def get(self, address: str, contract: str) -> Optional[str]:
        with self._lock:
            return self._keys.get((address, contract))

    def put(self, address: str, contract: str, key: str) -> None:
        with self._lock:
            self._keys[(address, contract)] = key

    def drop(self, address: str, contract: str) -> bool:
        with self._lock:
            return self._keys.pop((address, contract), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()

    def pairs(self) -> Iterator[Tuple[str, str]]:
        with self._lock:
            return iter(list(self._keys))

    def __contains__(self, pair: Tuple[str, str]) -> bool:
        return pair in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class ViewingKeyManager:
    """
    Obtains viewing keys through the confirmation tracker and caches them.
    """

    def __init__(
        self,
        tracker: TxConfirmationTracker,
        context: Optional[ViewingKeyContext] = None,
        gas_limit: int = 1_600_000,
        logger: Optional[logging.Logger] = None
    ):
        self.tracker = tracker
        self.context = context if context is not None else ViewingKeyContext()
        self.gas_limit = gas_limit
        self.logger = logger or logging.getLogger(__name__)

    def ensure_key(self, account: Account, contract: str, code_hash: Optional[str] = None) -> str:
        """
        Return the cached key for the pair, generating one if there is none.

        Raises:
            KeyGenerationFailed: If a key had to be generated and generation failed
        """
        key = self.context.get(account.address, contract)
        if key is not None:
            return key
        return self.generate_key(account, contract, code_hash=code_hash)

    def generate_key(
        self,
        account: Account,
        contract: str,
        entropy: Optional[str] = None,
        code_hash: Optional[str] = None,
        padding: Optional[str] = None
    ) -> str:
        """
        Generate a new viewing key on-chain and cache it, replacing any
        previously cached key for the pair.

        Args:
            account: Account the key is for
            contract: Contract address
            entropy: Entropy mixed into the key; random when omitted
            code_hash: Code hash of the contract, if known
            padding: Optional padding to hide the message length

        Returns:
            The new viewing key

        Raises:
            KeyGenerationFailed: If the transaction failed, its outcome is
                unknown, or its answer carries no key
        """
        body = {"entropy": entropy if entropy is not None else secrets.token_hex(16)}
        if padding is not None:
            body["padding"] = padding
        intent = TxIntent(
            sender=account.address,
            contract=contract,
            msg={"generate_viewing_key": body},
            gas_limit=self.gas_limit,
            code_hash=code_hash
        )

        try:
            confirmation = self.tracker.submit_and_confirm(intent, account.signer)
        except TransportError as e:
            raise KeyGenerationFailed(f"Could not broadcast generate_viewing_key for {account.address}: {e}") from e

        if confirmation.unknown:
            raise KeyGenerationFailed(
                f"generate_viewing_key {confirmation.tx_hash} was not confirmed, the key is unknown"
            )
        if confirmation.failed:
            result = confirmation.result
            raise KeyGenerationFailed(
                f"generate_viewing_key {confirmation.tx_hash} failed with code {result.code}: {result.raw_log}"
            )

        data = confirmation.data
        key = None
        if isinstance(data, dict):
            key = (data.get("generate_viewing_key") or {}).get("key")
        if not key:
            raise KeyGenerationFailed(f"generate_viewing_key {confirmation.tx_hash} returned no key")

        self.context.put(account.address, contract, key)
        self.logger.info(f"Viewing key generated for {account.address} on {contract}")
        return key

    def set_key(self, account: Account, contract: str, key: str) -> None:
        """Record a key obtained elsewhere for the pair"""
        if not key:
            raise ValueError("key must not be empty")
        self.context.put(account.address, contract, key)

    def get_key(self, account: Account, contract: str) -> Optional[str]:
        return self.context.get(account.address, contract)

    def forget(self, account: Account, contract: str) -> bool:
        """Drop the cached key for the pair; returns whether one was cached"""
        return self.context.drop(account.address, contract)
