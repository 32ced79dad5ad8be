"""
Transaction confirmation tracking.

A broadcast only tells us that the node accepted a transaction for
propagation. The tracker polls for the transaction by hash with a bounded
exponential backoff and reports one of three outcomes: confirmed success,
confirmed failure, or unknown when the budget ran out first.
"""
import base64
import binascii
import json
import logging
import time
from typing import Optional, Any, Callable, Iterator

from .chain._rate_limited_log import rate_limited_log
from .chain.transport import ChainTransport, BroadcastResponse
from .config import ClientSettings
from .exceptions import TransportError
from .models import TxIntent, TxResult, TxOutcome, Confirmation
from .signer import Signer

logger = logging.getLogger(__name__)


def decode_response_data(data: Optional[str]) -> Optional[Any]:
    """
    Decode the data field of a transaction result.

    The field is base64 of the (already decrypted) UTF-8 JSON answer of the
    contract.

    Args:
        data: Base64 string as found on the TxResult

    Returns:
        Decoded JSON value, or None if there is no data or it is not
        base64 encoded JSON
    """
    if not data:
        return None
    try:
        text = base64.b64decode(data, validate=True).decode("utf-8")
        return json.loads(text)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.debug("Transaction data is not base64 encoded JSON, leaving it undecoded")
        return None


class TxConfirmationTracker:
    """
    Broadcasts transactions and waits for their outcome.

    Each lookup is preceded by a sleep: ``poll_interval`` first, multiplied
    by ``backoff_factor`` after every attempt and capped at
    ``max_poll_interval``. Polling stops when the transaction is found, when
    ``timeout`` seconds have been spent or after ``max_attempts`` lookups.
    Not-found answers and transport errors are both retried.
    """

    def __init__(
        self,
        transport: ChainTransport,
        poll_interval: float = 1.0,
        backoff_factor: float = 2.0,
        max_poll_interval: float = 6.0,
        timeout: float = 60.0,
        max_attempts: int = 30,
        logger: Optional[logging.Logger] = None
    ):
        if poll_interval <= 0 or max_poll_interval <= 0:
            raise ValueError("poll intervals must be positive")
        if backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.transport = transport
        self.poll_interval = poll_interval
        self.backoff_factor = backoff_factor
        self.max_poll_interval = max_poll_interval
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_settings(
        cls,
        transport: ChainTransport,
        settings: ClientSettings,
        logger: Optional[logging.Logger] = None
    ) -> "TxConfirmationTracker":
        return cls(
            transport,
            poll_interval=settings.poll_interval,
            backoff_factor=settings.backoff_factor,
            max_poll_interval=settings.max_poll_interval,
            timeout=settings.confirm_timeout,
            max_attempts=settings.max_poll_attempts,
            logger=logger
        )

    def delays(self) -> Iterator[float]:
        """Sleep before each lookup, in order"""
        delay = self.poll_interval
        for _ in range(self.max_attempts):
            yield min(delay, self.max_poll_interval)
            delay *= self.backoff_factor

    def submit_and_confirm(self, intent: TxIntent, signer: Signer) -> Confirmation:
        """
        Broadcast a contract execution and wait for its outcome.

        Args:
            intent: Execution to broadcast
            signer: Signer for ``intent.sender``

        Returns:
            Confirmation with outcome SUCCESS, FAILURE or UNKNOWN

        Raises:
            TransportError: If the broadcast itself could not be delivered
        """
        return self.submit(lambda: self.transport.broadcast(intent, signer), intent.operation)

    def submit(self, send: Callable[[], BroadcastResponse], label: str = "transaction") -> Confirmation:
        """Run a broadcast callable and wait for the transaction it sent"""
        ack = send()
        self.logger.info(f"Broadcast {label}: {ack.tx_hash}")
        return self.confirm(ack)

    def confirm(self, ack: BroadcastResponse) -> Confirmation:
        """
        Turn a broadcast acknowledgment into a confirmation.

        A transaction refused at CheckTx was never included, so it is a
        definite failure and is not polled for.
        """
        if not ack.accepted:
            self.logger.warning(f"Transaction {ack.tx_hash} refused by the node with code {ack.code}: {ack.raw_log}")
            result = TxResult(
                tx_hash=ack.tx_hash, code=ack.code, codespace=ack.codespace, raw_log=ack.raw_log
            )
            return Confirmation(outcome=TxOutcome.FAILURE, tx_hash=ack.tx_hash, result=result)
        return self.wait_for(ack.tx_hash)

    def wait_for(self, tx_hash: str) -> Confirmation:
        """
        Poll for a transaction until it is found or the budget is exhausted.

        Args:
            tx_hash: Hash of a broadcast transaction

        Returns:
            Confirmation; UNKNOWN carries no result
        """
        start = time.monotonic()
        slept = 0.0
        attempts = 0

        for delay in self.delays():
            remaining = self.timeout - max(slept, time.monotonic() - start)
            if attempts and delay > remaining:
                break
            # The first lookup always happens, within the budget
            delay = min(delay, max(remaining, 0.0))
            time.sleep(delay)
            slept += delay
            attempts += 1

            try:
                result = self.transport.get_tx(tx_hash)
            except TransportError as e:
                rate_limited_log(
                    f"Lookup of {tx_hash} failed, retrying: {e}",
                    level="warning", logger_instance=self.logger, key=f"lookup-error:{tx_hash}"
                )
                continue

            if result is None:
                rate_limited_log(
                    f"Transaction {tx_hash} not found yet, retrying",
                    level="warning", logger_instance=self.logger, key=f"not-found:{tx_hash}"
                )
                continue

            elapsed = max(slept, time.monotonic() - start)
            result = self._decode(result)
            outcome = TxOutcome.SUCCESS if result.succeeded else TxOutcome.FAILURE
            if outcome == TxOutcome.SUCCESS:
                self.logger.info(f"Transaction {tx_hash} confirmed at height {result.height}")
            else:
                self.logger.warning(f"Transaction {tx_hash} failed with code {result.code}: {result.raw_log}")
            return Confirmation(
                outcome=outcome, tx_hash=tx_hash, result=result, attempts=attempts, elapsed=elapsed
            )

        elapsed = max(slept, time.monotonic() - start)
        self.logger.error(
            f"Transaction {tx_hash} not confirmed after {attempts} attempts ({elapsed:.1f}s), outcome unknown"
        )
        return Confirmation(outcome=TxOutcome.UNKNOWN, tx_hash=tx_hash, attempts=attempts, elapsed=elapsed)

    def _decode(self, result: TxResult) -> TxResult:
        if result.raw_data is not None or result.data is None or not isinstance(result.data, str):
            return result
        return result.model_copy(update={"raw_data": result.data, "data": decode_response_data(result.data)})
