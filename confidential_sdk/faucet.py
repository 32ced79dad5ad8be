"""
Development faucet helpers.

Local development chains run a faucet next to the node that hands out
tokens on ``GET /faucet?address=...``.
"""
import logging
import time
from typing import Optional, TYPE_CHECKING

import requests

from .config import NetworkConfig, validate_url
from .exceptions import ConfigurationError, TransportError

if TYPE_CHECKING:
    from .client import SecretClient

logger = logging.getLogger(__name__)


def get_from_faucet(address: str, faucet_url: str, timeout: int = 30,
                    session: Optional[requests.Session] = None) -> None:
    """
    Ask the faucet to send tokens to ``address``.

    Raises:
        TransportError: If the faucet could not be reached or refused
    """
    faucet_url = validate_url("faucet_url", faucet_url)
    http = session or requests
    try:
        response = http.get(f"{faucet_url}/faucet", params={"address": address}, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise TransportError(
            f"Faucet request for {address} failed: {e}",
            status_code=getattr(getattr(e, "response", None), "status_code", None)
        )


def fill_up_from_faucet(
    client: "SecretClient",
    target_balance: int,
    faucet_url: Optional[str] = None,
    address: Optional[str] = None,
    max_attempts: int = 10,
    interval: float = 1.0
) -> int:
    """
    Request tokens until ``address`` holds at least ``target_balance``.

    Args:
        client: Client used to read the balance
        target_balance: Balance to reach, in the client's denom
        faucet_url: Faucet endpoint; defaults to the client's network faucet
        address: Address to fund; defaults to the client's account
        max_attempts: Faucet requests to make before giving up
        interval: Seconds to wait between attempts

    Returns:
        The balance reached

    Raises:
        ConfigurationError: If no faucet URL is known for the network
        TransportError: If the target was not reached within ``max_attempts``
    """
    address = address or client.address
    if faucet_url is None:
        faucet_url = NetworkConfig.get_faucet_url(client.network) if client.network else None
        if faucet_url is None:
            raise ConfigurationError(f"No faucet configured for network {client.network}")

    balance = client.get_balance(address)
    attempts = 0
    while balance < target_balance:
        if attempts >= max_attempts:
            raise TransportError(
                f"Balance of {address} is {balance} after {attempts} faucet requests, wanted {target_balance}"
            )
        attempts += 1
        try:
            get_from_faucet(address, faucet_url)
        except TransportError as e:
            logger.error(f"failed to get tokens from faucet: {e}")
        time.sleep(interval)
        balance = client.get_balance(address)

    logger.info(f"got tokens from faucet: {balance}")
    return balance
