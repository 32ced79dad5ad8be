"""
Network configuration and client settings.
"""
import json
import logging
import math
import os
import urllib.parse
from importlib import resources
from typing import Dict, Any, Optional, ClassVar

from pydantic import BaseModel, Field

from .exceptions import ConfigurationError
from .models import Coin, Fee, DEFAULT_DENOM

logger = logging.getLogger(__name__)


def validate_url(name: str, url: str) -> str:
    """
    Check that a service URL uses https, unless it points at the local machine.

    Args:
        name: Setting name, used in the error message
        url: URL to check

    Returns:
        The URL without a trailing slash

    Raises:
        ConfigurationError: If the URL is not acceptable
    """
    parsed = urllib.parse.urlparse(url)
    host = parsed.netloc.split(':')[0] if parsed.netloc else ''
    is_local = host in ('localhost', '127.0.0.1')
    if parsed.scheme != 'https' and not (is_local and parsed.scheme == 'http'):
        raise ConfigurationError(f"{name} must use https:// for security (got: {parsed.scheme}://)")
    return url.rstrip('/')


class ClientSettings(BaseModel):
    """
    Tunables for fees and confirmation polling.

    Gas limits and the gas price follow the fee presets of the local
    development network (exec: 1.6M gas for 0.4 SCRT).
    """
    denom: str = DEFAULT_DENOM
    gas_price: float = 0.25
    exec_gas: int = 1_600_000
    init_gas: int = 10_000_000
    upload_gas: int = 10_000_000
    send_gas: int = 200_000

    poll_interval: float = Field(1.0, gt=0)
    max_poll_interval: float = Field(6.0, gt=0)
    backoff_factor: float = Field(2.0, ge=1.0)
    confirm_timeout: float = Field(60.0, gt=0)
    max_poll_attempts: int = Field(30, ge=1)

    http_retries: int = 3
    http_timeout: int = 30

    ENV_PREFIX: ClassVar[str] = "CONFIDENTIAL_SDK_"

    def fee_for(self, gas_limit: int) -> Fee:
        """Fee paying ``gas_price`` per unit of gas, rounded up"""
        amount = math.ceil(gas_limit * self.gas_price)
        return Fee(amount=[Coin(denom=self.denom, amount=str(amount))], gas=str(gas_limit))

    @classmethod
    def from_env(cls, **overrides) -> "ClientSettings":
        """
        Build settings from ``CONFIDENTIAL_SDK_<FIELD>`` environment variables.

        Explicit keyword overrides win over the environment.
        """
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            env_value = os.environ.get(f"{cls.ENV_PREFIX}{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        values.update(overrides)
        return cls.model_validate(values)


class NetworkConfig:
    """Known networks, loaded from the bundled networks.json"""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load network definitions, caching them after the first read.

        Returns:
            Mapping of network name to its configuration
        """
        if cls._networks_cache is None:
            path = resources.files("confidential_sdk").joinpath("networks.json")
            with path.open("r", encoding="utf-8") as f:
                cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def get_network(cls, network: str) -> Dict[str, Any]:
        networks = cls.load_networks()
        if network not in networks:
            available = ", ".join(sorted(networks))
            raise ConfigurationError(f"Unknown network '{network}'. Available networks: {available}")
        return networks[network]

    @staticmethod
    def _env_name(network: str, suffix: str) -> str:
        return f"{network.upper().replace('-', '_')}_{suffix}"

    @classmethod
    def get_lcd_url(cls, network: str, override: Optional[str] = None) -> str:
        """
        REST endpoint of a network.

        Resolution order: explicit override, ``<NETWORK>_LCD_URL`` environment
        variable, networks.json.
        """
        if override:
            return validate_url("lcd_url", override)
        env_url = os.environ.get(cls._env_name(network, "LCD_URL"))
        if env_url:
            return validate_url("lcd_url", env_url)
        return validate_url("lcd_url", cls.get_network(network)["lcd"])

    @classmethod
    def get_faucet_url(cls, network: str, override: Optional[str] = None) -> Optional[str]:
        if override:
            return validate_url("faucet_url", override)
        env_url = os.environ.get(cls._env_name(network, "FAUCET_URL"))
        if env_url:
            return validate_url("faucet_url", env_url)
        url = cls.get_network(network).get("faucet")
        return validate_url("faucet_url", url) if url else None

    @classmethod
    def get_chain_id(cls, network: str) -> str:
        return cls.get_network(network)["chainId"]

    @classmethod
    def get_denom(cls, network: str) -> str:
        return cls.get_network(network).get("denom", DEFAULT_DENOM)

    @classmethod
    def tx_url(cls, network: str, tx_hash: str) -> Optional[str]:
        """Block explorer link for a transaction, if the network has an explorer"""
        explorer = cls.get_network(network).get("explorer")
        if not explorer:
            return None
        return f"{explorer.rstrip('/')}/{tx_hash.upper()}"
