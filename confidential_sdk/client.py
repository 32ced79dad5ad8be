"""
SecretClient - high level client for confidential contracts.
"""
import logging
import pathlib
from typing import Dict, Any, Optional, Union, List, Tuple

from .chain.transport import ChainTransport, PayloadCipher, TxBuilder, get_transport
from .config import ClientSettings, NetworkConfig
from .confirmation import TxConfirmationTracker
from .exceptions import ConfidentialSDKError, ConfigurationError
from .models import Account, AccountInfo, Coin, Confirmation, HistoryResponse, TxIntent, coins
from .queries import ConfidentialQueryClient, QueryAuth
from .viewing_keys import ViewingKeyContext, ViewingKeyManager

logger = logging.getLogger(__name__)


class SecretClient:
    """
    Client for executing and querying confidential contracts.

    This client handles:
    1. Deploying contract code and instances
    2. Executing contract messages and waiting for their outcome
    3. Viewing keys and authenticated queries

    Every execution returns a Confirmation whose outcome is SUCCESS, FAILURE
    or UNKNOWN; pass ``require_success=True`` to turn the last two into
    exceptions instead.
    """

    def __init__(
        self,
        transport: ChainTransport,
        account: Optional[Account] = None,
        settings: Optional[ClientSettings] = None,
        viewing_keys: Optional[ViewingKeyContext] = None,
        network: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the SecretClient

        Args:
            transport: Chain transport (REST or simulated)
            account: Default account for transactions and queries
            settings: Fee and polling settings
            viewing_keys: Viewing key cache to share between clients
            network: Name of the network in networks.json, if known
            logger: Optional logger instance to use for debug/info logging
        """
        self.transport = transport
        self.account = account
        self.settings = settings or ClientSettings()
        self.network = network
        self.logger = logger or logging.getLogger(__name__)

        self.tracker = TxConfirmationTracker.from_settings(transport, self.settings, logger=self.logger)
        self.viewing_keys = ViewingKeyManager(
            self.tracker, context=viewing_keys, gas_limit=self.settings.exec_gas, logger=self.logger
        )
        self.queries = ConfidentialQueryClient(transport, self.viewing_keys, logger=self.logger)

    @classmethod
    def from_network(
        cls,
        network: str,
        account: Optional[Account] = None,
        lcd_url: Optional[str] = None,
        tx_builder: Optional[TxBuilder] = None,
        cipher: Optional[PayloadCipher] = None,
        settings: Optional[ClientSettings] = None,
        logger: Optional[logging.Logger] = None
    ) -> "SecretClient":
        """
        Create a client for a network from networks.json.

        Args:
            network: Network name, e.g. ``pulsar-3``
            account: Default account
            lcd_url: REST endpoint overriding the configured one
            tx_builder: Wire encoder used to sign transactions
            cipher: Payload cipher
            settings: Fee and polling settings; the network's denom is used
                unless settings are given
            logger: Optional logger instance

        Raises:
            ConfigurationError: For an unknown network or an unacceptable URL
        """
        url = NetworkConfig.get_lcd_url(network, override=lcd_url)
        settings = settings or ClientSettings.from_env(denom=NetworkConfig.get_denom(network))
        transport = get_transport(url, tx_builder=tx_builder, cipher=cipher, settings=settings, logger=logger)
        return cls(transport, account=account, settings=settings, network=network, logger=logger)

    @property
    def address(self) -> str:
        """
        Address of the default account

        Raises:
            ValueError: If no default account is set
        """
        return self._account(None).address

    def _account(self, account: Optional[Account]) -> Account:
        account = account or self.account
        if account is None:
            raise ValueError("No account given and no default account set")
        return account

    @property
    def chain_id(self) -> str:
        return self.transport.get_chain_id()

    @property
    def height(self) -> int:
        return self.transport.get_height()

    def assert_chain_id(self, expected: Optional[str] = None) -> None:
        """
        Check that the node serves the expected chain.

        Args:
            expected: Chain id; defaults to the configured network's chain id

        Raises:
            ConfigurationError: On a mismatch, or if there is nothing to compare to
        """
        if expected is None:
            if self.network is None:
                raise ConfigurationError("No expected chain id and no network configured")
            expected = NetworkConfig.get_chain_id(self.network)
        actual = self.chain_id
        if actual != expected:
            raise ConfigurationError(f"Connected to chain {actual}, expected {expected}")

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #

    def execute(
        self,
        contract: str,
        msg: Dict[str, Any],
        funds: Optional[List[Coin]] = None,
        code_hash: Optional[str] = None,
        account: Optional[Account] = None,
        gas_limit: Optional[int] = None,
        memo: str = "",
        require_success: bool = False
    ) -> Confirmation:
        """
        Execute a contract message and wait for its outcome

        Args:
            contract: Contract address
            msg: Execute message, e.g. ``{"mint": {"amount": 2}}``
            funds: Funds attached to the message
            code_hash: Code hash of the contract, if known
            account: Sender; defaults to the client's account
            gas_limit: Gas limit; defaults to the execute preset
            memo: Transaction memo
            require_success: Raise instead of returning a non-success outcome

        Returns:
            Confirmation of the execution

        Raises:
            TransportError: If the broadcast could not be delivered
            ChainRejection: If require_success and the transaction failed
            ConfirmationTimeout: If require_success and the outcome is unknown
        """
        account = self._account(account)
        intent = TxIntent(
            sender=account.address,
            contract=contract,
            msg=msg,
            funds=funds or [],
            gas_limit=gas_limit or self.settings.exec_gas,
            code_hash=code_hash,
            memo=memo
        )
        confirmation = self.tracker.submit_and_confirm(intent, account.signer)
        if require_success:
            confirmation.raise_for_outcome()
        return confirmation

    def store_code(
        self,
        wasm: Union[bytes, str, pathlib.Path],
        account: Optional[Account] = None,
        gas_limit: Optional[int] = None
    ) -> Tuple[int, str]:
        """
        Upload contract code

        Args:
            wasm: Wasm bytes or path to a wasm file
            account: Uploader; defaults to the client's account
            gas_limit: Gas limit; defaults to the upload preset

        Returns:
            Tuple of (code id, code hash)

        Raises:
            ChainRejection: If the upload failed
            ConfirmationTimeout: If the upload could not be confirmed
        """
        account = self._account(account)
        if not isinstance(wasm, bytes):
            wasm = pathlib.Path(wasm).read_bytes()

        confirmation = self.tracker.submit(
            lambda: self.transport.store_code(wasm, account.signer, gas_limit or self.settings.upload_gas),
            "store_code"
        )
        result = confirmation.raise_for_outcome()
        code_id = result.find_attribute("message.code_id")
        if code_id is None:
            raise ConfidentialSDKError(f"Upload {result.tx_hash} succeeded but reported no code_id")
        code_hash = self.transport.get_code_hash(int(code_id))
        self.logger.info(f"Stored code {code_id} with hash {code_hash}")
        return int(code_id), code_hash

    def instantiate(
        self,
        code_id: int,
        init_msg: Dict[str, Any],
        label: str,
        account: Optional[Account] = None,
        code_hash: Optional[str] = None,
        funds: Optional[List[Coin]] = None,
        gas_limit: Optional[int] = None
    ) -> str:
        """
        Instantiate uploaded code

        Returns:
            Address of the new contract

        Raises:
            ChainRejection: If the instantiation failed
            ConfirmationTimeout: If the instantiation could not be confirmed
        """
        account = self._account(account)
        confirmation = self.tracker.submit(
            lambda: self.transport.instantiate(
                code_id, init_msg, label, account.signer, gas_limit or self.settings.init_gas,
                code_hash=code_hash, funds=funds
            ),
            f"instantiate {label}"
        )
        result = confirmation.raise_for_outcome()
        address = result.find_attribute("wasm.contract_address") or result.find_attribute("message.contract_address")
        if address is None:
            raise ConfidentialSDKError(f"Instantiation {result.tx_hash} succeeded but reported no contract address")
        self.logger.info(f"Instantiated {label} at {address}")
        return address

    def send_tokens(
        self,
        recipient: str,
        amount: int,
        denom: Optional[str] = None,
        account: Optional[Account] = None,
        memo: str = ""
    ) -> Confirmation:
        """Send native tokens and wait for the transfer's outcome"""
        account = self._account(account)
        funds = coins(amount, denom or self.settings.denom)
        return self.tracker.submit(
            lambda: self.transport.send_tokens(recipient, funds, account.signer, self.settings.send_gas, memo),
            f"send to {recipient}"
        )

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def query(
        self,
        contract: str,
        body: Dict[str, Any],
        code_hash: Optional[str] = None,
        auth: Optional[QueryAuth] = None
    ) -> Any:
        """Run a contract query; see ConfidentialQueryClient.query"""
        return self.queries.query(contract, body, code_hash=code_hash, auth=auth)

    def get_account_info(self, address: Optional[str] = None) -> AccountInfo:
        return self.transport.get_account(address or self.address)

    def get_balance(self, address: Optional[str] = None, denom: Optional[str] = None) -> int:
        """Native balance of an address (default: the client's account)"""
        return self.get_account_info(address).balance_of(denom or self.settings.denom)

    def ensure_viewing_key(self, contract: str, account: Optional[Account] = None,
                           code_hash: Optional[str] = None) -> str:
        return self.viewing_keys.ensure_key(self._account(account), contract, code_hash=code_hash)

    def get_history(
        self,
        contract: str,
        account: Optional[Account] = None,
        steps_back: Optional[int] = None,
        code_hash: Optional[str] = None
    ) -> HistoryResponse:
        return self.queries.get_history(self._account(account), contract, steps_back=steps_back,
                                        code_hash=code_hash)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "SecretClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
