"""
Confidential contract SDK.

Execute state-changing calls against confidential contracts, learn their
outcome reliably, and read private state with viewing keys.
"""
from .version import __version__
from .client import SecretClient
from .config import ClientSettings, NetworkConfig
from .confirmation import TxConfirmationTracker, decode_response_data
from .viewing_keys import ViewingKeyContext, ViewingKeyManager
from .queries import ConfidentialQueryClient
from .minting import MintingPhase, MintingStateMachine, MintingWorkflow, MintOutcome
from .calculator import CalculatorClient, Operation
from .models import (
    Account, Coin, Confirmation, TxIntent, TxOutcome, TxResult, WhitelistEntry, coins, find_attribute
)
from .exceptions import (
    ConfidentialSDKError, ConfigurationError, TransportError, ConfirmationTimeout,
    ChainRejection, KeyGenerationFailed, QueryFailed, InvalidPhaseTransition
)

__all__ = [
    "__version__",
    "SecretClient",
    "ClientSettings",
    "NetworkConfig",
    "TxConfirmationTracker",
    "decode_response_data",
    "ViewingKeyContext",
    "ViewingKeyManager",
    "ConfidentialQueryClient",
    "MintingPhase",
    "MintingStateMachine",
    "MintingWorkflow",
    "MintOutcome",
    "CalculatorClient",
    "Operation",
    "Account",
    "Coin",
    "Confirmation",
    "TxIntent",
    "TxOutcome",
    "TxResult",
    "WhitelistEntry",
    "coins",
    "find_attribute",
    "ConfidentialSDKError",
    "ConfigurationError",
    "TransportError",
    "ConfirmationTimeout",
    "ChainRejection",
    "KeyGenerationFailed",
    "QueryFailed",
    "InvalidPhaseTransition",
]
