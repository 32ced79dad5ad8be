"""
Exceptions for the confidential contract SDK.
"""
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TxResult


class ConfidentialSDKError(Exception):
    """Base exception for all SDK errors."""
    pass


class ConfigurationError(ConfidentialSDKError):
    """Raised when network or client configuration is invalid."""
    pass


class TransportError(ConfidentialSDKError):
    """Raised when a call to the remote node fails at the network/RPC level."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ConfirmationTimeout(ConfidentialSDKError):
    """
    Raised when a transaction was broadcast but its outcome could not be
    observed within the polling budget.

    The transaction may still be included later; its outcome is unknown.
    """

    def __init__(self, message: str, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(message)


class ChainRejection(ConfidentialSDKError):
    """Raised on request when a confirmed transaction carries a non-zero code."""

    def __init__(self, message: str, result: "TxResult"):
        self.result = result
        self.code = result.code
        super().__init__(message)


class KeyGenerationFailed(ConfidentialSDKError):
    """Raised when a viewing key could not be generated or read back."""
    pass


class QueryFailed(ConfidentialSDKError):
    """Raised when a contract query is rejected or cannot be decoded."""

    def __init__(self, message: str, contract: Optional[str] = None):
        self.contract = contract
        super().__init__(message)


class InvalidPhaseTransition(ConfidentialSDKError):
    """Raised when a minting phase change would not move strictly forward."""
    pass
