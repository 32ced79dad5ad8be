"""
Data models for the confidential contract SDK.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field, field_validator

from .exceptions import ChainRejection, ConfirmationTimeout
from .signer import Signer

logger = logging.getLogger(__name__)

DEFAULT_DENOM = "uscrt"


class Coin(BaseModel):
    """An amount of a single denomination, amounts are strings as on-chain"""
    denom: str = DEFAULT_DENOM
    amount: str

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_as_str(cls, value: Any) -> str:
        return str(value)


def coins(amount: int, denom: str = DEFAULT_DENOM) -> List[Coin]:
    """Shorthand for a single-coin list"""
    return [Coin(denom=denom, amount=str(amount))]


class Fee(BaseModel):
    """Fee attached to a transaction"""
    amount: List[Coin]
    gas: str

    @property
    def gas_limit(self) -> int:
        return int(self.gas)


class TxIntent(BaseModel):
    """A contract execution the caller wants to see confirmed on-chain"""
    sender: str
    contract: str
    msg: Dict[str, Any]
    funds: List[Coin] = Field(default_factory=list)
    gas_limit: int = 1_600_000
    code_hash: Optional[str] = None
    memo: str = ""

    @property
    def operation(self) -> str:
        """Name of the execute message, e.g. ``mint``"""
        return next(iter(self.msg), "")


class TxAttribute(BaseModel):
    key: str
    value: Optional[str] = None


class TxEvent(BaseModel):
    type: str
    attributes: List[TxAttribute] = Field(default_factory=list)


class TxLog(BaseModel):
    msg_index: int = 0
    log: str = ""
    events: List[TxEvent] = Field(default_factory=list)


def parse_raw_log(raw_log: Optional[str]) -> List[TxLog]:
    """
    Parse a node's raw log into structured event groups.

    Failed transactions carry a plain-text error message instead of JSON;
    those (and empty logs) parse to an empty list.

    Args:
        raw_log: The ``raw_log`` string returned by the node

    Returns:
        List of TxLog entries
    """
    if not raw_log:
        return []
    try:
        parsed = json.loads(raw_log)
    except ValueError:
        return []
    if not isinstance(parsed, list):
        return []
    return [TxLog.model_validate(entry) for entry in parsed if isinstance(entry, dict)]


class TxResult(BaseModel):
    """Transaction result as looked up on the chain"""
    tx_hash: str = Field(..., alias="txhash")
    height: int = 0
    code: int = 0
    codespace: str = ""
    raw_log: str = ""
    logs: List[TxLog] = Field(default_factory=list)
    data: Optional[Any] = None
    raw_data: Optional[str] = None
    gas_used: int = 0
    gas_wanted: int = 0

    class Config:
        populate_by_name = True

    @property
    def succeeded(self) -> bool:
        return self.code == 0

    def attributes(self) -> List[tuple]:
        """Flatten the log into ``("event.key", value)`` pairs in log order"""
        flat = []
        for entry in self.logs:
            for event in entry.events:
                for attr in event.attributes:
                    flat.append((f"{event.type}.{attr.key}", attr.value))
        return flat

    def find_attribute(self, key: str) -> Optional[str]:
        """
        Look up the first attribute whose ``event.key`` matches.

        Args:
            key: Dotted event type and attribute key, e.g. ``wasm.contract_address``

        Returns:
            The attribute value, or None if the log has no such attribute
        """
        for name, value in self.attributes():
            if name == key:
                return value
        return None


def find_attribute(result: TxResult, key: str) -> Optional[str]:
    """Module level alias of TxResult.find_attribute"""
    return result.find_attribute(key)


class TxOutcome(str, Enum):
    """What is known about a submitted transaction"""
    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


class Confirmation(BaseModel):
    """
    Outcome of submitting a transaction and waiting for it.

    ``UNKNOWN`` means the transaction was broadcast but never observed within
    the polling budget; it may still succeed or fail later.
    """
    outcome: TxOutcome
    tx_hash: str
    result: Optional[TxResult] = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome == TxOutcome.SUCCESS

    @property
    def failed(self) -> bool:
        return self.outcome == TxOutcome.FAILURE

    @property
    def unknown(self) -> bool:
        return self.outcome == TxOutcome.UNKNOWN

    @property
    def data(self) -> Optional[Any]:
        return self.result.data if self.result else None

    def raise_for_outcome(self) -> TxResult:
        """
        Return the result if the transaction succeeded, raise otherwise.

        Raises:
            ConfirmationTimeout: If the outcome is unknown
            ChainRejection: If the transaction was confirmed with a non-zero code
        """
        if self.outcome == TxOutcome.UNKNOWN or self.result is None:
            raise ConfirmationTimeout(
                f"Transaction {self.tx_hash} not confirmed after {self.attempts} attempts",
                tx_hash=self.tx_hash
            )
        if self.outcome == TxOutcome.FAILURE:
            raise ChainRejection(
                f"Transaction {self.tx_hash} failed with code {self.result.code}: {self.result.raw_log}",
                result=self.result
            )
        return self.result


@dataclass(frozen=True)
class Account:
    """
    An on-chain account and the capability to sign for it.

    Attributes:
        address: Bech32 account address
        signer: Signer for this account
        label: Optional human-readable name
    """
    address: str
    signer: Signer = field(repr=False)
    label: Optional[str] = None

    @property
    def public_key(self) -> bytes:
        return self.signer.public_key


class AccountInfo(BaseModel):
    """Account state as reported by the node"""
    address: str
    account_number: int = 0
    sequence: int = 0
    balances: List[Coin] = Field(default_factory=list)

    def balance_of(self, denom: str = DEFAULT_DENOM) -> int:
        for coin in self.balances:
            if coin.denom == denom:
                return int(coin.amount)
        return 0


class HistoryResponse(BaseModel):
    """Answer to an authenticated ``get_history`` query"""
    status: str
    history: List[str] = Field(default_factory=list)

    @field_validator("history", mode="before")
    @classmethod
    def _missing_history(cls, value: Any) -> List[str]:
        return [] if value is None else value


class TokenList(BaseModel):
    """Token ids owned by an address"""
    tokens: List[str] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.tokens)


class WhitelistEntry(BaseModel):
    """A whitelisted address and its remaining mint allowance"""
    address: str
    allowance: int = Field(0, ge=0)


class Trait(BaseModel):
    trait_type: str
    value: str


class TokenAttributes(BaseModel):
    custom_traits: List[Trait] = Field(default_factory=list)
    rarity: int = 0
    token_uri: Optional[str] = None


class TokenMetadata(BaseModel):
    """Attributes the minter assigns to a token id before it is minted"""
    token_id: str
    attributes: TokenAttributes
