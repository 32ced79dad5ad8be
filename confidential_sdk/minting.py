"""
Whitelist-gated minting.

``MintingStateMachine`` models the minter contract: its phase, admin,
per-address whitelist allowances, remaining supply and prices.
``MintingWorkflow`` drives a deployed minter through a SecretClient and
checks every confirmed outcome against the model.

Phase rules::

    Phase       Admin mint   Whitelisted mint             Public mint
    DISABLED    allowed      rejected                     rejected
    ADMIN_ONLY  allowed      rejected                     rejected
    WHITELIST   allowed      allowed while allowance ok   rejected
    PUBLIC      allowed      allowed, no allowance check  allowed

"Admin mint" is the ``mint_admin`` message. An admin sending a regular
``mint`` is judged like any other address.
"""
import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, Any, Optional, List, Union, TYPE_CHECKING

from .exceptions import InvalidPhaseTransition
from .models import (
    Account, Coin, Confirmation, TxOutcome, TokenList, TokenMetadata,
    WhitelistEntry, coins, DEFAULT_DENOM
)

if TYPE_CHECKING:
    from .client import SecretClient

logger = logging.getLogger(__name__)


class MintingPhase(IntEnum):
    """Minting phases; values are the ``mint_state`` sent to the contract"""
    DISABLED = 0
    ADMIN_ONLY = 1
    WHITELIST = 2
    PUBLIC = 3


class MintRole(str, Enum):
    ADMIN = "admin"
    WHITELISTED = "whitelisted"
    PUBLIC = "public"


@dataclass(frozen=True)
class MintDecision:
    """Whether a mint would be accepted, and why"""
    allowed: bool
    reason: str
    role: MintRole
    unit_price: int = 0

    @property
    def expected_outcome(self) -> TxOutcome:
        return TxOutcome.SUCCESS if self.allowed else TxOutcome.FAILURE


class MintingStateMachine:
    """
    Model of the minter contract's access control and allocation bookkeeping.

    Checks are side-effect free; state only changes through ``advance``,
    ``add_to_whitelist`` and ``record_mint``/``mint``.
    """

    def __init__(
        self,
        admin: str,
        nft_count: int,
        price: int = 0,
        whitelist_price: int = 0,
        phase: MintingPhase = MintingPhase.DISABLED,
        denom: str = DEFAULT_DENOM
    ):
        if nft_count < 0:
            raise ValueError("nft_count must not be negative")
        self.admin = admin
        self.nft_count = nft_count
        self.price = price
        self.whitelist_price = whitelist_price
        self.phase = MintingPhase(phase)
        self.denom = denom
        self.minted = 0
        self.whitelist: Dict[str, int] = {}

    @property
    def remaining_supply(self) -> int:
        return self.nft_count - self.minted

    def allowance(self, address: str) -> Optional[int]:
        """Remaining whitelist allowance, or None if the address is not whitelisted"""
        return self.whitelist.get(address)

    def role_of(self, address: str) -> MintRole:
        """Role of an address for a regular ``mint``"""
        if address in self.whitelist:
            return MintRole.WHITELISTED
        return MintRole.PUBLIC

    def unit_price(self, address: str) -> int:
        if self.phase == MintingPhase.WHITELIST and address in self.whitelist:
            return self.whitelist_price
        return self.price

    def advance(self, next_phase: Union[MintingPhase, int]) -> None:
        """
        Move to a later phase.

        Raises:
            InvalidPhaseTransition: If ``next_phase`` is not after the current phase
        """
        next_phase = MintingPhase(next_phase)
        if next_phase <= self.phase:
            raise InvalidPhaseTransition(
                f"Cannot change minting phase from {self.phase.name} to {next_phase.name}"
            )
        self.phase = next_phase

    def add_to_whitelist(self, address: str, allowance: int) -> None:
        """Whitelist an address; whitelisting again replaces its allowance"""
        if allowance < 0:
            raise ValueError("allowance must not be negative")
        self.whitelist[address] = allowance

    def _paid(self, funds: Optional[List[Coin]]) -> int:
        return sum(int(c.amount) for c in funds or [] if c.denom == self.denom)

    def check_mint(self, sender: str, amount: int, funds: Optional[List[Coin]] = None) -> MintDecision:
        """
        Decide a regular ``mint`` of ``amount`` tokens by ``sender``.

        Args:
            sender: Address sending the mint
            amount: Number of tokens requested
            funds: Attached funds; None skips the payment check

        Returns:
            MintDecision
        """
        role = self.role_of(sender)
        price = self.unit_price(sender)

        def reject(reason: str) -> MintDecision:
            return MintDecision(False, reason, role, price)

        if amount < 1:
            return reject("amount must be at least 1")
        if self.phase in (MintingPhase.DISABLED, MintingPhase.ADMIN_ONLY):
            return reject(f"minting is not open in phase {self.phase.name}")
        if self.phase == MintingPhase.WHITELIST:
            if role != MintRole.WHITELISTED:
                return reject("address is not whitelisted")
            if amount > self.whitelist[sender]:
                return reject(
                    f"whitelist allowance {self.whitelist[sender]} is less than requested {amount}"
                )
        if amount > self.remaining_supply:
            return reject(f"only {self.remaining_supply} tokens left")
        if funds is not None and self._paid(funds) < price * amount:
            return reject(f"insufficient funds: {price * amount}{self.denom} required")
        return MintDecision(True, "ok", role, price)

    def check_admin_mint(self, sender: str, amount: int) -> MintDecision:
        """Decide a ``mint_admin`` of ``amount`` tokens by ``sender``"""
        if sender != self.admin:
            return MintDecision(False, "only the admin may use mint_admin", self.role_of(sender))
        if amount < 1:
            return MintDecision(False, "amount must be at least 1", MintRole.ADMIN)
        if amount > self.remaining_supply:
            return MintDecision(False, f"only {self.remaining_supply} tokens left", MintRole.ADMIN)
        return MintDecision(True, "ok", MintRole.ADMIN)

    def record_mint(self, sender: str, amount: int, role: MintRole) -> None:
        """Apply the bookkeeping of a mint that was accepted"""
        if role == MintRole.WHITELISTED and self.phase == MintingPhase.WHITELIST:
            remaining = self.whitelist[sender] - amount
            if remaining < 0:
                raise ValueError(f"allowance of {sender} would become negative")
            self.whitelist[sender] = remaining
        self.minted += amount

    def mint(self, sender: str, amount: int, funds: Optional[List[Coin]] = None) -> MintDecision:
        """Check and, if allowed, apply a regular mint in one step"""
        decision = self.check_mint(sender, amount, funds)
        if decision.allowed:
            self.record_mint(sender, amount, decision.role)
        return decision

    def mint_admin(self, sender: str, amount: int) -> MintDecision:
        decision = self.check_admin_mint(sender, amount)
        if decision.allowed:
            self.record_mint(sender, amount, MintRole.ADMIN)
        return decision


@dataclass(frozen=True)
class MintOutcome:
    """
    Result of a workflow operation: what the chain said and what the model
    expected it to say.
    """
    operation: str
    confirmation: Confirmation
    expected: TxOutcome
    reason: str = "ok"

    @property
    def ok(self) -> bool:
        return self.confirmation.succeeded

    @property
    def rejected(self) -> bool:
        return self.confirmation.failed

    @property
    def unknown(self) -> bool:
        return self.confirmation.unknown

    @property
    def as_expected(self) -> bool:
        return self.confirmation.outcome == self.expected


class MintingWorkflow:
    """
    Client-side sequence of calls against a deployed minter contract.

    Every mutating call waits for confirmation, compares the outcome with the
    state machine and updates the model only when the chain confirmed
    success. An unknown outcome leaves the model untouched and marks it stale,
    as does any confirmed outcome the model did not predict.
    """

    def __init__(
        self,
        client: "SecretClient",
        minter: str,
        nft_contract: str,
        admin: Account,
        model: MintingStateMachine,
        minter_code_hash: Optional[str] = None,
        nft_code_hash: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.client = client
        self.minter = minter
        self.nft_contract = nft_contract
        self.admin = admin
        self.model = model
        self.minter_code_hash = minter_code_hash
        self.nft_code_hash = nft_code_hash
        self.logger = logger or logging.getLogger(__name__)
        self.stale = False

    def _execute(self, operation: str, msg: Dict[str, Any], expected: TxOutcome, reason: str = "ok",
                 account: Optional[Account] = None, funds: Optional[List[Coin]] = None,
                 contract: Optional[str] = None, code_hash: Optional[str] = None) -> MintOutcome:
        account = account or self.admin
        if contract is None:
            contract, code_hash = self.minter, self.minter_code_hash
        confirmation = self.client.execute(
            contract, msg, funds=funds, code_hash=code_hash, account=account
        )
        outcome = MintOutcome(operation, confirmation, expected, reason)

        if outcome.unknown:
            self.stale = True
            self.logger.warning(f"{operation}: outcome unknown for {confirmation.tx_hash}, model is stale")
        elif not outcome.as_expected:
            self.stale = True
            self.logger.warning(
                f"{operation}: chain said {confirmation.outcome.value}, model expected {expected.value} ({reason})"
            )
        else:
            self.logger.info(f"{operation}: {confirmation.outcome.value} as expected")
        return outcome

    def _admin_expectation(self, account: Optional[Account]) -> TxOutcome:
        sender = (account or self.admin).address
        return TxOutcome.SUCCESS if sender == self.model.admin else TxOutcome.FAILURE

    def add_minters(self, contract: str, addresses: List[str], code_hash: Optional[str] = None) -> MintOutcome:
        """Authorize ``addresses`` to mint on a token contract (e.g. the NFT contract)"""
        return self._execute(
            "add_minters", {"add_minters": {"minters": list(addresses)}}, TxOutcome.SUCCESS,
            contract=contract, code_hash=code_hash
        )

    def set_placeholder_image(self, token_uri: str, account: Optional[Account] = None) -> MintOutcome:
        return self._execute(
            "set_place_holder", {"set_place_holder": {"token_uri": token_uri}},
            self._admin_expectation(account), account=account
        )

    def set_attributes(self, tokens: List[Union[TokenMetadata, Dict[str, Any]]],
                       account: Optional[Account] = None) -> MintOutcome:
        payload = [
            TokenMetadata.model_validate(t).model_dump(exclude_none=True) for t in tokens
        ]
        return self._execute(
            "set_attributes", {"set_attributes": {"tokens": payload}},
            self._admin_expectation(account), account=account
        )

    def change_phase(self, next_phase: Union[MintingPhase, int], account: Optional[Account] = None) -> MintOutcome:
        """
        Advance the minting phase.

        Raises:
            InvalidPhaseTransition: If ``next_phase`` is not after the current
                phase; nothing is submitted in that case
        """
        next_phase = MintingPhase(next_phase)
        if next_phase <= self.model.phase:
            raise InvalidPhaseTransition(
                f"Cannot change minting phase from {self.model.phase.name} to {next_phase.name}"
            )
        outcome = self._execute(
            "changing_minting_state", {"changing_minting_state": {"mint_state": int(next_phase)}},
            self._admin_expectation(account), account=account
        )
        if outcome.ok:
            self.model.advance(next_phase)
        return outcome

    def add_to_whitelist(self, address: str, allowance: int, account: Optional[Account] = None) -> MintOutcome:
        return self.add_many_to_whitelist([WhitelistEntry(address=address, allowance=allowance)], account)

    def add_many_to_whitelist(self, entries: List[WhitelistEntry], account: Optional[Account] = None) -> MintOutcome:
        addresses = [{"address": e.address, "amount": e.allowance} for e in entries]
        outcome = self._execute(
            "add_whitelist", {"add_whitelist": {"addresses": addresses}},
            self._admin_expectation(account), account=account
        )
        if outcome.ok:
            for entry in entries:
                self.model.add_to_whitelist(entry.address, entry.allowance)
        return outcome

    def mint_admin(self, amount: int, account: Optional[Account] = None) -> MintOutcome:
        sender = (account or self.admin).address
        decision = self.model.check_admin_mint(sender, amount)
        outcome = self._execute(
            "mint_admin", {"mint_admin": {"amount": amount}},
            decision.expected_outcome, decision.reason, account=account
        )
        if outcome.ok and decision.allowed:
            self.model.record_mint(sender, amount, MintRole.ADMIN)
        return outcome

    def mint(self, account: Account, amount: int, funds: Optional[List[Coin]] = None) -> MintOutcome:
        """
        Mint ``amount`` tokens as ``account``.

        Funds default to the unit price the model expects for the sender.
        Rejections in phases that do not admit the sender are returned as a
        MintOutcome, not raised.
        """
        if funds is None:
            price = self.model.unit_price(account.address) * amount
            funds = coins(price, self.model.denom) if price else []
        decision = self.model.check_mint(account.address, amount, funds)
        outcome = self._execute(
            "mint", {"mint": {"amount": amount}},
            decision.expected_outcome, decision.reason, account=account, funds=funds
        )
        if outcome.ok and decision.allowed:
            self.model.record_mint(account.address, amount, decision.role)
        return outcome

    def is_whitelisted(self, address: str) -> Optional[WhitelistEntry]:
        return self.client.queries.is_whitelisted(self.minter, address, code_hash=self.minter_code_hash)

    def view_tokens(self, owner: str) -> TokenList:
        return self.client.queries.tokens(self.nft_contract, owner, code_hash=self.nft_code_hash)

    def reconcile_allowance(self, address: str) -> bool:
        """Compare the model's allowance for ``address`` with the contract's answer"""
        entry = self.is_whitelisted(address)
        on_chain = entry.allowance if entry else None
        modelled = self.model.allowance(address)
        if on_chain != modelled:
            self.logger.warning(f"Allowance mismatch for {address}: chain {on_chain}, model {modelled}")
        return on_chain == modelled
