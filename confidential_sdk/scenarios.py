"""
End-to-end scenarios against a deployed chain.

Each scenario deploys its contracts, drives them through the SDK and records
every expectation it checks in a ScenarioReport instead of stopping at the
first surprise.
"""
import base64
import logging
import pathlib
import secrets
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .calculator import CalculatorClient, Operation, expected_entry
from .client import SecretClient
from .exceptions import ConfidentialSDKError
from .minting import MintingPhase, MintingStateMachine, MintingWorkflow, MintOutcome
from .models import Account, TokenMetadata

logger = logging.getLogger(__name__)

Wasm = Union[bytes, str, pathlib.Path]

HISTORY_PRESENT = "Calculations history present"

CALCULATOR_STEPS = [
    (Operation.ADD, 2, 3),
    (Operation.SUB, 15, 4),
    (Operation.MUL, 20, 7),
    (Operation.DIV, 20, 6),
    (Operation.SQRT, 70, None),
]

PLACEHOLDER_URI = "https://variety.com/wp-content/uploads/2018/07/overwatch-loot-box.jpg"
TOKEN_URI = "https://data.whicdn.com/images/311555755/original.jpg"
DEPOSIT_AMOUNT = 10_000_000


class ScenarioFailed(ConfidentialSDKError):
    """Raised on request when a scenario had failing checks."""

    def __init__(self, message: str, report: "ScenarioReport"):
        self.report = report
        super().__init__(message)


@dataclass
class ScenarioStep:
    name: str
    passed: bool
    detail: str = ""
    tx_hash: Optional[str] = None


@dataclass
class ScenarioReport:
    """Checks performed by a scenario, in order"""
    name: str
    steps: List[ScenarioStep] = field(default_factory=list)
    contracts: Dict[str, str] = field(default_factory=dict)

    def check(self, name: str, condition: bool, detail: str = "", tx_hash: Optional[str] = None) -> bool:
        self.steps.append(ScenarioStep(name, bool(condition), detail, tx_hash))
        if condition:
            logger.info(f"[{self.name}] ok: {name}")
        else:
            logger.error(f"[{self.name}] FAILED: {name} {detail}".rstrip())
        return bool(condition)

    def check_outcome(self, name: str, outcome: MintOutcome) -> bool:
        """Record whether a workflow outcome matched the model's expectation"""
        confirmation = outcome.confirmation
        detail = f"chain {confirmation.outcome.value}, expected {outcome.expected.value}"
        if outcome.reason != "ok":
            detail += f" ({outcome.reason})"
        return self.check(name, outcome.as_expected, detail, confirmation.tx_hash)

    @property
    def passed(self) -> bool:
        return all(step.passed for step in self.steps)

    @property
    def failures(self) -> List[ScenarioStep]:
        return [step for step in self.steps if not step.passed]

    def raise_for_failures(self) -> None:
        if not self.passed:
            names = ", ".join(step.name for step in self.failures)
            raise ScenarioFailed(f"Scenario {self.name} failed: {names}", self)

    def summary(self) -> str:
        lines = [f"{self.name}: {'PASSED' if self.passed else 'FAILED'}"]
        for step in self.steps:
            line = f"  [{'ok' if step.passed else 'FAIL'}] {step.name}"
            if step.detail and not step.passed:
                line += f": {step.detail}"
            lines.append(line)
        return "\n".join(lines)


@dataclass
class Deployment:
    code_id: int
    code_hash: str
    address: str


def deploy_contract(
    client: SecretClient,
    wasm: Wasm,
    init_msg: Dict[str, Any],
    name: str,
    account: Optional[Account] = None
) -> Deployment:
    """Upload code and instantiate it under a unique label"""
    code_id, code_hash = client.store_code(wasm, account=account)
    label = f"{name}-{secrets.token_hex(4)}"
    address = client.instantiate(code_id, init_msg, label, account=account, code_hash=code_hash)
    return Deployment(code_id, code_hash, address)


def run_calculator_scenario(
    client: SecretClient,
    wasm: Wasm,
    account: Optional[Account] = None
) -> ScenarioReport:
    """
    Deploy the calculator, run one of each operation and read the history
    back with a fresh viewing key after every step.
    """
    report = ScenarioReport("calculator")
    account = account or client.account
    deployment = deploy_contract(
        client, wasm, {"prng_seed": base64.b64encode(secrets.token_bytes(16)).decode()}, "calculator", account
    )
    report.contracts["calculator"] = deployment.address
    calculator = CalculatorClient(client, deployment.address, code_hash=deployment.code_hash)

    expected_history: List[str] = []
    for op, n1, n2 in CALCULATOR_STEPS:
        confirmation = calculator.calculate(op, n1, n2, account=account)
        if not report.check(f"{op.value} confirmed", confirmation.succeeded,
                            f"outcome {confirmation.outcome.value}", confirmation.tx_hash):
            continue
        result = confirmation.result
        report.check(f"{op.value} logged as execute", result.find_attribute("message.action") == "execute")
        report.check(f"{op.value} logged by the contract",
                     result.find_attribute("wasm.contract_address") == deployment.address)

        expected_history.append(expected_entry(op, n1, n2))
        key = client.viewing_keys.generate_key(account, deployment.address, code_hash=deployment.code_hash)
        history = client.queries.get_history(account, deployment.address, key=key, code_hash=deployment.code_hash)
        index = len(expected_history) - 1
        actual = history.history[index] if len(history.history) > index else None
        report.check(f"{op.value} recorded in history", actual == expected_history[-1],
                     f"expected {expected_history[-1]!r}, got {actual!r}")

    history = calculator.history(account=account)
    report.check("history status", history.status == HISTORY_PRESENT, history.status)
    report.check("history complete", history.history == expected_history, f"got {history.history!r}")
    return report


def _token_attributes(nft_count: int) -> List[TokenMetadata]:
    return [
        TokenMetadata.model_validate({
            "token_id": str(i),
            "attributes": {
                "custom_traits": [{"trait_type": "length", "value": str(i)}],
                "rarity": 0,
                "token_uri": TOKEN_URI,
            },
        })
        for i in range(nft_count)
    ]


def run_minting_scenario(
    client: SecretClient,
    minter_wasm: Wasm,
    nft_wasm: Wasm,
    token_wasm: Wasm,
    new_account: Callable[[str], Account],
    nft_count: int = 100,
    price: int = 1_000_000,
    whitelist_price: int = 100_000,
    whitelist_allowance: int = 3
) -> ScenarioReport:
    """
    Run the whitelist minting sequence.

    Args:
        client: Client whose default account becomes the admin
        minter_wasm: Minter contract code
        nft_wasm: SNIP-721 contract code
        token_wasm: SNIP-20 contract code
        new_account: Factory returning a fresh account for a given label
        nft_count: Supply of the minter
        price: Public unit price
        whitelist_price: Unit price for whitelisted addresses
        whitelist_allowance: Allowance given to the whitelisted user
    """
    report = ScenarioReport("minting")
    admin = client.account
    if admin is None:
        raise ValueError("The client needs a default account to act as admin")

    nft = deploy_contract(client, nft_wasm, {
        "name": "GpigsTest",
        "entropy": "YWE",
        "revealer": admin.address,
        "symbol": "gpcc",
        "royalty_info": {
            "decimal_places_in_rates": 3,
            "royalties": [{"recipient": admin.address, "rate": 50}],
        },
    }, "snip721")
    token = deploy_contract(client, token_wasm, {
        "prng_seed": "YWE",
        "symbol": "BACON",
        "name": "bacon",
        "decimals": 6,
        "initial_balances": [{"address": admin.address, "amount": "10000000000"}],
        "config": {
            "public_total_supply": True,
            "enable_deposit": False,
            "enable_redeem": False,
            "enable_mint": True,
            "enable_burn": True,
        },
    }, "snip20")
    minter = deploy_contract(client, minter_wasm, {
        "nft_count": nft_count,
        "nft_contract": {"address": nft.address, "hash": nft.code_hash},
        "bacon_contract": {"address": token.address, "hash": token.code_hash},
        "random_seed": "YWE",
        "price": str(price),
        "whitelist_price": str(whitelist_price),
    }, "minter")
    report.contracts.update({"snip721": nft.address, "snip20": token.address, "minter": minter.address})

    model = MintingStateMachine(admin.address, nft_count, price=price, whitelist_price=whitelist_price,
                                denom=client.settings.denom)
    workflow = MintingWorkflow(client, minter.address, nft.address, admin, model,
                               minter_code_hash=minter.code_hash, nft_code_hash=nft.code_hash)

    report.check_outcome("minter added to nft contract",
                         workflow.add_minters(nft.address, [minter.address], code_hash=nft.code_hash))
    report.check_outcome("minter added to token contract",
                         workflow.add_minters(token.address, [minter.address], code_hash=token.code_hash))
    report.check_outcome("placeholder image set", workflow.set_placeholder_image(PLACEHOLDER_URI))
    report.check_outcome("token attributes set", workflow.set_attributes(_token_attributes(nft_count)))

    report.check_outcome("admin mints while disabled", workflow.mint_admin(2))
    owned = workflow.view_tokens(admin.address)
    report.check("admin owns 2 tokens", len(owned) == 2, f"got {owned.tokens}")
    report.check_outcome("regular mint refused while disabled", workflow.mint(admin, 2))

    report.check_outcome("whitelist minting enabled", workflow.change_phase(MintingPhase.WHITELIST))
    user = new_account("whitelisted user")
    report.check_outcome("user whitelisted", workflow.add_to_whitelist(user.address, whitelist_allowance))
    entry = workflow.is_whitelisted(user.address)
    report.check("whitelist allowance visible", entry is not None and entry.allowance == whitelist_allowance,
                 f"got {entry!r}")

    sent = client.send_tokens(user.address, DEPOSIT_AMOUNT)
    report.check("user funded", sent.succeeded, f"outcome {sent.outcome.value}", sent.tx_hash)

    report.check_outcome("whitelisted user mints 2", workflow.mint(user, 2))
    report.check("user owns 2 tokens", len(workflow.view_tokens(user.address)) == 2)
    report.check("allowance after first mint", workflow.reconcile_allowance(user.address))

    report.check_outcome("whitelisted user mints 1 more", workflow.mint(user, 1))
    report.check("user owns 3 tokens", len(workflow.view_tokens(user.address)) == 3)
    report.check("allowance after second mint", workflow.reconcile_allowance(user.address))

    report.check_outcome("mint beyond allowance refused", workflow.mint(user, 1))
    report.check("user still owns 3 tokens", len(workflow.view_tokens(user.address)) == 3)

    report.check_outcome("public minting enabled", workflow.change_phase(MintingPhase.PUBLIC))
    public_user = new_account("public user")
    sent = client.send_tokens(public_user.address, DEPOSIT_AMOUNT)
    report.check("public user funded", sent.succeeded, f"outcome {sent.outcome.value}", sent.tx_hash)
    report.check_outcome("public user mints 1", workflow.mint(public_user, 1))
    report.check("public user owns 1 token", len(workflow.view_tokens(public_user.address)) == 1)

    report.check("model in sync", not workflow.stale)
    return report
