"""
Client for the confidential calculator contract.

The contract performs checked 128-bit unsigned arithmetic and keeps a
private, per-address history of ``"a op b = result"`` lines that can only be
read with the address's viewing key.
"""
import logging
import math
from enum import Enum
from typing import Dict, Any, Optional, Union, TYPE_CHECKING

from .models import Account, Confirmation, HistoryResponse

if TYPE_CHECKING:
    from .client import SecretClient

logger = logging.getLogger(__name__)

U128_MAX = 2 ** 128 - 1


class Operation(str, Enum):
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    SQRT = "sqrt"


SYMBOLS = {
    Operation.ADD: "+",
    Operation.SUB: "-",
    Operation.MUL: "*",
    Operation.DIV: "/",
}


def _check_u128(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if not 0 <= value <= U128_MAX:
        raise ValueError(f"{name} must fit in an unsigned 128-bit integer")
    return value


def build_msg(op: Union[Operation, str], n1: int, n2: Optional[int] = None) -> Dict[str, Any]:
    """
    Build an execute message; numbers are sent as Uint128 strings.

    Raises:
        ValueError: On an operand that is not a u128, or a missing second operand
    """
    op = Operation(op)
    _check_u128(n1, "n1")
    if op == Operation.SQRT:
        return {op.value: {"n": str(n1)}}
    if n2 is None:
        raise ValueError(f"{op.value} needs two operands")
    _check_u128(n2, "n2")
    return {op.value: {"n1": str(n1), "n2": str(n2)}}


def expected_entry(op: Union[Operation, str], n1: int, n2: Optional[int] = None) -> Optional[str]:
    """
    History line the contract records for an operation, or None if the
    contract rejects it.
    """
    op = Operation(op)
    if op == Operation.SQRT:
        return f"√{n1} = {math.isqrt(n1)}"
    if op == Operation.ADD:
        result = n1 + n2
    elif op == Operation.SUB:
        result = n1 - n2
    elif op == Operation.MUL:
        result = n1 * n2
    else:
        if n2 == 0:
            return None
        result = n1 // n2
    if not 0 <= result <= U128_MAX:
        return None
    return f"{n1} {SYMBOLS[op]} {n2} = {result}"


class CalculatorClient:
    """Calls a deployed calculator contract through a SecretClient"""

    def __init__(
        self,
        client: "SecretClient",
        contract: str,
        code_hash: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.client = client
        self.contract = contract
        self.code_hash = code_hash
        self.logger = logger or logging.getLogger(__name__)

    def calculate(self, op: Union[Operation, str], n1: int, n2: Optional[int] = None,
                  account: Optional[Account] = None) -> Confirmation:
        msg = build_msg(op, n1, n2)
        confirmation = self.client.execute(self.contract, msg, code_hash=self.code_hash, account=account)
        if confirmation.succeeded:
            self.logger.info(f"{Operation(op).value}: {confirmation.data}")
        return confirmation

    def add(self, n1: int, n2: int, account: Optional[Account] = None) -> Confirmation:
        return self.calculate(Operation.ADD, n1, n2, account)

    def sub(self, n1: int, n2: int, account: Optional[Account] = None) -> Confirmation:
        return self.calculate(Operation.SUB, n1, n2, account)

    def mul(self, n1: int, n2: int, account: Optional[Account] = None) -> Confirmation:
        return self.calculate(Operation.MUL, n1, n2, account)

    def div(self, n1: int, n2: int, account: Optional[Account] = None) -> Confirmation:
        return self.calculate(Operation.DIV, n1, n2, account)

    def sqrt(self, n: int, account: Optional[Account] = None) -> Confirmation:
        return self.calculate(Operation.SQRT, n, account=account)

    def history(self, account: Optional[Account] = None, steps_back: Optional[int] = None) -> HistoryResponse:
        return self.client.get_history(self.contract, account=account, steps_back=steps_back,
                                       code_hash=self.code_hash)
