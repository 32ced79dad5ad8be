"""
Confidential contract queries.

Queries are stateless reads. Authenticated queries carry the caller's
address and viewing key inside the query body; a contract that does not
accept them answers with an error, which surfaces as QueryFailed.
"""
import logging
from typing import Dict, Any, Optional, Tuple, Union

from pydantic import ValidationError

from .chain.transport import ChainTransport
from .exceptions import QueryFailed, TransportError
from .models import Account, HistoryResponse, TokenList, WhitelistEntry
from .viewing_keys import ViewingKeyManager

logger = logging.getLogger(__name__)

# (address, viewing key)
QueryAuth = Tuple[str, str]


def with_auth(body: Dict[str, Any], address: str, key: str) -> Dict[str, Any]:
    """
    Merge credentials into a query body.

    ``{"get_history": {"steps_back": 2}}`` becomes
    ``{"get_history": {"steps_back": 2, "address": ..., "key": ...}}``.

    Raises:
        ValueError: If the body is not a single-variant query
    """
    if not isinstance(body, dict) or len(body) != 1:
        raise ValueError("A query body must have exactly one top-level key")
    (name, inner), = body.items()
    merged = dict(inner or {})
    merged.update({"address": address, "key": key})
    return {name: merged}


def _unwrap(answer: Any, name: str) -> Any:
    if isinstance(answer, dict) and len(answer) == 1 and name in answer:
        return answer[name]
    return answer


class ConfidentialQueryClient:
    """
    Runs contract queries, attaching viewing keys where needed.

    Failures are raised immediately as QueryFailed; queries are neither
    retried nor cached.
    """

    def __init__(
        self,
        transport: ChainTransport,
        viewing_keys: Optional[ViewingKeyManager] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.transport = transport
        self.viewing_keys = viewing_keys
        self.logger = logger or logging.getLogger(__name__)

    def query(
        self,
        contract: str,
        body: Dict[str, Any],
        code_hash: Optional[str] = None,
        auth: Optional[QueryAuth] = None
    ) -> Any:
        """
        Run a query and return the contract's decoded answer.

        Args:
            contract: Contract address
            body: Query message, e.g. ``{"tokens": {"owner": ...}}``
            code_hash: Code hash of the contract, if known
            auth: ``(address, viewing_key)`` for authenticated queries

        Raises:
            QueryFailed: On any failure, including transport errors
        """
        if auth is not None:
            body = with_auth(body, *auth)
        operation = next(iter(body), "")
        self.logger.debug(f"Querying {operation} on {contract}")

        try:
            answer = self.transport.query_contract(contract, body, code_hash=code_hash)
        except QueryFailed:
            raise
        except TransportError as e:
            raise QueryFailed(f"Query {operation} on {contract} failed: {e}", contract=contract) from e

        # Some token contracts answer a bad key with a payload instead of an error
        if isinstance(answer, dict) and "viewing_key_error" in answer:
            message = (answer["viewing_key_error"] or {}).get("msg", "unauthorized")
            raise QueryFailed(f"Query {operation} on {contract} rejected: {message}", contract=contract)
        return answer

    def _key_for(self, account: Account, contract: str, code_hash: Optional[str]) -> str:
        if self.viewing_keys is None:
            raise QueryFailed(f"No viewing key available for {account.address}", contract=contract)
        return self.viewing_keys.ensure_key(account, contract, code_hash=code_hash)

    def get_history(
        self,
        account: Account,
        contract: str,
        steps_back: Optional[int] = None,
        key: Optional[str] = None,
        code_hash: Optional[str] = None
    ) -> HistoryResponse:
        """
        Read the calculation history of ``account``.

        Uses ``key`` when given, otherwise the session's viewing key for the
        pair (generating one if needed).

        Raises:
            QueryFailed: If the query is rejected or the answer is malformed
            KeyGenerationFailed: If a viewing key had to be generated and could not be
        """
        key = key or self._key_for(account, contract, code_hash)
        inner: Dict[str, Any] = {}
        if steps_back is not None:
            inner["steps_back"] = str(steps_back)
        answer = self.query(contract, {"get_history": inner}, code_hash=code_hash, auth=(account.address, key))
        try:
            return HistoryResponse.model_validate(_unwrap(answer, "get_history"))
        except ValidationError as e:
            raise QueryFailed(f"Malformed history response: {e}", contract=contract) from e

    def tokens(
        self,
        contract: str,
        owner: str,
        viewer: Optional[str] = None,
        viewing_key: Optional[str] = None,
        code_hash: Optional[str] = None
    ) -> TokenList:
        """List the token ids ``owner`` holds on an NFT contract"""
        inner: Dict[str, Any] = {"owner": owner}
        if viewer is not None:
            inner["viewer"] = viewer
        if viewing_key is not None:
            inner["viewing_key"] = viewing_key
        answer = self.query(contract, {"tokens": inner}, code_hash=code_hash)
        try:
            return TokenList.model_validate(_unwrap(answer, "token_list"))
        except ValidationError as e:
            raise QueryFailed(f"Malformed token list: {e}", contract=contract) from e

    def is_whitelisted(
        self,
        contract: str,
        address: str,
        code_hash: Optional[str] = None
    ) -> Optional[WhitelistEntry]:
        """
        Ask the minter whether ``address`` is whitelisted.

        Returns:
            WhitelistEntry with the remaining allowance, or None if the
            address is not whitelisted
        """
        answer = _unwrap(self.query(contract, {"is_whitelisted": {"address": address}}, code_hash=code_hash),
                         "is_whitelisted")
        whitelisted: Union[bool, Any] = answer
        amount: Any = 0
        if isinstance(answer, dict):
            whitelisted = answer.get("whitelisted", answer.get("is_whitelisted"))
            amount = answer.get("amount", answer.get("allowance", 0))
        if not isinstance(whitelisted, bool):
            raise QueryFailed(f"Malformed is_whitelisted answer: {answer!r}", contract=contract)
        if not whitelisted:
            return None
        try:
            return WhitelistEntry(address=address, allowance=int(amount or 0))
        except (ValidationError, TypeError, ValueError) as e:
            raise QueryFailed(f"Malformed whitelist allowance: {amount!r}", contract=contract) from e
