"""
Tests for SecretClient.
"""
import logging
from unittest.mock import MagicMock

import pytest

from confidential_sdk import SecretClient
from confidential_sdk.chain import StubTransport, stub_wasm
from confidential_sdk.chain.rest_transport import RestTransport
from confidential_sdk.chain.transport import ChainTransport
from confidential_sdk.exceptions import (
    ChainRejection, ConfigurationError, ConfirmationTimeout, TransportError
)
from confidential_sdk.models import coins

from tests.test_helpers import ADMIN_BALANCE, TEST_LCD_URL, deploy_stub_contract


def test_store_and_instantiate(client, stub):
    code_id, code_hash = client.store_code(stub_wasm("calculator"))
    assert code_id == 1
    assert len(code_hash) == 64

    address = client.instantiate(code_id, {"prng_seed": "c2VlZA=="}, "calc", code_hash=code_hash)
    assert address.startswith("secret1")
    assert address in stub.contracts


def test_store_code_from_path(client, tmp_path):
    wasm = tmp_path / "contract.wasm"
    wasm.write_bytes(stub_wasm("snip20"))
    code_id, _ = client.store_code(wasm)
    assert code_id == 1


def test_store_invalid_code(client):
    with pytest.raises(ChainRejection) as exc_info:
        client.store_code(b"\x00asm garbage")
    assert "invalid wasm" in exc_info.value.result.raw_log


def test_duplicate_label_rejected(client):
    code_id, code_hash = client.store_code(stub_wasm("calculator"))
    client.instantiate(code_id, {}, "calc")
    with pytest.raises(ChainRejection, match="label already exists"):
        client.instantiate(code_id, {}, "calc")


def test_instantiate_with_wrong_code_hash(client):
    code_id, _ = client.store_code(stub_wasm("calculator"))
    with pytest.raises(ChainRejection):
        client.instantiate(code_id, {}, "calc", code_hash="ab" * 32)


def test_execute_returns_failure_as_value(client):
    deployment = deploy_stub_contract(client, "calculator")
    confirmation = client.execute(deployment.address, {"div": {"n1": "1", "n2": "0"}})
    assert confirmation.failed
    assert confirmation.result.codespace == "compute"

    with pytest.raises(ChainRejection):
        client.execute(deployment.address, {"div": {"n1": "1", "n2": "0"}}, require_success=True)


def test_execute_unknown_outcome(client, stub):
    deployment = deploy_stub_contract(client, "calculator")
    stub.drop_next()
    confirmation = client.execute(deployment.address, {"add": {"n1": "1", "n2": "1"}})
    assert confirmation.unknown

    stub.drop_next()
    with pytest.raises(ConfirmationTimeout):
        client.execute(deployment.address, {"add": {"n1": "1", "n2": "1"}}, require_success=True)


def test_execute_with_tight_gas_limit(client):
    deployment = deploy_stub_contract(client, "calculator")
    confirmation = client.execute(deployment.address, {"add": {"n1": "1", "n2": "1"}}, gas_limit=1000)
    assert confirmation.failed
    assert confirmation.result.code == 11


def test_execute_on_behalf_of_other_account(client, stub):
    deployment = deploy_stub_contract(client, "calculator")
    other = stub.create_account("other", balance=1_000)
    assert client.execute(deployment.address, {"add": {"n1": "1", "n2": "1"}}, account=other).succeeded
    assert stub.get_account(other.address).sequence == 1


def test_send_tokens(client, stub, admin):
    recipient = stub.create_account("recipient")
    confirmation = client.send_tokens(recipient.address, 5_000)

    assert confirmation.succeeded
    assert confirmation.result.find_attribute("transfer.recipient") == recipient.address
    assert client.get_balance(recipient.address) == 5_000
    assert client.get_balance() == ADMIN_BALANCE - 5_000


def test_send_more_than_balance(client, stub):
    poor = stub.create_account("poor", balance=10)
    confirmation = client.send_tokens(stub.create_account().address, 11, account=poor)
    assert confirmation.failed
    assert confirmation.result.code == 5
    assert stub.balance(poor.address) == 10


def test_funds_attached_to_execute(client, stub):
    deployment = deploy_stub_contract(client, "calculator")
    client.execute(deployment.address, {"add": {"n1": "1", "n2": "1"}}, funds=coins(100), require_success=True)
    assert stub.balance(deployment.address) == 100


def test_no_account():
    client = SecretClient(StubTransport())
    with pytest.raises(ValueError):
        client.address
    with pytest.raises(ValueError):
        client.execute("secret1c", {"add": {}})


def test_chain_identity(client):
    assert client.chain_id == "secretdev-1"
    client.assert_chain_id("secretdev-1")
    with pytest.raises(ConfigurationError):
        client.assert_chain_id("pulsar-3")
    with pytest.raises(ConfigurationError, match="no network"):
        client.assert_chain_id()
    assert client.height >= 1


def test_assert_chain_id_uses_network(stub, admin):
    client = SecretClient(stub, account=admin, network="pulsar-3")
    with pytest.raises(ConfigurationError, match="expected pulsar-3"):
        client.assert_chain_id()


def test_broadcast_transport_error_propagates(admin):
    transport = MagicMock(spec=ChainTransport)
    transport.broadcast.side_effect = TransportError("connection refused")
    client = SecretClient(transport, account=admin)
    with pytest.raises(TransportError):
        client.execute("secret1c", {"add": {"n1": "1", "n2": "2"}})


def test_from_network(monkeypatch):
    monkeypatch.delenv("PULSAR_3_LCD_URL", raising=False)
    client = SecretClient.from_network("pulsar-3", lcd_url=TEST_LCD_URL)
    assert isinstance(client.transport, RestTransport)
    assert client.network == "pulsar-3"
    assert client.settings.denom == "uscrt"
    client.close()


def test_from_network_unknown():
    with pytest.raises(ConfigurationError, match="Unknown network"):
        SecretClient.from_network("nowhere-1")


def test_settings_flow_into_tracker(stub, admin):
    client = SecretClient(stub, account=admin, settings=None)
    assert client.tracker.timeout == 60.0
    assert list(client.tracker.delays())[:4] == [1.0, 2.0, 4.0, 6.0]


def test_context_manager_closes_transport():
    transport = MagicMock(spec=ChainTransport)
    with SecretClient(transport):
        pass
    transport.close.assert_called_once()


def test_custom_logger(stub, admin, caplog):
    custom = logging.getLogger("my.app")
    client = SecretClient(stub, account=admin, logger=custom)
    with caplog.at_level(logging.INFO, logger="my.app"):
        client.store_code(stub_wasm("calculator"))
    assert any(r.name == "my.app" and "Stored code" in r.getMessage() for r in caplog.records)
