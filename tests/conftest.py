"""
Pytest fixtures for the confidential contract SDK tests.
"""
import time

import pytest

from confidential_sdk.chain import StubTransport
from confidential_sdk.chain import _rate_limited_log
from confidential_sdk.client import SecretClient
from confidential_sdk.config import NetworkConfig

from tests.test_helpers import ADMIN_BALANCE, create_test_client

# ─────────────────────────────────────────────────────────────────────────
#  FAST POLLING BEHAVIOUR FOR TESTS
# ─────────────────────────────────────────────────────────────────────────

# Make time.sleep instantaneous so confirmation polling doesn't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _fresh_rate_limited_log():
    """Every test starts with an empty rate-limit cache"""
    _rate_limited_log.reset()
    yield
    _rate_limited_log.reset()


@pytest.fixture(autouse=True)
def _fresh_network_cache():
    NetworkConfig._networks_cache = None
    yield
    NetworkConfig._networks_cache = None


@pytest.fixture
def stub():
    """Simulated chain where every transaction is found on the second lookup"""
    return StubTransport(confirm_after=1)


@pytest.fixture
def admin(stub):
    return stub.create_account("admin", balance=ADMIN_BALANCE)


@pytest.fixture
def client(stub, admin) -> SecretClient:
    return create_test_client(transport=stub, account=admin)
