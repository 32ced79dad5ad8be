"""
Helpers shared by the test modules.
"""
from .client_creator import (
    create_test_client,
    deploy_stub_contract,
    ADMIN_BALANCE,
    TEST_PRIV_KEY,
    TEST_ADDRESS,
    TEST_LCD_URL,
    TEST_CONTRACT,
    TEST_CODE_HASH,
)

__all__ = [
    "create_test_client",
    "deploy_stub_contract",
    "ADMIN_BALANCE",
    "TEST_PRIV_KEY",
    "TEST_ADDRESS",
    "TEST_LCD_URL",
    "TEST_CONTRACT",
    "TEST_CODE_HASH",
]
