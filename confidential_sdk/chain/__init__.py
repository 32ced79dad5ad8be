"""
Chain access for the confidential contract SDK.

A transport broadcasts transactions, looks them up by hash and runs contract
queries. ``RestTransport`` talks to a node's REST gateway; ``StubTransport``
simulates a chain in memory.
"""
import logging

from .transport import (
    ChainTransport, BroadcastResponse, PayloadCipher, PlaintextCipher, TxBuilder, get_transport
)
from .stub_transport import StubTransport, stub_wasm, make_stub_account

__all__ = ['ChainTransport', 'BroadcastResponse', 'PayloadCipher', 'PlaintextCipher', 'TxBuilder',
           'get_transport', 'StubTransport', 'stub_wasm', 'make_stub_account']

logger = logging.getLogger(__name__)
