"""
Signer capability for the confidential contract SDK.

Key derivation from mnemonics and transaction wire encoding live outside the
SDK; a signer only needs to expose its address, its compressed public key
and a ``sign(bytes)`` operation.
"""
from typing import Protocol, runtime_checkable

__all__ = ['Signer', 'LocalSigner']


@runtime_checkable
class Signer(Protocol):
    """Protocol for signers"""
    address: str

    @property
    def public_key(self) -> bytes:
        """Compressed secp256k1 public key"""
        ...

    def sign(self, data: bytes) -> bytes:
        """Sign raw bytes and return the 64-byte compact signature"""
        ...


from .local import LocalSigner  # noqa: E402
