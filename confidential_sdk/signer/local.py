"""
Local secp256k1 signer backed by an in-memory private key.
"""
import logging
from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from .ec_constants import SECP256K1_MIN, SECP256K1_MAX, SECP256K1_N, SECP256K1_HALF_N

logger = logging.getLogger(__name__)


class LocalSigner:
    """
    Signer holding a raw secp256k1 private key.

    Signatures are ECDSA over SHA-256 in the 64-byte compact ``r || s`` form
    with low-s normalization, which is what Cosmos SDK chains verify.
    """

    def __init__(self, private_key: Union[str, bytes], address: str):
        """
        Initialize the signer

        Args:
            private_key: 32-byte private key, raw or hex (with or without 0x prefix)
            address: Bech32 address of the account this key controls

        Raises:
            ValueError: If the key is malformed or out of range
        """
        if isinstance(private_key, str):
            key_hex = private_key[2:] if private_key.startswith("0x") else private_key
            try:
                private_key = bytes.fromhex(key_hex)
            except ValueError as e:
                raise ValueError(f"Invalid private key hex: {e}")
        if len(private_key) != 32:
            raise ValueError(f"Private key must be 32 bytes, got {len(private_key)}")

        secret = int.from_bytes(private_key, byteorder="big")
        if not SECP256K1_MIN <= secret <= SECP256K1_MAX:
            raise ValueError("Private key is outside the secp256k1 range")
        if not address:
            raise ValueError("address must be provided")

        self._key = ec.derive_private_key(secret, ec.SECP256K1())
        self.address = address

    @property
    def public_key(self) -> bytes:
        return self._key.public_key().public_bytes(Encoding.X962, PublicFormat.CompressedPoint)

    def sign(self, data: bytes) -> bytes:
        """
        Sign bytes

        Args:
            data: Sign-doc bytes; hashed with SHA-256 before signing

        Returns:
            64-byte compact signature
        """
        der = self._key.sign(data, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if s > SECP256K1_HALF_N:
            s = SECP256K1_N - s
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.address!r})"
