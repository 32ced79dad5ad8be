"""
Tests for the local secp256k1 signer.
"""
import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from confidential_sdk.signer import LocalSigner, Signer
from confidential_sdk.signer.ec_constants import SECP256K1_HALF_N, SECP256K1_N

from tests.test_helpers import TEST_PRIV_KEY, TEST_ADDRESS


def _verify(signer: LocalSigner, data: bytes, signature: bytes) -> None:
    public_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), signer.public_key)
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    public_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))


def test_signer_satisfies_protocol():
    signer = LocalSigner(TEST_PRIV_KEY, TEST_ADDRESS)
    assert isinstance(signer, Signer)
    assert signer.address == TEST_ADDRESS


def test_public_key_is_compressed():
    public_key = LocalSigner(TEST_PRIV_KEY, TEST_ADDRESS).public_key
    assert len(public_key) == 33
    assert public_key[0] in (2, 3)


def test_hex_and_raw_keys_are_equivalent():
    raw = bytes.fromhex(TEST_PRIV_KEY[2:])
    assert LocalSigner(raw, TEST_ADDRESS).public_key == LocalSigner(TEST_PRIV_KEY[2:], TEST_ADDRESS).public_key


def test_signature_is_compact_low_s_and_verifies():
    signer = LocalSigner(TEST_PRIV_KEY, TEST_ADDRESS)
    data = b"sign-doc bytes"
    signature = signer.sign(data)
    assert len(signature) == 64
    assert int.from_bytes(signature[32:], "big") <= SECP256K1_HALF_N
    _verify(signer, data, signature)


def test_signature_does_not_verify_other_data():
    signer = LocalSigner(TEST_PRIV_KEY, TEST_ADDRESS)
    signature = signer.sign(b"one")
    with pytest.raises(InvalidSignature):
        _verify(signer, b"two", signature)


@pytest.mark.parametrize("key", [
    "not-hex",
    "0x1234",
    "00" * 32,
    SECP256K1_N.to_bytes(32, "big").hex(),
])
def test_invalid_keys_rejected(key):
    with pytest.raises(ValueError):
        LocalSigner(key, TEST_ADDRESS)


def test_address_required():
    with pytest.raises(ValueError):
        LocalSigner(TEST_PRIV_KEY, "")


def test_repr_hides_key():
    text = repr(LocalSigner(TEST_PRIV_KEY, TEST_ADDRESS))
    assert TEST_ADDRESS in text
    assert TEST_PRIV_KEY[2:] not in text
