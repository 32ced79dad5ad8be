"""
Constants for elliptic curve cryptography.
"""

# Order of the SECP256K1 elliptic curve (N value)
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Valid private key range is [1, N-1]
SECP256K1_MIN = 1
SECP256K1_MAX = SECP256K1_N - 1

# Signatures with s above N/2 are malleable and rejected by Cosmos chains
SECP256K1_HALF_N = SECP256K1_N // 2
