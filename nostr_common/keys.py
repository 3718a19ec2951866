"""
keys.py - secp256k1 Key Utilities
Common: Shared by the server key loader, the CLI client and the tests.

Nostr identities are x-only secp256k1 public keys (BIP-340): the 32-byte
X coordinate of the point, hex-encoded. Private keys never leave the
process that generated them.
"""

import re
import logging
from typing import Tuple

import coincurve

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# CONSTANTS
# ─────────────────────────────────────────────
PUBKEY_HEX_LEN  = 64     # 32-byte x-only key
PRIVKEY_HEX_LEN = 64     # 32-byte scalar
SIG_HEX_LEN     = 128    # 64-byte BIP-340 signature
EVENT_ID_HEX_LEN = 64    # sha256 digest

_HEX_PATTERNS: dict = {}


# ─────────────────────────────────────────────
# FORMAT HELPERS
# ─────────────────────────────────────────────
def is_hex(value, length: int) -> bool:
    """True if *value* is a lowercase hex string of exactly *length* chars."""
    if not isinstance(value, str):
        return False
    pattern = _HEX_PATTERNS.get(length)
    if pattern is None:
        pattern = _HEX_PATTERNS[length] = re.compile(rf"^[0-9a-f]{{{length}}}$")
    return pattern.fullmatch(value) is not None


def is_valid_pubkey(pubkey) -> bool:
    return is_hex(pubkey, PUBKEY_HEX_LEN)


# ─────────────────────────────────────────────
# KEY GENERATION / DERIVATION
# ─────────────────────────────────────────────
def public_key_from_private(private_key_hex: str) -> str:
    """Derive the hex x-only public key for a hex private key."""
    if not is_hex(private_key_hex.lower(), PRIVKEY_HEX_LEN):
        raise ValueError("Private key must be 64 hex characters")
    priv = coincurve.PrivateKey(bytes.fromhex(private_key_hex))
    # compressed SEC1 is 0x02/0x03 || X; dropping the prefix leaves the x-only key
    return priv.public_key.format(compressed=True)[1:].hex()


def generate_keypair() -> Tuple[str, str]:
    """
    Generate a fresh secp256k1 keypair.

    Returns (private_key_hex, public_key_hex).
    """
    priv = coincurve.PrivateKey()
    private_hex = priv.secret.hex()
    public_hex = priv.public_key.format(compressed=True)[1:].hex()
    logger.debug(f"Generated keypair for pubkey {public_hex[:16]}…")
    return private_hex, public_hex
