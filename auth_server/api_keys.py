"""
api_keys.py - API Key Helpers

Format: maqr_<first 8 hex chars of server pubkey>_<32 hex char secret>

The key derived from the server private key is deterministic, so an
operator can regenerate it from the key alone.
"""

import hashlib
import hmac
import secrets
import logging
from typing import NamedTuple, Optional

from nostr_common.keys import public_key_from_private

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "maqr"


class ApiKeyParts(NamedTuple):
    prefix: str
    server_pubkey: str
    secret: str


def _format_api_key(parts: ApiKeyParts) -> str:
    return f"{parts.prefix}_{parts.server_pubkey}_{parts.secret}"


def generate_api_key(private_key_hex: str) -> str:
    """Deterministic API key bound to the server identity."""
    public_key = public_key_from_private(private_key_hex)
    secret = hashlib.sha256(bytes.fromhex(private_key_hex)).hexdigest()[:32]
    return _format_api_key(ApiKeyParts(API_KEY_PREFIX, public_key[:8], secret))


def generate_random_api_key() -> str:
    """Additional key not tied to the server identity."""
    return _format_api_key(ApiKeyParts(API_KEY_PREFIX, secrets.token_hex(4), secrets.token_hex(16)))


def parse_api_key(api_key: str) -> Optional[ApiKeyParts]:
    parts = api_key.split("_") if isinstance(api_key, str) else []
    if len(parts) != 3:
        return None
    prefix, server_pubkey, secret = parts
    if prefix != API_KEY_PREFIX or len(server_pubkey) != 8 or len(secret) != 32:
        return None
    return ApiKeyParts(prefix, server_pubkey, secret)


def is_valid_api_key_format(api_key: str) -> bool:
    return parse_api_key(api_key) is not None


def api_key_allowed(api_key: str, allowed: list) -> bool:
    """Constant-time membership test against the configured keys."""
    if not api_key:
        return False
    candidate = api_key.encode("utf-8")
    return any(hmac.compare_digest(candidate, k.encode("utf-8")) for k in allowed)
