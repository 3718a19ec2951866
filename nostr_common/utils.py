"""
utils.py - Common Utility Functions
"""

import time
import os
import uuid
import json
import secrets
import logging

logger = logging.getLogger(__name__)


def current_timestamp() -> int:
    return int(time.time())


def generate_id() -> str:
    """Opaque record identifier (UUID4)."""
    return str(uuid.uuid4())


def random_hex(n_bytes: int = 32) -> str:
    """Cryptographically random hex string of *n_bytes* bytes."""
    return secrets.token_hex(n_bytes)


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, default=str)


def short_key(pubkey: str) -> str:
    """Abbreviated pubkey for log lines."""
    if not pubkey or len(pubkey) <= 16:
        return pubkey or ""
    return f"{pubkey[:8]}…{pubkey[-4:]}"


def mask_sensitive(data: dict, keys=("sig", "token", "private_key", "secret")) -> dict:
    """
    Return a copy of *data* with sensitive fields replaced by a placeholder.
    Useful for safe logging.
    """
    masked = {}
    for k, v in data.items():
        if k in keys:
            masked[k] = f"<{k}: {len(str(v))} chars>"
        elif isinstance(v, dict):
            masked[k] = mask_sensitive(v, keys)
        else:
            masked[k] = v
    return masked


def ensure_dir(path: str):
    if path:
        os.makedirs(path, exist_ok=True)
