"""
key_loader.py - Server Keypair Resolution

The server signs the challenge events it hands out with its own Nostr key.
Resolution order:
  1. SERVER_PRIVATE_KEY environment variable
  2. key file (SERVER_KEY_FILE)
  3. server_keys database row
  4. freshly generated key, persisted to the key file (development)
     or to the database row (production)
"""

import os
import logging
from typing import Tuple

from nostr_common.keys import generate_keypair, public_key_from_private, is_hex, PRIVKEY_HEX_LEN
from nostr_common.utils import ensure_dir
from auth_server import database as db
from auth_server.config import AuthConfig

logger = logging.getLogger(__name__)


def _read_key_file(path: str) -> str | None:
    if not os.path.exists(path):
        return None
    with open(path) as f:
        value = f.read().strip().lower()
    if not is_hex(value, PRIVKEY_HEX_LEN):
        logger.warning(f"Ignoring malformed server key file {path}")
        return None
    return value


def _write_key_file(path: str, private_key: str):
    ensure_dir(os.path.dirname(path))
    with open(path, "w") as f:
        f.write(private_key)
    # owner read/write only
    os.chmod(path, 0o600)


def load_server_keys(config: AuthConfig) -> Tuple[str, str]:
    """
    Resolve the server keypair and store it on *config*.

    Returns (private_key_hex, public_key_hex).
    """
    if config.server_private_key:
        private_key = config.server_private_key
        public_key = public_key_from_private(private_key)
        logger.info("Loaded server key from environment")

    elif (private_key := _read_key_file(config.server_key_file)) is not None:
        public_key = public_key_from_private(private_key)
        logger.info(f"Loaded server key from {config.server_key_file}")

    elif (row := db.load_server_keys()) is not None:
        private_key = row["private_key"]
        public_key = public_key_from_private(private_key)
        if public_key != row["public_key"]:
            logger.warning("Stored server public key did not match its private key - re-derived")
        logger.info("Loaded server key from database")

    else:
        logger.warning("No server key found - generating a new keypair")
        private_key, public_key = generate_keypair()
        if config.is_production:
            db.store_server_keys(private_key, public_key)
            logger.info("Saved new server key to database")
        else:
            try:
                _write_key_file(config.server_key_file, private_key)
                logger.info(f"Saved new server key to {config.server_key_file}")
            except OSError as e:
                logger.warning(f"Could not persist server key to {config.server_key_file}: {e}")

    config.server_private_key = private_key
    config.server_public_key = public_key
    return private_key, public_key
