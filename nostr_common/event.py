"""
event.py - Nostr Event Model, Hashing & BIP-340 Signatures
Common: Shared by the server validator and the CLI client.

Provides:
  - NIP-01 canonical serialization of an event
  - Event ID computation (SHA-256 of the serialization)
  - Schnorr signing of an event with a private key
  - Schnorr verification of an event against its declared pubkey

The server only ever verifies; signing exists for the client and tests.
"""

import json
import time
import hashlib
import logging
from dataclasses import dataclass, field, asdict
from typing import Optional

import coincurve

from nostr_common.errors import InvalidEvent
from nostr_common.keys import public_key_from_private

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────
# EVENT KINDS
# ─────────────────────────────────────────────
AUTH_EVENT_KIND   = 22242    # challenge response
ENROLL_EVENT_KIND = 22243    # enrollment confirmation

REQUIRED_FIELDS = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")


# ─────────────────────────────────────────────
# MODEL
# ─────────────────────────────────────────────
@dataclass
class NostrEvent:
    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list = field(default_factory=list)
    content: str = ""
    sig: str = ""

    def to_dict(self):
        return asdict(self)

    @staticmethod
    def from_dict(d: dict) -> "NostrEvent":
        if not isinstance(d, dict):
            raise InvalidEvent("Event must be a JSON object")
        missing = [k for k in REQUIRED_FIELDS if k not in d or d[k] is None]
        if missing:
            raise InvalidEvent(f"Missing required fields: {', '.join(missing)}")
        return NostrEvent(
            id=d["id"],
            pubkey=d["pubkey"],
            created_at=d["created_at"],
            kind=d["kind"],
            tags=d["tags"],
            content=d["content"],
            sig=d["sig"],
        )


# ─────────────────────────────────────────────
# SERIALIZATION / HASHING
# ─────────────────────────────────────────────
def serialize_event(pubkey: str, created_at: int, kind: int, tags: list, content: str) -> bytes:
    """
    NIP-01 serialization: [0, pubkey, created_at, kind, tags, content]
    as compact JSON, UTF-8 encoded, non-ASCII left unescaped.
    """
    return json.dumps(
        [0, pubkey, created_at, kind, tags, content],
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def compute_event_id(event) -> str:
    """Return the hex SHA-256 of the serialized event (dict or NostrEvent)."""
    if isinstance(event, NostrEvent):
        event = event.to_dict()
    serialized = serialize_event(
        event["pubkey"], event["created_at"], event["kind"], event["tags"], event["content"],
    )
    return hashlib.sha256(serialized).hexdigest()


def find_tag(event, name: str) -> Optional[str]:
    """First value of the tag called *name*, or None."""
    tags = event.tags if isinstance(event, NostrEvent) else event.get("tags", [])
    for tag in tags or []:
        if isinstance(tag, list) and len(tag) >= 2 and tag[0] == name:
            return tag[1]
    return None


def has_tag(event, name: str, value: str) -> bool:
    """True if any tag called *name* carries *value*."""
    tags = event.tags if isinstance(event, NostrEvent) else event.get("tags", [])
    return any(isinstance(tag, list) and len(tag) >= 2 and tag[0] == name and tag[1] == value
               for tag in tags or [])


# ─────────────────────────────────────────────
# SIGNING
# ─────────────────────────────────────────────
def sign_event(private_key_hex: str, kind: int, content: str = "",
               tags: list = None, created_at: int = None) -> NostrEvent:
    """Build and BIP-340 sign an event with *private_key_hex*."""
    if created_at is None:
        created_at = int(time.time())
    tags = tags or []
    pubkey = public_key_from_private(private_key_hex)

    event_id = hashlib.sha256(serialize_event(pubkey, created_at, kind, tags, content)).hexdigest()
    priv = coincurve.PrivateKey(bytes.fromhex(private_key_hex))
    sig = priv.sign_schnorr(bytes.fromhex(event_id)).hex()

    return NostrEvent(
        id=event_id,
        pubkey=pubkey,
        created_at=created_at,
        kind=kind,
        tags=tags,
        content=content,
        sig=sig,
    )


# ─────────────────────────────────────────────
# VERIFICATION
# ─────────────────────────────────────────────
def verify_signature(event) -> bool:
    """
    Verify an event's ID and Schnorr signature.

    Returns False (never raises) when the recomputed ID differs from the
    supplied one, when any field is malformed, or when the signature does
    not verify against the declared pubkey.
    """
    if isinstance(event, NostrEvent):
        event = event.to_dict()
    try:
        computed_id = compute_event_id(event)
        if computed_id != event["id"]:
            logger.warning(f"Event ID mismatch: computed={computed_id[:16]}… got={str(event['id'])[:16]}…")
            return False

        pubkey_bytes = bytes.fromhex(event["pubkey"])
        sig_bytes = bytes.fromhex(event["sig"])
        if len(pubkey_bytes) != 32 or len(sig_bytes) != 64:
            logger.warning("Invalid pubkey or signature length")
            return False

        return coincurve.PublicKeyXOnly(pubkey_bytes).verify(sig_bytes, bytes.fromhex(computed_id))
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Signature verification error: {e}")
        return False
