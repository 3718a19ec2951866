"""
validator.py - Nostr Event Validation

Checks, in order:
  1. shape: required fields present with the right JSON types
  2. format: pubkey / id / sig are lowercase hex of the right length
  3. kind and required tags for the handshake step
  4. created_at within the allowed clock skew
  5. id recomputation and BIP-340 signature

Every failure raises an AuthError subclass; a valid event is returned as
a NostrEvent.
"""

import time
import logging

from nostr_common.errors import InvalidEvent, InvalidSignature
from nostr_common.event import (
    NostrEvent, AUTH_EVENT_KIND, ENROLL_EVENT_KIND, find_tag, has_tag, verify_signature,
)
from nostr_common.keys import is_hex, PUBKEY_HEX_LEN, SIG_HEX_LEN, EVENT_ID_HEX_LEN

logger = logging.getLogger(__name__)

DEFAULT_MAX_SKEW = 300


def _is_int(value) -> bool:
    # bool is an int subclass; JSON true/false is never a valid kind or timestamp
    return isinstance(value, int) and not isinstance(value, bool)


def validate_event(data: dict) -> NostrEvent:
    """Shape and format checks shared by every event the server accepts."""
    event = NostrEvent.from_dict(data)

    if not _is_int(event.kind) or not _is_int(event.created_at):
        raise InvalidEvent("kind and created_at must be integers")
    if not isinstance(event.content, str):
        raise InvalidEvent("content must be a string")
    if not isinstance(event.tags, list) or not all(
        isinstance(t, list) and all(isinstance(v, str) for v in t) for t in event.tags
    ):
        raise InvalidEvent("tags must be a list of string lists")

    if not is_hex(event.pubkey, PUBKEY_HEX_LEN):
        raise InvalidEvent("Invalid pubkey format")
    if not is_hex(event.id, EVENT_ID_HEX_LEN):
        raise InvalidEvent("Invalid event id format")
    if not is_hex(event.sig, SIG_HEX_LEN):
        raise InvalidEvent("Invalid signature format")

    return event


def validate_timestamp(event: NostrEvent, now: int = None, max_skew: int = DEFAULT_MAX_SKEW):
    now = int(time.time()) if now is None else now
    skew = abs(now - event.created_at)
    if skew > max_skew:
        raise InvalidEvent(f"Event timestamp out of range: {skew}s from server time (max {max_skew}s)")


def check_signature(event: NostrEvent):
    if not verify_signature(event):
        logger.warning(f"[VALIDATE] Signature rejected for event {event.id[:16]}…")
        raise InvalidSignature()


def validate_challenge_event(data: dict, now: int = None, max_skew: int = DEFAULT_MAX_SKEW) -> NostrEvent:
    """Validate a signed challenge response (kind 22242 with a challenge tag)."""
    event = validate_event(data)
    if event.kind != AUTH_EVENT_KIND:
        raise InvalidEvent(f"Invalid event kind: expected {AUTH_EVENT_KIND}, got {event.kind}")
    if not find_tag(event, "challenge"):
        raise InvalidEvent("Missing challenge tag")
    validate_timestamp(event, now, max_skew)
    check_signature(event)
    return event


def validate_enrollment_event(data: dict, now: int = None, max_skew: int = DEFAULT_MAX_SKEW) -> NostrEvent:
    """Validate an enrollment confirmation (kind 22243 with ["action", "enroll"])."""
    event = validate_event(data)
    if event.kind != ENROLL_EVENT_KIND:
        raise InvalidEvent(f"Invalid event kind: expected {ENROLL_EVENT_KIND}, got {event.kind}")
    if not has_tag(event, "action", "enroll"):
        raise InvalidEvent("Missing or invalid action tag")
    validate_timestamp(event, now, max_skew)
    check_signature(event)
    return event
