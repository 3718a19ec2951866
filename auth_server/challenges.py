"""
challenges.py - Challenge Service

Issues login challenges, keeps them until they expire or are used, and
consumes each one at most once when a signed response verifies.
Also drives the two-step enrollment flow and profile lookups.

Stores:
  MemoryChallengeStore  - process-local dict (single worker deployments)
  SQLiteChallengeStore  - one row per challenge in the challenges table
"""

import json
import time
import threading
import logging

from nostr_common.errors import (
    InvalidEvent, ChallengeNotFound, ChallengeExpired, ChallengeMismatch, EnrollmentNotFound,
)
from nostr_common.event import AUTH_EVENT_KIND, sign_event, find_tag
from nostr_common.keys import is_valid_pubkey
from nostr_common.models import Challenge, Enrollment, NostrProfile
from nostr_common.utils import generate_id, random_hex, short_key
from auth_server import database as db
from auth_server.validator import validate_challenge_event, validate_enrollment_event

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32
PROFILE_FIELDS = ("name", "about", "picture", "nip05")


# ─────────────────────────────────────────────
# STORES
# ─────────────────────────────────────────────
class MemoryChallengeStore:
    """Challenges keyed by their random value, guarded by a lock."""

    def __init__(self):
        self._challenges: dict = {}
        self._lock = threading.Lock()

    def add(self, challenge: Challenge):
        with self._lock:
            self._challenges[challenge.challenge] = challenge

    def get(self, value: str) -> Challenge | None:
        with self._lock:
            return self._challenges.get(value)

    def delete(self, value: str) -> bool:
        with self._lock:
            return self._challenges.pop(value, None) is not None

    def purge_expired(self, now: int) -> int:
        with self._lock:
            expired = [k for k, c in self._challenges.items() if c.is_expired(now)]
            for k in expired:
                del self._challenges[k]
        return len(expired)


class SQLiteChallengeStore:
    """Row-backed store; DELETE row counts make consumption at-most-once across workers."""

    def add(self, challenge: Challenge):
        db.insert_challenge(challenge.to_dict())

    def get(self, value: str) -> Challenge | None:
        row = db.get_challenge(value)
        return Challenge.from_dict(row) if row else None

    def delete(self, value: str) -> bool:
        return db.delete_challenge(value)

    def purge_expired(self, now: int) -> int:
        return db.purge_expired_challenges(now)


def make_store(backend: str):
    if backend == "sqlite":
        return SQLiteChallengeStore()
    if backend == "memory":
        return MemoryChallengeStore()
    raise ValueError(f"Unknown challenge store backend: {backend!r}")


# ─────────────────────────────────────────────
# SERVICE
# ─────────────────────────────────────────────
class ChallengeService:

    def __init__(self, store, ttl: int = 300, max_skew: int = 300,
                 server_private_key: str = None, clock=time.time):
        self.store = store
        self.ttl = ttl
        self.max_skew = max_skew
        self.server_private_key = server_private_key
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    # ── login ────────────────────────────────
    def create_challenge(self, pubkey: str) -> Challenge:
        if not is_valid_pubkey(pubkey):
            raise InvalidEvent("Invalid pubkey format")

        now = self.now()
        self.store.purge_expired(now)

        value = random_hex(CHALLENGE_BYTES)
        event = None
        if self.server_private_key:
            event = sign_event(
                self.server_private_key,
                kind=AUTH_EVENT_KIND,
                content="",
                tags=[["p", pubkey], ["challenge", value]],
                created_at=now,
            ).to_dict()

        challenge = Challenge(
            id=generate_id(),
            challenge=value,
            pubkey=pubkey,
            created_at=now,
            expires_at=now + self.ttl,
            event=event,
        )
        self.store.add(challenge)
        logger.info(f"Challenge issued for {short_key(pubkey)} (expires in {self.ttl}s)")
        return challenge

    def verify_challenge(self, data: dict) -> str:
        """
        Verify a signed challenge response and consume its challenge.

        Returns the authenticated pubkey. Raises InvalidEvent,
        InvalidSignature, ChallengeNotFound, ChallengeMismatch or
        ChallengeExpired.
        """
        now = self.now()
        event = validate_challenge_event(data, now=now, max_skew=self.max_skew)
        value = find_tag(event, "challenge")

        record = self.store.get(value)
        if record is None:
            raise ChallengeNotFound()
        if record.pubkey != event.pubkey:
            raise ChallengeMismatch()
        if record.is_expired(now):
            self.store.delete(value)
            raise ChallengeExpired()

        # a concurrent verifier may have consumed it between get() and here
        if not self.store.delete(value):
            raise ChallengeNotFound()

        logger.info(f"Challenge consumed for {short_key(event.pubkey)}")
        return event.pubkey

    # ── enrollment ───────────────────────────
    def start_enrollment(self, pubkey: str) -> Enrollment:
        if not is_valid_pubkey(pubkey):
            raise InvalidEvent("Invalid pubkey format")
        now = self.now()
        enrollment = Enrollment(
            id=generate_id(),
            pubkey=pubkey,
            status="pending",
            challenge=random_hex(CHALLENGE_BYTES),
            expires_at=now + self.ttl,
            created_at=now,
            updated_at=now,
        )
        db.insert_enrollment(enrollment.to_dict())
        logger.info(f"Enrollment started for {short_key(pubkey)}")
        return enrollment

    def verify_enrollment(self, data: dict) -> Enrollment:
        now = self.now()
        event = validate_enrollment_event(data, now=now, max_skew=self.max_skew)

        row = db.get_pending_enrollment(event.pubkey)
        if row is None:
            raise EnrollmentNotFound()
        enrollment = Enrollment.from_dict(row)

        if now > enrollment.expires_at:
            db.update_enrollment_status(enrollment.id, "failed", now)
            raise ChallengeExpired("Enrollment expired")

        tagged = find_tag(event, "challenge")
        if tagged is None:
            raise InvalidEvent("Missing challenge tag")
        if tagged != enrollment.challenge:
            raise ChallengeMismatch("Enrollment challenge does not match")

        if not db.update_enrollment_status(enrollment.id, "completed", now):
            raise EnrollmentNotFound()
        enrollment.status = "completed"
        enrollment.updated_at = now

        profile = _profile_from_content(event.pubkey, event.content, now)
        db.upsert_profile(profile.to_dict())
        logger.info(f"Enrollment completed for {short_key(event.pubkey)}")
        return enrollment

    def get_profile(self, pubkey: str) -> NostrProfile | None:
        row = db.get_profile(pubkey)
        return NostrProfile.from_dict(row) if row else None


def _profile_from_content(pubkey: str, content: str, now: int) -> NostrProfile:
    """Profile fields from kind-0 style JSON metadata in the event content, if any."""
    metadata = {}
    if content:
        try:
            parsed = json.loads(content)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            metadata = {k: str(parsed[k]) for k in PROFILE_FIELDS if parsed.get(k) is not None}
    return NostrProfile(pubkey=pubkey, created_at=now, updated_at=now, **metadata)
