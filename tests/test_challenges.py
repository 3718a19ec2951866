"""
test_challenges.py - Unit Tests
Tests for: challenge issuance, expiry, at-most-once consumption, enrollment flow
"""

import sys
import os
import unittest
import tempfile
import threading
import json

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from nostr_common.errors import (
    InvalidEvent, InvalidSignature, ChallengeNotFound, ChallengeExpired,
    ChallengeMismatch, EnrollmentNotFound,
)
from nostr_common.event import sign_event, verify_signature, find_tag, AUTH_EVENT_KIND, ENROLL_EVENT_KIND
from nostr_common.keys import generate_keypair, is_hex
from auth_server import database as db
from auth_server.challenges import (
    ChallengeService, MemoryChallengeStore, SQLiteChallengeStore, make_store,
)

START = 1_700_000_000


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TempDatabase:
    """Points the database module at a throwaway file for one test."""

    def start(self):
        self._tmp = tempfile.TemporaryDirectory()
        self._old_path = db.DB_PATH
        db.set_db_path(os.path.join(self._tmp.name, "test.db"))
        db.init_db()

    def stop(self):
        db.set_db_path(self._old_path)
        self._tmp.cleanup()


def respond(priv, challenge_value, created_at, kind=AUTH_EVENT_KIND, content="") -> dict:
    return sign_event(priv, kind=kind, content=content,
                      tags=[["challenge", challenge_value]], created_at=created_at).to_dict()


# ─────────────────────────────────────────────
class ChallengeFlowMixin:
    """Shared assertions run against each store backend."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.clock = FakeClock()
        self.server_priv, self.server_pub = generate_keypair()
        self.service = ChallengeService(self.make_store(), ttl=60, max_skew=300,
                                        server_private_key=self.server_priv, clock=self.clock)
        self.priv, self.pub = generate_keypair()

    def test_challenge_shape(self):
        c = self.service.create_challenge(self.pub)
        self.assertTrue(is_hex(c.challenge, 64))
        self.assertEqual(c.pubkey, self.pub)
        self.assertEqual(c.expires_at, START + 60)

    def test_challenges_are_unique(self):
        a = self.service.create_challenge(self.pub)
        b = self.service.create_challenge(self.pub)
        self.assertNotEqual(a.challenge, b.challenge)

    def test_server_signed_challenge_event(self):
        c = self.service.create_challenge(self.pub)
        self.assertEqual(c.event["pubkey"], self.server_pub)
        self.assertEqual(find_tag(c.event, "p"), self.pub)
        self.assertEqual(find_tag(c.event, "challenge"), c.challenge)
        self.assertTrue(verify_signature(c.event))

    def test_invalid_pubkey_rejected(self):
        with self.assertRaises(InvalidEvent):
            self.service.create_challenge("not-a-pubkey")

    def test_successful_verification(self):
        c = self.service.create_challenge(self.pub)
        pubkey = self.service.verify_challenge(respond(self.priv, c.challenge, self.clock()))
        self.assertEqual(pubkey, self.pub)

    def test_consumed_challenge_cannot_be_reused(self):
        c = self.service.create_challenge(self.pub)
        event = respond(self.priv, c.challenge, self.clock())
        self.service.verify_challenge(event)
        with self.assertRaises(ChallengeNotFound):
            self.service.verify_challenge(event)

    def test_unknown_challenge(self):
        with self.assertRaises(ChallengeNotFound):
            self.service.verify_challenge(respond(self.priv, "ab" * 32, self.clock()))

    def test_expired_challenge(self):
        c = self.service.create_challenge(self.pub)
        self.clock.advance(61)
        with self.assertRaises(ChallengeExpired):
            self.service.verify_challenge(respond(self.priv, c.challenge, self.clock()))
        # an expired challenge is gone afterwards
        with self.assertRaises(ChallengeNotFound):
            self.service.verify_challenge(respond(self.priv, c.challenge, self.clock()))

    def test_challenge_valid_at_expiry_instant(self):
        c = self.service.create_challenge(self.pub)
        self.clock.advance(60)
        self.assertEqual(self.service.verify_challenge(respond(self.priv, c.challenge, self.clock())), self.pub)

    def test_challenge_issued_for_other_pubkey(self):
        _, other_pub = generate_keypair()
        c = self.service.create_challenge(other_pub)
        with self.assertRaises(ChallengeMismatch):
            self.service.verify_challenge(respond(self.priv, c.challenge, self.clock()))

    def test_bad_signature_does_not_consume(self):
        c = self.service.create_challenge(self.pub)
        event = respond(self.priv, c.challenge, self.clock())
        bad = dict(event, content="tampered")
        with self.assertRaises(InvalidSignature):
            self.service.verify_challenge(bad)
        self.assertEqual(self.service.verify_challenge(event), self.pub)

    def test_purge_removes_only_expired(self):
        store = self.service.store
        old = self.service.create_challenge(self.pub)
        self.clock.advance(61)
        fresh = self.service.create_challenge(self.pub)   # purges on issue
        self.assertIsNone(store.get(old.challenge))
        self.assertIsNotNone(store.get(fresh.challenge))


class TestMemoryChallenges(ChallengeFlowMixin, unittest.TestCase):

    def make_store(self):
        return MemoryChallengeStore()

    def test_concurrent_consumption_is_at_most_once(self):
        c = self.service.create_challenge(self.pub)
        event = respond(self.priv, c.challenge, self.clock())
        results = []

        def attempt():
            try:
                results.append(self.service.verify_challenge(event))
            except ChallengeNotFound:
                results.append(None)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual([r for r in results if r is not None], [self.pub])


class TestSQLiteChallenges(ChallengeFlowMixin, unittest.TestCase):

    def make_store(self):
        return SQLiteChallengeStore()

    def setUp(self):
        self.db = TempDatabase()
        self.db.start()
        super().setUp()

    def tearDown(self):
        self.db.stop()

    def test_delete_reports_single_winner(self):
        c = self.service.create_challenge(self.pub)
        self.assertTrue(self.service.store.delete(c.challenge))
        self.assertFalse(self.service.store.delete(c.challenge))


class TestMakeStore(unittest.TestCase):

    def test_backends(self):
        self.assertIsInstance(make_store("memory"), MemoryChallengeStore)
        self.assertIsInstance(make_store("sqlite"), SQLiteChallengeStore)
        with self.assertRaises(ValueError):
            make_store("redis")


# ─────────────────────────────────────────────
class TestEnrollment(unittest.TestCase):

    def setUp(self):
        self.db = TempDatabase()
        self.db.start()
        self.clock = FakeClock()
        self.service = ChallengeService(MemoryChallengeStore(), ttl=60, clock=self.clock)
        self.priv, self.pub = generate_keypair()

    def tearDown(self):
        self.db.stop()

    def _confirm(self, enrollment, content=""):
        return sign_event(
            self.priv, kind=ENROLL_EVENT_KIND, content=content,
            tags=[["action", "enroll"], ["challenge", enrollment.challenge]],
            created_at=self.clock(),
        ).to_dict()

    def test_enrollment_creates_profile(self):
        pending = self.service.start_enrollment(self.pub)
        self.assertEqual(pending.status, "pending")
        done = self.service.verify_enrollment(self._confirm(pending, json.dumps({"name": "alice"})))
        self.assertEqual(done.status, "completed")
        profile = self.service.get_profile(self.pub)
        self.assertEqual(profile.name, "alice")

    def test_enrollment_without_start(self):
        event = sign_event(self.priv, kind=ENROLL_EVENT_KIND, tags=[["action", "enroll"]],
                           created_at=self.clock()).to_dict()
        with self.assertRaises(EnrollmentNotFound):
            self.service.verify_enrollment(event)

    def test_enrollment_completes_once(self):
        pending = self.service.start_enrollment(self.pub)
        event = self._confirm(pending)
        self.service.verify_enrollment(event)
        with self.assertRaises(EnrollmentNotFound):
            self.service.verify_enrollment(event)

    def test_enrollment_expires(self):
        pending = self.service.start_enrollment(self.pub)
        self.clock.advance(61)
        with self.assertRaises(ChallengeExpired):
            self.service.verify_enrollment(self._confirm(pending))

    def test_enrollment_challenge_mismatch(self):
        pending = self.service.start_enrollment(self.pub)
        pending.challenge = "ff" * 32
        with self.assertRaises(ChallengeMismatch):
            self.service.verify_enrollment(self._confirm(pending))

    def test_enrollment_requires_challenge_tag(self):
        pending = self.service.start_enrollment(self.pub)
        untagged = sign_event(self.priv, kind=ENROLL_EVENT_KIND, tags=[["action", "enroll"]],
                              created_at=self.clock()).to_dict()
        with self.assertRaises(InvalidEvent):
            self.service.verify_enrollment(untagged)
        # still pending, the tagged confirmation goes through
        self.assertEqual(self.service.verify_enrollment(self._confirm(pending)).status, "completed")

    def test_unknown_profile(self):
        self.assertIsNone(self.service.get_profile(self.pub))


# ─────────────────────────────────────────────
if __name__ == "__main__":
    unittest.main(verbosity=2)
