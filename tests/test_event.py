"""
test_event.py - Unit Tests
Tests for: key derivation, NIP-01 serialization, event IDs, Schnorr signing & verification
"""

import sys
import os
import unittest
import hashlib

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from nostr_common.errors import InvalidEvent
from nostr_common.event import (
    NostrEvent,
    AUTH_EVENT_KIND,
    serialize_event,
    compute_event_id,
    sign_event,
    verify_signature,
    find_tag,
    has_tag,
)
from nostr_common.keys import generate_keypair, public_key_from_private, is_hex


# BIP-340 test vector 0
BIP340_SECKEY = "0000000000000000000000000000000000000000000000000000000000000003"
BIP340_PUBKEY = "f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9"


# ─────────────────────────────────────────────
class TestKeys(unittest.TestCase):

    def test_bip340_vector_pubkey(self):
        self.assertEqual(public_key_from_private(BIP340_SECKEY), BIP340_PUBKEY)

    def test_generated_keypair_is_consistent(self):
        priv, pub = generate_keypair()
        self.assertTrue(is_hex(priv, 64))
        self.assertTrue(is_hex(pub, 64))
        self.assertEqual(public_key_from_private(priv), pub)

    def test_keypairs_differ(self):
        self.assertNotEqual(generate_keypair()[0], generate_keypair()[0])

    def test_bad_private_key_rejected(self):
        with self.assertRaises(ValueError):
            public_key_from_private("zz" * 32)

    def test_is_hex(self):
        self.assertTrue(is_hex("ab" * 32, 64))
        self.assertFalse(is_hex("AB" * 32, 64))     # uppercase not canonical
        self.assertFalse(is_hex("ab" * 31, 64))
        self.assertFalse(is_hex(None, 64))


# ─────────────────────────────────────────────
class TestSerialization(unittest.TestCase):

    def test_compact_json_layout(self):
        raw = serialize_event("ab", 1700000000, 22242, [["challenge", "xyz"]], "hi")
        self.assertEqual(raw, b'[0,"ab",1700000000,22242,[["challenge","xyz"]],"hi"]')

    def test_non_ascii_kept_literal(self):
        raw = serialize_event("ab", 1, 1, [], "hé")
        self.assertEqual(raw, '[0,"ab",1,1,[],"hé"]'.encode("utf-8"))

    def test_event_id_is_sha256_of_serialization(self):
        event = {"pubkey": "ab", "created_at": 5, "kind": 1, "tags": [], "content": "x"}
        expected = hashlib.sha256(b'[0,"ab",5,1,[],"x"]').hexdigest()
        self.assertEqual(compute_event_id(event), expected)


# ─────────────────────────────────────────────
class TestSigning(unittest.TestCase):

    def setUp(self):
        self.priv, self.pub = generate_keypair()
        self.event = sign_event(
            self.priv, kind=AUTH_EVENT_KIND, content="",
            tags=[["challenge", "deadbeef"]], created_at=1700000000,
        )

    def test_signed_event_fields(self):
        self.assertEqual(self.event.pubkey, self.pub)
        self.assertEqual(self.event.id, compute_event_id(self.event))
        self.assertEqual(len(self.event.sig), 128)

    def test_valid_signature_verifies(self):
        self.assertTrue(verify_signature(self.event))
        self.assertTrue(verify_signature(self.event.to_dict()))

    def test_tampered_content_fails(self):
        d = self.event.to_dict()
        d["content"] = "tampered"
        self.assertFalse(verify_signature(d))

    def test_tampered_tags_fail(self):
        d = self.event.to_dict()
        d["tags"] = [["challenge", "cafebabe"]]
        self.assertFalse(verify_signature(d))

    def test_tampered_tags_with_recomputed_id_fail(self):
        """Recomputing the id after tampering still leaves a signature over the old id."""
        d = self.event.to_dict()
        d["tags"] = [["challenge", "cafebabe"]]
        d["id"] = compute_event_id(d)
        self.assertFalse(verify_signature(d))

    def test_signature_from_other_key_fails(self):
        other_priv, _ = generate_keypair()
        forged = sign_event(other_priv, kind=AUTH_EVENT_KIND, tags=[["challenge", "deadbeef"]],
                            created_at=1700000000)
        d = self.event.to_dict()
        d["sig"] = forged.sig
        self.assertFalse(verify_signature(d))

    def test_event_claiming_other_pubkey_fails(self):
        _, other_pub = generate_keypair()
        d = self.event.to_dict()
        d["pubkey"] = other_pub
        d["id"] = compute_event_id(d)
        self.assertFalse(verify_signature(d))

    def test_malformed_hex_returns_false(self):
        d = self.event.to_dict()
        d["sig"] = "zz" * 64
        self.assertFalse(verify_signature(d))

    def test_missing_field_returns_false(self):
        d = self.event.to_dict()
        del d["pubkey"]
        self.assertFalse(verify_signature(d))

    def test_find_tag(self):
        self.assertEqual(find_tag(self.event, "challenge"), "deadbeef")
        self.assertIsNone(find_tag(self.event, "p"))
        self.assertEqual(find_tag({"tags": [["p"], ["p", "x"]]}, "p"), "x")

    def test_has_tag_checks_every_tag(self):
        tags = {"tags": [["action", "login"], ["action", "enroll"]]}
        self.assertTrue(has_tag(tags, "action", "enroll"))
        self.assertFalse(has_tag(tags, "action", "delete"))
        self.assertTrue(has_tag(self.event, "challenge", "deadbeef"))


# ─────────────────────────────────────────────
class TestEventModel(unittest.TestCase):

    def test_from_dict_roundtrip(self):
        priv, _ = generate_keypair()
        event = sign_event(priv, kind=1, content="hello")
        self.assertEqual(NostrEvent.from_dict(event.to_dict()), event)

    def test_from_dict_missing_fields(self):
        with self.assertRaises(InvalidEvent) as ctx:
            NostrEvent.from_dict({"pubkey": "ab"})
        self.assertIn("sig", str(ctx.exception))

    def test_from_dict_rejects_non_object(self):
        with self.assertRaises(InvalidEvent):
            NostrEvent.from_dict(["not", "an", "event"])


# ─────────────────────────────────────────────
if __name__ == "__main__":
    unittest.main(verbosity=2)
