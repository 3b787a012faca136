"""
Proof-of-Life — User Record Store & Template Vault Tests
========================================================
Encrypted enrollment, history ordering, aggregate stats and the
AES-256-GCM template vault.
"""

import os
import sys
import unittest

import numpy as np

# Add project root
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pol_crypto import TemplateVault
from pol_store import InMemoryUserRecordStore
from pol_types import VerificationSession
from signal_factory import FakeClock


def _session(identity, success, ts, score=90.0, sid=None):
    return VerificationSession(
        session_id=sid or f"VER-{ts}-TEST",
        identity=identity,
        challenge_type="SMILE",
        challenge_id=f"c-{ts}",
        success=success,
        confidence_score=score if success else 0.0,
        duration_seconds=3.0,
        failure_reason=None if success else "timeout",
        timestamp=ts,
    )


class TestTemplateVault(unittest.TestCase):

    def setUp(self):
        self.vault = TemplateVault()
        self.descriptor = np.random.RandomState(7).rand(128)

    def test_seal_unseal(self):
        blob = self.vault.seal(self.descriptor, "alice")
        self.assertNotIn(self.descriptor.tobytes(), blob)
        np.testing.assert_array_equal(self.vault.unseal(blob, "alice"), self.descriptor)

    def test_identity_bound(self):
        blob = self.vault.seal(self.descriptor, "alice")
        self.assertIsNone(self.vault.unseal(blob, "mallory"))

    def test_tamper_detected(self):
        blob = bytearray(self.vault.seal(self.descriptor, "alice"))
        blob[-1] ^= 0xFF
        self.assertIsNone(self.vault.unseal(bytes(blob), "alice"))

    def test_nonce_differs_per_seal(self):
        a = self.vault.seal(self.descriptor, "alice")
        b = self.vault.seal(self.descriptor, "alice")
        self.assertNotEqual(a[:12], b[:12])

    def test_wiped_vault_refuses(self):
        blob = self.vault.seal(self.descriptor, "alice")
        self.vault.secure_wipe()
        with self.assertRaises(RuntimeError):
            self.vault.unseal(blob, "alice")


class TestUserRecordStore(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryUserRecordStore(clock=self.clock)
        self.descriptor = np.linspace(0, 1, 128)
        self.store.enroll("alice", self.descriptor, {"quality_score": 0.9, "frames_used": 5})

    def tearDown(self):
        self.store.close()

    def test_enrollment(self):
        self.assertTrue(self.store.is_enrolled("alice"))
        self.assertFalse(self.store.is_enrolled("bob"))
        np.testing.assert_allclose(self.store.get_template("alice"), self.descriptor)
        self.assertIsNone(self.store.get_template("bob"))

        user = self.store.get_user("alice")
        self.assertNotIn("sealed_template", user)
        self.assertEqual(user["descriptor_length"], 128)
        self.assertEqual(user["encoding_metadata"]["frames_used"], 5)

    def test_empty_descriptor_rejected(self):
        with self.assertRaises(ValueError):
            self.store.enroll("bob", [])

    def test_delete_user(self):
        self.assertTrue(self.store.delete_user("alice"))
        self.assertFalse(self.store.is_enrolled("alice"))
        self.assertFalse(self.store.delete_user("alice"))

    def test_update_stats(self):
        self.store.update_stats("alice", True)
        self.clock.advance(1000)
        self.store.update_stats("alice", False)
        user = self.store.get_user("alice")
        self.assertEqual(user["total_verifications"], 2)
        self.assertEqual(user["failed_attempts"], 1)
        self.assertEqual(user["last_verification_timestamp"], self.clock())

    def test_update_stats_unknown_user(self):
        with self.assertRaises(KeyError):
            self.store.update_stats("bob", True)

    def test_history_most_recent_first(self):
        t = self.clock()
        self.store.append_session(_session("alice", True, t))
        self.store.append_session(_session("alice", False, t + 2000))
        self.store.append_session(_session("bob", True, t + 1000))
        self.store.append_session(_session("alice", True, t + 1000))

        history = self.store.get_history("alice")
        self.assertEqual([s.timestamp for s in history], [t + 2000, t + 1000, t])
        self.assertEqual(len(self.store.get_history("alice", limit=2)), 2)

    def test_history_ties_keep_latest_insert_first(self):
        t = self.clock()
        self.store.append_session(_session("alice", True, t, sid="first"))
        self.store.append_session(_session("alice", True, t, sid="second"))
        self.assertEqual([s.session_id for s in self.store.get_history("alice")],
                         ["second", "first"])

    def test_stats(self):
        t = self.clock()
        self.store.append_session(_session("alice", True, t, score=90.0))
        self.store.append_session(_session("alice", True, t + 1, score=80.0))
        self.store.append_session(_session("alice", False, t + 2))

        stats = self.store.get_stats("alice")
        self.assertEqual(stats["total"], 3)
        self.assertEqual(stats["successful"], 2)
        self.assertEqual(stats["failed"], 1)
        self.assertEqual(stats["success_rate"], 66.7)
        self.assertEqual(stats["average_confidence"], 85.0)
        self.assertEqual(stats["last_verification"].timestamp, t + 2)

    def test_stats_without_history(self):
        stats = self.store.get_stats("alice")
        self.assertEqual(stats["total"], 0)
        self.assertEqual(stats["success_rate"], 0.0)
        self.assertIsNone(stats["last_verification"])

    def test_security_events(self):
        self.store.log_security_event({"identity": "alice", "event_type": "replay_rejected"})
        self.store.log_security_event({"identity": "bob", "event_type": "rate_limited"})
        events = self.store.get_security_events("alice")
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["timestamp"], self.clock())
        self.assertEqual(len(self.store.get_security_events()), 2)


if __name__ == "__main__":
    unittest.main()
