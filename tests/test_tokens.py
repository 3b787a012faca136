"""
Proof-of-Life — Token Ledger Test Suite
=======================================
Issue / validate / expire / revoke lifecycle, current-token pointer,
history ordering, remaining-time formatting and snapshot persistence.
"""

import os
import re
import sys
import unittest
from unittest.mock import MagicMock

import pytest

# Add project root
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pol_tokens import TokenLedger, format_token_id, remaining_time
from pol_types import TOKEN_ACTIVE, TOKEN_EXPIRED, TOKEN_REVOKED
from signal_factory import FakeClock

VALIDITY_MS = 300_000
TOKEN_ID_RE = re.compile(r"^POL-\d{8}-\d{6}-[0-9A-F]{4}$")


class TestTokenLifecycle(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.audit = MagicMock()
        self.ledger = TokenLedger(clock=self.clock, audit=self.audit)

    def _issue(self, identity="alice"):
        return self.ledger.issue(identity, 95.25, "VER-1-ABCD", "OPEN_MOUTH")

    def test_issue(self):
        token = self._issue()
        self.assertRegex(token.token_id, TOKEN_ID_RE)
        self.assertEqual(token.status, TOKEN_ACTIVE)
        self.assertEqual(token.expires_at, token.issued_at + VALIDITY_MS)
        self.assertEqual(token.version, "1.0")
        self.assertIs(self.ledger.get_active_token("alice"), token)
        self.audit.add_entry.assert_called_once()
        self.assertEqual(self.audit.add_entry.call_args[0][0]["event"], "token_issued")

    def test_validate_active(self):
        token = self._issue()
        self.clock.advance(60_500)
        result = self.ledger.validate(token.token_id)
        self.assertTrue(result["valid"])
        self.assertIs(result["token"], token)
        self.assertEqual(result["remaining_ms"], 239_500)
        self.assertEqual(result["remaining_seconds"], 240)

    def test_expiry_boundary(self):
        token = self._issue()
        self.clock.advance(VALIDITY_MS - 1)
        self.assertTrue(self.ledger.validate(token.token_id)["valid"])
        self.clock.advance(1)
        result = self.ledger.validate(token.token_id)
        self.assertEqual(result, {"valid": False, "reason": "Token has expired."})
        self.assertEqual(token.status, TOKEN_EXPIRED)
        self.assertIsNone(self.ledger.get_active_token("alice"))

    def test_expired_status_is_sticky(self):
        token = self._issue()
        self.clock.advance(VALIDITY_MS)
        self.ledger.validate(token.token_id)
        self.clock.advance(-VALIDITY_MS)
        self.assertFalse(self.ledger.validate(token.token_id)["valid"])

    def test_revoke(self):
        token = self._issue()
        self.assertTrue(self.ledger.revoke(token.token_id))
        self.assertEqual(token.status, TOKEN_REVOKED)
        self.assertEqual(token.revoked_at, self.clock())
        self.assertEqual(self.ledger.validate(token.token_id),
                         {"valid": False, "reason": "Token has been revoked."})
        self.assertIsNone(self.ledger.get_active_token("alice"))

    def test_revoked_stays_revoked_after_expiry(self):
        token = self._issue()
        self.ledger.revoke(token.token_id)
        self.clock.advance(VALIDITY_MS * 2)
        self.assertEqual(self.ledger.validate(token.token_id)["reason"],
                         "Token has been revoked.")

    def test_unknown_token(self):
        self.assertEqual(self.ledger.validate("POL-00000000-000000-0000"),
                         {"valid": False, "reason": "Token not found."})
        self.assertFalse(self.ledger.revoke("nope"))

    def test_new_token_supersedes_current(self):
        first = self._issue()
        self.clock.advance(1000)
        second = self._issue()
        self.assertIs(self.ledger.get_active_token("alice"), second)
        # the earlier token is still on record and still individually valid
        self.assertTrue(self.ledger.validate(first.token_id)["valid"])

    def test_unique_ids_within_same_second(self):
        ids = {self._issue().token_id for _ in range(50)}
        self.assertEqual(len(ids), 50)

    def test_history_newest_first_with_derived_expiry(self):
        first = self._issue()
        self.clock.advance(VALIDITY_MS)
        second = self._issue()
        self._issue("bob")

        history = self.ledger.get_history("alice")
        self.assertEqual([h["token_id"] for h in history], [second.token_id, first.token_id])
        self.assertEqual(history[1]["status"], TOKEN_EXPIRED)
        self.assertEqual(history[0]["status"], TOKEN_ACTIVE)
        self.assertEqual(len(self.ledger.get_history("alice", limit=1)), 1)

    def test_snapshot_restores_ledger(self):
        token = self._issue()
        revoked = self._issue("bob")
        self.ledger.revoke(revoked.token_id)

        restored = TokenLedger.from_snapshot(self.ledger.to_snapshot(), clock=self.clock)
        self.assertTrue(restored.validate(token.token_id)["valid"])
        self.assertEqual(restored.validate(revoked.token_id)["reason"], "Token has been revoked.")
        self.assertEqual(restored.get_active_token("alice").token_id, token.token_id)

    def test_save_and_load(self):
        import tempfile
        token = self._issue()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ledger.json")
            self.ledger.save(path)
            other = TokenLedger(clock=self.clock)
            other.load(path)
        self.assertTrue(other.validate(token.token_id)["valid"])


# ── remaining_time ────────────────────────────────────────────

def _token(clock):
    return TokenLedger(clock=clock).issue("alice", 90.0, "VER-1-ABCD", "SMILE")


def test_remaining_time_full_validity():
    clock = FakeClock()
    token = _token(clock)
    r = remaining_time(token, clock())
    assert r["formatted"] == "5:00"
    assert r["total_seconds"] == 300
    assert r["expired"] is False


def test_remaining_time_rounds_seconds_up():
    clock = FakeClock()
    token = _token(clock)
    clock.advance(VALIDITY_MS - 61_500)
    r = remaining_time(token, clock())
    assert (r["minutes"], r["seconds"]) == (1, 2)
    assert r["formatted"] == "1:02"


def test_remaining_time_expired():
    clock = FakeClock()
    token = _token(clock)
    clock.advance(VALIDITY_MS + 10)
    r = remaining_time(token, clock())
    assert r == {"minutes": 0, "seconds": 0, "total_seconds": 0,
                 "expired": True, "formatted": "0:00"}


def test_remaining_time_absent_token():
    assert remaining_time(None)["expired"] is True


def test_format_token_id_uses_utc():
    # 2024-01-02 03:04:05 UTC
    token_id = format_token_id(1704164645000)
    assert token_id.startswith("POL-20240102-030405-")
    assert TOKEN_ID_RE.match(token_id)


def test_custom_validity():
    clock = FakeClock()
    ledger = TokenLedger(config={"validity_ms": 1000}, clock=clock)
    token = ledger.issue("alice", 90.0, "s", "SMILE")
    clock.advance(1000)
    assert ledger.validate(token.token_id)["valid"] is False


if __name__ == "__main__":
    pytest.main([__file__])
