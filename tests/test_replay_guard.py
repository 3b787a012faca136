"""
Proof-of-Life — Anti-Replay Guard Test Suite
=============================================
Challenge freshness and single use, human timing floor and the rolling
one-hour rate limit, all against an injected clock.
"""

import os
import sys
import threading
import unittest

# Add project root
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pol_challenge import ChallengeGenerator
from pol_replay_guard import AntiReplayGuard
from signal_factory import FakeClock

HOUR_MS = 3_600_000


class TestChallengeValidation(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.guard = AntiReplayGuard(clock=self.clock)
        self.challenge = ChallengeGenerator(clock=self.clock).generate(10)

    def test_fresh_challenge_valid(self):
        result = self.guard.validate_challenge(self.challenge)
        self.assertTrue(result["valid"])
        self.assertEqual(result["errors"], [])

    def test_used_challenge_is_replay(self):
        self.guard.mark_used(self.challenge.id)
        result = self.guard.validate_challenge(self.challenge)
        self.assertFalse(result["valid"])
        self.assertIn("Challenge ID already used. Possible replay attack.", result["errors"])
        self.assertTrue(self.guard.is_replay(self.challenge.id))

    def test_age_boundary(self):
        self.clock.advance(20_000)
        self.assertTrue(self.guard.validate_challenge(self.challenge)["valid"])
        self.clock.advance(1)
        result = self.guard.validate_challenge(self.challenge)
        self.assertFalse(result["valid"])
        self.assertEqual(result["errors"], ["Challenge expired."])

    def test_future_timestamp_rejected(self):
        self.clock.advance(-5)
        result = self.guard.validate_challenge(self.challenge)
        self.assertFalse(result["valid"])
        self.assertIn("Clock manipulation", result["errors"][0])

    def test_all_reasons_reported(self):
        self.guard.mark_used(self.challenge.id)
        self.clock.advance(30_000)
        result = self.guard.validate_challenge(self.challenge)
        self.assertEqual(len(result["errors"]), 2)

    def test_clear_used_challenges(self):
        self.guard.mark_used(self.challenge.id)
        self.guard.clear_used_challenges()
        self.assertFalse(self.guard.is_replay(self.challenge.id))


class TestTiming(unittest.TestCase):

    def setUp(self):
        self.guard = AntiReplayGuard(clock=FakeClock())

    def test_too_fast(self):
        result = self.guard.check_timing(1000, 2999)
        self.assertFalse(result["valid"])
        self.assertEqual(result["duration"], 1999)
        self.assertIn("too quickly", result["reason"])

    def test_minimum_is_inclusive(self):
        result = self.guard.check_timing(1000, 3000)
        self.assertTrue(result["valid"])
        self.assertEqual(result["duration"], 2000)


class TestRateLimit(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.guard = AntiReplayGuard(clock=self.clock)

    def _attempts(self, n, step_ms=1000):
        for _ in range(n):
            self.guard.record_attempt("alice")
            self.clock.advance(step_ms)

    def test_first_attempt_allowed(self):
        result = self.guard.check_rate_limit("alice")
        self.assertEqual(result, {"allowed": True, "remaining_attempts": 10})

    def test_eleventh_attempt_rejected(self):
        self._attempts(9)
        self.assertEqual(self.guard.check_rate_limit("alice")["remaining_attempts"], 1)
        self._attempts(1)

        result = self.guard.check_rate_limit("alice")
        self.assertFalse(result["allowed"])
        self.assertEqual(result["remaining_attempts"], 0)
        self.assertIn("Maximum 10", result["reason"])
        # oldest attempt at t0, now = t0 + 10s
        self.assertEqual(result["next_available_in"], 3590)

    def test_window_rolls(self):
        self._attempts(10, step_ms=0)
        self.clock.advance(HOUR_MS - 1)
        self.assertFalse(self.guard.check_rate_limit("alice")["allowed"])
        self.clock.advance(1)
        self.assertTrue(self.guard.check_rate_limit("alice")["allowed"])

    def test_identities_are_independent(self):
        self._attempts(10)
        self.assertTrue(self.guard.check_rate_limit("bob")["allowed"])

    def test_concurrent_record_attempt(self):
        threads = [threading.Thread(target=self.guard.record_attempt, args=("alice",))
                   for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertFalse(self.guard.check_rate_limit("alice")["allowed"])

    def test_config_override(self):
        guard = AntiReplayGuard(config={"max_attempts_per_hour": 2}, clock=self.clock)
        guard.record_attempt("alice")
        guard.record_attempt("alice")
        self.assertFalse(guard.check_rate_limit("alice")["allowed"])


if __name__ == "__main__":
    unittest.main()
