"""
Proof-of-Life — Anti-Replay Guard
==================================
Rejects replayed, stale, future-dated and automated verifications.

Checks (independent, order-insensitive):
  1. validate_challenge: single-use id, age <= max_challenge_age_ms, not in future
  2. check_timing:       attempt lasted >= min_verification_ms
  3. check_rate_limit:   < max_attempts_per_hour in a rolling window per identity

The used-id set and attempt windows are shared by every session in the
process; all mutations happen under one lock.
"""

import math
import threading
from collections import defaultdict, deque
from typing import Callable, Optional

from pol_types import Challenge
from pol_utils_core import merge_config, now_ms, setup_logger

_log = setup_logger("ReplayGuard")


class AntiReplayGuard:
    """Process-wide replay/rate-limit state, passed by reference to sessions."""

    def __init__(self, config: Optional[dict] = None,
                 clock: Callable[[], int] = now_ms):
        cfg = merge_config({"security": config or {}})["security"]
        self.max_challenge_age_ms = int(cfg["max_challenge_age_ms"])
        self.min_verification_ms = int(cfg["min_verification_ms"])
        self.max_attempts = int(cfg["max_attempts_per_hour"])
        self.window_ms = int(cfg["rate_window_ms"])
        self.clock = clock

        self._used_ids: set = set()
        self._attempts: dict = defaultdict(deque)  # identity -> deque[ts]
        self._lock = threading.Lock()

    # ── Challenge freshness / single use ─────────────────────

    def validate_challenge(self, challenge: Challenge) -> dict:
        """Return {"valid": bool, "errors": [...]}; every failing reason is listed."""
        errors = []
        with self._lock:
            replayed = challenge.id in self._used_ids

        if replayed:
            errors.append("Challenge ID already used. Possible replay attack.")

        age = self.clock() - challenge.issued_at
        if age > self.max_challenge_age_ms:
            errors.append("Challenge expired.")
        if age < 0:
            errors.append("Challenge timestamp is in the future. Clock manipulation detected.")

        if errors:
            _log.warning("Challenge %s rejected: %s", challenge.id, " ".join(errors))
        return {"valid": not errors, "errors": errors, "age_ms": age}

    def mark_used(self, challenge_id: str) -> None:
        with self._lock:
            self._used_ids.add(challenge_id)

    def is_replay(self, challenge_id: str) -> bool:
        with self._lock:
            return challenge_id in self._used_ids

    def clear_used_challenges(self) -> None:
        with self._lock:
            self._used_ids.clear()

    # ── Human timing floor ───────────────────────────────────

    def check_timing(self, start_time: int, end_time: int) -> dict:
        duration = end_time - start_time
        if duration < self.min_verification_ms:
            return {
                "valid": False,
                "reason": "Verification completed too quickly. Possible automation.",
                "duration": duration,
            }
        return {"valid": True, "duration": duration}

    # ── Rolling-window rate limit ────────────────────────────

    def _prune(self, attempts: deque, now: int) -> None:
        cutoff = now - self.window_ms
        while attempts and attempts[0] <= cutoff:
            attempts.popleft()

    def check_rate_limit(self, identity: str) -> dict:
        now = self.clock()
        with self._lock:
            attempts = self._attempts[identity]
            self._prune(attempts, now)
            recent = len(attempts)
            oldest = attempts[0] if attempts else None

        if recent >= self.max_attempts:
            next_in = math.ceil((oldest + self.window_ms - now) / 1000)
            _log.warning("Rate limit hit for %s (%d attempts)", identity, recent)
            return {
                "allowed": False,
                "reason": f"Rate limit exceeded. Maximum {self.max_attempts} verifications per hour.",
                "remaining_attempts": 0,
                "next_available_in": next_in,
            }
        return {"allowed": True, "remaining_attempts": self.max_attempts - recent}

    def record_attempt(self, identity: str) -> None:
        now = self.clock()
        with self._lock:
            attempts = self._attempts[identity]
            self._prune(attempts, now)
            attempts.append(now)
