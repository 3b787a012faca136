"""
Proof-of-Life — User Record Store
==================================
Enrolled templates, verification history and aggregate stats.

`UserRecordStore` is the contract the coordinator depends on; durable
backends live outside this package. `InMemoryUserRecordStore` is the
reference implementation used by the CLI and tests.

Features:
  - Enrolled descriptors sealed with AES-256-GCM (pol_crypto.TemplateVault)
  - Append-only session history, most recent first on read
  - Security event log (replay / rate-limit / timing rejections)
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

import numpy as np

from pol_crypto import TemplateVault
from pol_types import VerificationSession
from pol_utils_core import now_ms, round_half_up, setup_logger

_log = setup_logger("UserStore")


class UserRecordStore(ABC):
    """Contract for template and history storage."""

    @abstractmethod
    def get_template(self, identity: str) -> Optional[np.ndarray]:
        pass

    @abstractmethod
    def is_enrolled(self, identity: str) -> bool:
        pass

    @abstractmethod
    def append_session(self, record: VerificationSession) -> None:
        pass

    @abstractmethod
    def update_stats(self, identity: str, success: bool) -> None:
        pass

    @abstractmethod
    def get_history(self, identity: str, limit: int = 10) -> List[VerificationSession]:
        pass

    @abstractmethod
    def get_stats(self, identity: str) -> dict:
        pass

    def log_security_event(self, event: dict) -> None:
        """Optional: record a rejection for later review."""
        pass


class InMemoryUserRecordStore(UserRecordStore):
    """Thread-safe in-process store with encrypted templates."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self.clock = clock
        self._vault = TemplateVault()
        self._users: Dict[str, dict] = {}
        self._sessions: List[VerificationSession] = []
        self._events: List[dict] = []
        self._lock = threading.Lock()

    # ── Users ─────────────────────────────────────────────────

    def enroll(self, identity: str, descriptor, metadata: Optional[dict] = None) -> dict:
        """Register (or re-register) an identity's descriptor."""
        descriptor = np.asarray(descriptor, dtype=np.float64).ravel()
        if descriptor.size == 0:
            raise ValueError("Cannot enroll an empty descriptor")
        metadata = metadata or {}
        now = self.clock()
        user = {
            "identity": identity,
            "sealed_template": self._vault.seal(descriptor, identity),
            "descriptor_length": int(descriptor.size),
            "encoding_metadata": {
                "quality_score": metadata.get("quality_score", 0),
                "frames_used": metadata.get("frames_used", 0),
            },
            "registration_timestamp": now,
            "last_verification_timestamp": None,
            "total_verifications": 0,
            "failed_attempts": 0,
            "status": "active",
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._users[identity] = user
        _log.info("Enrolled %s (%d-d descriptor)", identity, descriptor.size)
        return {k: v for k, v in user.items() if k != "sealed_template"}

    def get_user(self, identity: str) -> Optional[dict]:
        with self._lock:
            user = self._users.get(identity)
            if user is None:
                return None
            return {k: v for k, v in user.items() if k != "sealed_template"}

    def delete_user(self, identity: str) -> bool:
        with self._lock:
            return self._users.pop(identity, None) is not None

    def is_enrolled(self, identity: str) -> bool:
        with self._lock:
            user = self._users.get(identity)
            return user is not None and user["status"] == "active"

    def get_template(self, identity: str) -> Optional[np.ndarray]:
        with self._lock:
            user = self._users.get(identity)
            blob = user["sealed_template"] if user else None
        if blob is None:
            return None
        return self._vault.unseal(blob, identity)

    def update_stats(self, identity: str, success: bool) -> None:
        with self._lock:
            user = self._users.get(identity)
            if user is None:
                raise KeyError(f"User not found: {identity}")
            now = self.clock()
            user["last_verification_timestamp"] = now
            user["total_verifications"] += 1
            if not success:
                user["failed_attempts"] += 1
            user["updated_at"] = now

    # ── Sessions ──────────────────────────────────────────────

    def append_session(self, record: VerificationSession) -> None:
        with self._lock:
            self._sessions.append(record)

    def get_history(self, identity: str, limit: int = 10) -> List[VerificationSession]:
        with self._lock:
            # insertion order breaks timestamp ties
            records = [(i, s) for i, s in enumerate(self._sessions) if s.identity == identity]
        records.sort(key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
        return [s for _, s in records[:limit]]

    def get_stats(self, identity: str) -> dict:
        history = self.get_history(identity, 100)
        successful = [s for s in history if s.success]
        avg_confidence = (
            sum(s.confidence_score or 0 for s in successful) / len(successful)
            if successful else 0.0
        )
        return {
            "total": len(history),
            "successful": len(successful),
            "failed": len(history) - len(successful),
            "success_rate": round_half_up(len(successful) / len(history) * 100, 1) if history else 0.0,
            "average_confidence": round_half_up(avg_confidence, 1),
            "last_verification": history[0] if history else None,
        }

    # ── Security events ───────────────────────────────────────

    def log_security_event(self, event: dict) -> None:
        with self._lock:
            self._events.append({**event, "timestamp": self.clock()})

    def get_security_events(self, identity: Optional[str] = None) -> List[dict]:
        with self._lock:
            return [e for e in self._events
                    if identity is None or e.get("identity") == identity]

    def close(self) -> None:
        self._vault.secure_wipe()
