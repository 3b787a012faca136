"""
Proof-of-Life — Crypto Audit Trail
===================================
Tamper-evident log of every security decision the engine makes:
token issue/expiry/revocation, session verdicts, replay and rate-limit
rejections.

Features:
  - SHA-256 chaining (Entry N includes Hash(Entry N-1)).
  - Chain state recovered from the last line on restart.
  - Verification tool to detect tampering.
"""

import hashlib
import json
import os
import logging
import threading
from datetime import datetime, timezone

GENESIS_HASH = "0" * 64


def _entry_hash(entry: dict) -> str:
    # Canonical JSON string (sorted keys)
    json_str = json.dumps(entry, sort_keys=True)
    return hashlib.sha256(json_str.encode()).hexdigest()


class CryptoAuditTrail:
    def __init__(self, log_file="logs/pol_audit_chain.jsonl"):
        self.log_file = log_file
        self.last_hash = GENESIS_HASH
        self._lock = threading.Lock()
        self._init_chain()

    def _init_chain(self):
        """Read last entry to recover chain state, or write the genesis block."""
        if not os.path.exists(self.log_file):
            genesis = {
                "event": "GENESIS",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "prev_hash": GENESIS_HASH,
            }
            genesis["hash"] = _entry_hash(genesis)
            self.last_hash = genesis["hash"]
            self._write_entry(genesis)
            return

        with open(self.log_file, "r", encoding="utf-8") as f:
            lines = [line for line in f if line.strip()]
        if lines:
            try:
                self.last_hash = json.loads(lines[-1]).get("hash", self.last_hash)
            except json.JSONDecodeError as e:
                logging.error(f"Audit chain corrupt: {e}")
                raise

    def add_entry(self, data: dict) -> str:
        """Add a new entry linked to the previous one."""
        with self._lock:
            entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "data": data,
                "prev_hash": self.last_hash,
            }
            entry["hash"] = _entry_hash(entry)
            self.last_hash = entry["hash"]
            self._write_entry(entry)
            return entry["hash"]

    def record_session(self, record) -> str:
        """Chain a VerificationSession verdict."""
        return self.add_entry({"event": "session_completed", **record.to_dict()})

    def record_rejection(self, identity: str, kind: str, reason: str) -> str:
        """Chain a fail-closed rejection (replay, rate limit, timing...)."""
        return self.add_entry({
            "event": "session_rejected",
            "identity": identity,
            "kind": kind,
            "reason": reason,
        })

    def _write_entry(self, entry):
        directory = os.path.dirname(self.log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")

    def verify_chain(self) -> bool:
        """Verify integrity of the entire chain."""
        if not os.path.exists(self.log_file):
            return True

        prev_hash = GENESIS_HASH

        with open(self.log_file, "r", encoding="utf-8") as f:
            for i, line in enumerate(f):
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logging.error(f"Chain corrupt at line {i+1}: Invalid JSON")
                    return False

                stored_hash = entry.pop("hash", None)

                # 1. Check Link
                if entry.get("prev_hash") != prev_hash:
                    logging.error(f"Chain broken at line {i+1}: Link mismatch")
                    return False

                # 2. Check Integrity
                if _entry_hash(entry) != stored_hash:
                    logging.error(f"Chain corrupted at line {i+1}: Hash mismatch")
                    return False

                prev_hash = stored_hash

        return True
