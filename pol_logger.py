"""
Proof-of-Life — Structured Audit Logger
========================================
Logs every verification decision, rejection and error in
structured JSONL format for post-mortem analysis.

Key Features:
  - JSONL (Newline Delimited JSON) format
  - Thread-safe logging (concurrent sessions share one file)
  - Levels: AUDIT, WARN, ERROR, SYSTEM
  - NumPy-aware serialization (descriptors, landmark arrays)
"""

import json
import os
import sys
import threading
import time
from typing import Any, Dict, Optional
import numpy as np

from pol_utils_core import CONFIG, setup_logger

_console = setup_logger("PolAudit")


class PolJSONEncoder(json.JSONEncoder):
    """Handles NumPy types for JSON serialization."""
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)


class PolLogger:
    """
    Structured event log shared by every coordinator in the process.
    """

    def __init__(self, log_dir: str = "logs", filename: str = "pol_audit.jsonl"):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)

        self.log_path = os.path.join(self.log_dir, filename)
        self._file = open(self.log_path, "a", encoding="utf-8")
        self._lock = threading.Lock()

        self.log({
            "event": "system_startup",
            "python_version": sys.version,
            "platform": sys.platform,
            "token_validity_ms": CONFIG["tokens"]["validity_ms"],
            "max_attempts_per_hour": CONFIG["security"]["max_attempts_per_hour"],
        }, level="SYSTEM")

    def log(self, data: Dict[str, Any], level: str = "AUDIT", event: str = None):
        """Append log entry."""
        entry = {
            "timestamp": time.time(),
            "level": level,
            "event": event or data.get("event", "unknown"),
            "data": data
        }

        line = json.dumps(entry, cls=PolJSONEncoder) + "\n"

        with self._lock:
            if self._file.closed:
                return
            self._file.write(line)
            self._file.flush()

    def log_decision(self, identity: str, session_id: Optional[str], outcome, **extra):
        """Record the terminal verdict of one attempt.

        Passing attempts are AUDIT entries; every refusal (timeout,
        rejection, abort, low score) is a WARN so it shows up in triage.
        """
        score = outcome.score_result
        token = outcome.token
        data = {
            "identity": identity,
            "session_id": session_id,
            "passed": outcome.passed,
            "kind": outcome.kind,
            "reason": outcome.reason,
            "score": score.score if score is not None else None,
            "level": score.level if score is not None else None,
            "token_id": token.token_id if token is not None else None,
            "expires_at": token.expires_at if token is not None else None,
        }
        data.update(extra)
        self.log(data, level="AUDIT" if outcome.passed else "WARN",
                 event="session_decision")

    def warn(self, message: str, context: Dict = None):
        """Log structured warning."""
        _console.warning(message)
        self.log({"message": message, "context": context}, level="WARN", event="system_warning")

    def error(self, message: str, exception: Exception = None, **kwargs):
        """Log structured error with exception details."""
        _console.error(message, **kwargs)
        err_details = str(exception) if exception else None
        self.log({"message": message, "exception": err_details}, level="ERROR", event="system_error")

    def close(self):
        """Clean shutdown."""
        with self._lock:
            if self._file.closed:
                return
        self.log({"message": "Logger shutting down"}, level="SYSTEM", event="system_shutdown")
        with self._lock:
            self._file.close()


_logger = None
_logger_lock = threading.Lock()


def get_logger(log_dir: str = None) -> PolLogger:
    """Process-wide PolLogger singleton."""
    global _logger
    with _logger_lock:
        if _logger is None:
            _logger = PolLogger(log_dir or CONFIG["logging"]["log_dir"])
        return _logger
