"""
Proof-of-Life — Error Taxonomy
===============================
Every fail-closed condition carries a `kind` tag so the coordinator can
report it through `on_error(kind, message)` without string matching.

  InputUnavailable     no face signal for a frame (recoverable)
  ClassifierTransient  one frame's geometry was unusable (recoverable)
  EnrollmentMissing    identity has no enrolled template (pre-session)
  RateLimited          too many attempts in the window (pre-session)
  ReplayRejected       duplicate, expired or future-dated challenge
  TimingRejected       attempt finished faster than a human can
"""

from typing import List, Optional


class LivenessError(Exception):
    """Base class for all liveness engine failures."""
    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InputUnavailable(LivenessError):
    kind = "input_unavailable"


class ClassifierTransient(LivenessError):
    kind = "classifier_transient"


class EnrollmentMissing(LivenessError):
    kind = "enrollment_missing"


class RateLimited(LivenessError):
    kind = "rate_limited"

    def __init__(self, message: str = "", retry_after: int = 0):
        super().__init__(message)
        self.retry_after = retry_after


class ReplayRejected(LivenessError):
    kind = "replay_rejected"

    def __init__(self, message: str = "", errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class TimingRejected(LivenessError):
    kind = "timing_rejected"

    def __init__(self, message: str = "", duration_ms: int = 0):
        super().__init__(message)
        self.duration_ms = duration_ms
