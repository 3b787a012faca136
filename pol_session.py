"""
Proof-of-Life — Verification Session Coordinator
=================================================
The central orchestrator: the only component that talks to the external
collaborators (FaceSignalProvider, UserRecordStore).

State machine (one attempt):
  INIT -> CAMERA_READY -> CHALLENGE -> ANALYZING -> RESULT
                              |                      ^
                              +------(timeout)-------+
  retry(): RESULT -> INIT checks -> CAMERA_READY (fresh challenge + state)

Challenge phase runs two worker threads posting to one event queue:
  1. Frame worker: read frame -> detect -> classify -> progress
  2. Timer worker: fires "timeout" once the challenge countdown elapses
The coordinator thread takes the FIRST event, flips the phase and sets
the cancel event under the state lock; workers re-check cancel under the
same lock, so a late frame result can never touch state after the phase
has moved on.

Fail-closed conditions (enrollment missing, rate limited, replay, clock
skew, too fast, an uncompared identity under the "fail" match policy) end
the attempt with a reported reason and no token.
"""

import queue
import threading
import uuid
from typing import Callable, Optional

from classifiers import classifier_for
from pol_challenge import ChallengeGenerator
from pol_errors import (
    ClassifierTransient, EnrollmentMissing, InputUnavailable, LivenessError,
    RateLimited, ReplayRejected, TimingRejected,
)
from pol_logger import get_logger
from pol_replay_guard import AntiReplayGuard
from pol_scoring import ScoringEngine, zero_score
from pol_signals import FaceSignalProvider, FrameSource, NullFrameSource
from pol_store import UserRecordStore
from pol_tokens import TokenLedger
from pol_types import SessionOutcome, VerificationSession
from pol_utils_core import CONFIG, merge_config, now_ms, setup_logger

_log = setup_logger("Session")

INIT = "INIT"
CAMERA_READY = "CAMERA_READY"
CHALLENGE = "CHALLENGE"
ANALYZING = "ANALYZING"
RESULT = "RESULT"

FAILURE_TIMEOUT = "timeout"
FAILURE_LOW_CONFIDENCE = "low_confidence"
FAILURE_IDENTITY_UNVERIFIED = "identity_unverified"


def _new_session_id(now: int) -> str:
    return f"VER-{now}-{uuid.uuid4().hex[:4].upper()}"


class VerificationSessionCoordinator:
    """Drives one identity's verification attempts."""

    def __init__(
        self,
        identity: str,
        provider: FaceSignalProvider,
        store: UserRecordStore,
        guard: AntiReplayGuard,
        ledger: TokenLedger,
        frame_source: Optional[FrameSource] = None,
        generator: Optional[ChallengeGenerator] = None,
        scoring: Optional[ScoringEngine] = None,
        on_pass: Optional[Callable] = None,
        on_fail: Optional[Callable] = None,
        on_timeout: Optional[Callable] = None,
        on_error: Optional[Callable] = None,
        on_progress: Optional[Callable] = None,
        timer_seconds: Optional[float] = None,
        config: Optional[dict] = None,
        clock: Callable[[], int] = now_ms,
        logger=None,
        audit=None,
    ):
        if not identity:
            raise ValueError("identity is required")
        self.identity = identity
        self.provider = provider
        self.store = store
        self.guard = guard
        self.ledger = ledger
        self.frame_source = frame_source or NullFrameSource()
        self.generator = generator or ChallengeGenerator(clock=clock)
        self.scoring = scoring or ScoringEngine()
        self.clock = clock
        self.logger = logger or get_logger()
        self.audit = audit

        self.on_pass = on_pass
        self.on_fail = on_fail
        self.on_timeout = on_timeout
        self.on_error = on_error
        self.on_progress = on_progress

        cfg = merge_config({"session": config or {}})["session"]
        self.frame_interval = float(cfg["frame_interval"])
        self.timer_tick = float(cfg["timer_tick"])
        self.missing_template_policy = cfg["missing_template_policy"]
        self.neutral_match_score = float(cfg["neutral_match_score"])
        self.join_timeout = float(cfg["join_timeout"])
        if self.missing_template_policy not in ("fail", "neutral"):
            raise ValueError(f"Unknown missing_template_policy: {self.missing_template_policy}")
        self.timer_seconds = (
            timer_seconds if timer_seconds is not None
            else CONFIG["challenges"]["timer_seconds"]
        )

        self._state_lock = threading.Lock()
        self._phase = INIT
        self.outcome: Optional[SessionOutcome] = None
        self._template = None
        self._reset_attempt_state()

    # ── State ─────────────────────────────────────────────────

    @property
    def phase(self) -> str:
        with self._state_lock:
            return self._phase

    def _set_phase(self, phase: str) -> None:
        with self._state_lock:
            self._phase = phase
        _log.debug("%s -> %s", self.identity, phase)

    def _reset_attempt_state(self) -> None:
        """Discard everything scoped to one attempt."""
        self.session_id: Optional[str] = None
        self.challenge = None
        self.classifier = None
        self.session_start: Optional[int] = None
        self.progress = 0
        self.face_detected = False

    # ── Public API ────────────────────────────────────────────

    def run(self) -> SessionOutcome:
        """Run the first attempt to a terminal outcome."""
        if self.phase != INIT:
            raise RuntimeError("Session already started; use retry()")
        return self._run_attempt()

    def retry(self) -> SessionOutcome:
        """Start a fresh attempt after a terminal RESULT.

        Enrollment and rate limit are checked again: every attempt counts
        toward the rolling window.
        """
        if self.phase != RESULT:
            raise RuntimeError(f"Cannot retry from phase {self.phase}")
        self._reset_attempt_state()
        self.outcome = None
        self._set_phase(INIT)
        return self._run_attempt()

    def _run_attempt(self) -> SessionOutcome:
        try:
            self._init()
        except LivenessError as e:
            return self._reject_before_session(e)

        self._camera_ready()
        kind, payload = self._run_challenge()

        if kind == "timeout":
            return self._handle_timeout()
        if kind == "error":
            return self._abort(payload)

        result, signal = payload
        try:
            return self._analyze(result, signal)
        except LivenessError as e:
            return self._abort(e)

    # ── INIT ──────────────────────────────────────────────────

    def _init(self) -> None:
        if not self.store.is_enrolled(self.identity):
            raise EnrollmentMissing(
                "This identity is not registered. Please register first."
            )

        rate = self.guard.check_rate_limit(self.identity)
        if not rate["allowed"]:
            raise RateLimited(rate["reason"], retry_after=rate["next_available_in"])

        self._template = self.store.get_template(self.identity)
        self.logger.log({
            "identity": self.identity,
            "remaining_attempts": rate["remaining_attempts"],
            "has_template": self._template is not None,
        }, event="session_init")

    def _reject_before_session(self, error: LivenessError) -> SessionOutcome:
        """Pre-session rejection: no challenge, no history record."""
        self._set_phase(RESULT)
        _log.warning("Session for %s rejected: %s", self.identity, error.message)
        self._security_event(error)

        self.outcome = SessionOutcome(phase=RESULT, reason=error.message, kind=error.kind)
        self.logger.log_decision(self.identity, self.session_id, self.outcome,
                                 retry_after=getattr(error, "retry_after", None))
        self._emit(self.on_error, error.kind, error.message)
        return self.outcome

    # ── CAMERA_READY ──────────────────────────────────────────

    def _camera_ready(self) -> None:
        self._set_phase(CAMERA_READY)
        self.session_start = self.clock()
        self.session_id = _new_session_id(self.session_start)
        self.challenge = self.generator.generate(self.timer_seconds)
        self.classifier = classifier_for(self.challenge)
        self.progress = 0
        self.face_detected = False

        self.logger.log({
            "identity": self.identity,
            "session_id": self.session_id,
            "challenge_id": self.challenge.id,
            "challenge_type": self.challenge.type,
            "timer_seconds": self.challenge.timer_seconds,
        }, event="challenge_issued")
        self._set_phase(CHALLENGE)

    # ── CHALLENGE ─────────────────────────────────────────────

    def _run_challenge(self):
        """Block until the frame worker detects, the timer fires or a worker fails."""
        events: queue.Queue = queue.Queue()
        cancel = threading.Event()
        classifier = self.classifier
        deadline = self.challenge.expiry_time

        frame_thread = threading.Thread(
            target=self._frame_worker, args=(cancel, events, classifier),
            name=f"pol-frames-{self.session_id}", daemon=True,
        )
        timer_thread = threading.Thread(
            target=self._timer_worker, args=(cancel, events, deadline),
            name=f"pol-timer-{self.session_id}", daemon=True,
        )
        frame_thread.start()
        timer_thread.start()

        kind, payload = events.get()

        with self._state_lock:
            cancel.set()
            self._phase = ANALYZING if kind == "detected" else RESULT

        for t in (frame_thread, timer_thread):
            t.join(timeout=self.join_timeout)
            if t.is_alive():
                _log.warning("%s still running after cancel; its result will be discarded", t.name)
        return kind, payload

    def _frame_worker(self, cancel: threading.Event, events: queue.Queue, classifier) -> None:
        last_ts = None
        try:
            while not cancel.is_set():
                try:
                    signal = self.provider.detect(self.frame_source.read())
                except InputUnavailable as e:
                    _log.debug("No input this frame: %s", e.message)
                    signal = None
                now = self.clock()
                delta = None if last_ts is None else max(0, now - last_ts) / 1000.0
                last_ts = now

                result = None
                if signal is not None:
                    try:
                        result = classifier.consume(signal, delta)
                    except ClassifierTransient as e:
                        _log.debug("Frame skipped: %s", e.message)

                with self._state_lock:
                    if cancel.is_set():
                        return  # phase already moved on; discard this frame
                    self.face_detected = signal is not None
                    if result is not None:
                        self.progress = round(result.get("confidence", 0.0) * 100)
                    progress, face = self.progress, self.face_detected

                self._emit(self.on_progress, progress, face)

                if result is not None and result.get("detected"):
                    events.put(("detected", (result, signal)))
                    return

                cancel.wait(self.frame_interval)
        except Exception as e:
            _log.error("Frame worker failed: %s", e, exc_info=True)
            events.put(("error", e))

    def _timer_worker(self, cancel: threading.Event, events: queue.Queue, deadline: int) -> None:
        while not cancel.wait(self.timer_tick):
            if self.clock() >= deadline:
                events.put(("timeout", None))
                return

    # ── Timeout -> RESULT ─────────────────────────────────────

    def _handle_timeout(self) -> SessionOutcome:
        self._set_phase(RESULT)
        record = self._conclude(success=False, confidence_score=0.0,
                                failure_reason=FAILURE_TIMEOUT)
        score = zero_score()
        self.logger.log({
            "identity": self.identity,
            "session_id": self.session_id,
            "challenge_type": self.challenge.type,
            "last_progress": self.progress,
        }, event="challenge_timeout")

        self.outcome = SessionOutcome(phase=RESULT, score_result=score,
                                      reason=FAILURE_TIMEOUT, kind=FAILURE_TIMEOUT,
                                      record=record)
        self.logger.log_decision(self.identity, self.session_id, self.outcome)
        self._emit(self.on_timeout)
        return self.outcome

    # ── ANALYZING ─────────────────────────────────────────────

    def _match_score(self, signal):
        """Return (match score, whether identity could be compared)."""
        descriptor = signal.descriptor if signal is not None else None
        if self._template is not None and descriptor is not None:
            return self.provider.compare(self._template, descriptor), True

        if self.missing_template_policy == "neutral":
            self.logger.warn(
                "Identity match degraded: no template or descriptor, using neutral score",
                {"identity": self.identity, "score": self.neutral_match_score},
            )
            return self.neutral_match_score, False
        self.logger.warn(
            "Identity match unavailable: no template or descriptor",
            {"identity": self.identity},
        )
        return 0.0, False

    def _analyze(self, result: dict, signal) -> SessionOutcome:
        self._set_phase(ANALYZING)

        validation = self.guard.validate_challenge(self.challenge)
        if not validation["valid"]:
            raise ReplayRejected(" ".join(validation["errors"]), errors=validation["errors"])

        timing = self.guard.check_timing(self.session_start, self.clock())
        if not timing["valid"]:
            raise TimingRejected(timing["reason"], duration_ms=timing["duration"])

        match_score, compared = self._match_score(signal)
        face_confidence = signal.detection_score if signal is not None else 0.0
        challenge_accuracy = float(result.get("confidence", 0.0))
        liveness_score = face_confidence * 0.5 + challenge_accuracy * 0.5

        score = self.scoring.calculate_score(
            face_confidence=face_confidence,
            challenge_accuracy=challenge_accuracy,
            liveness_score=liveness_score,
            match_score=match_score,
        )

        # Under the "fail" policy an uncompared identity never earns a token.
        if not score.passed:
            reason = FAILURE_LOW_CONFIDENCE
        elif not compared and self.missing_template_policy == "fail":
            reason = FAILURE_IDENTITY_UNVERIFIED
        else:
            reason = None

        record = self._conclude(
            success=reason is None,
            confidence_score=score.score,
            match_score=match_score,
            liveness_score=liveness_score,
            failure_reason=reason,
        )

        token = None
        if reason is None:
            token = self.ledger.issue(self.identity, score.score,
                                      self.session_id, self.challenge.type)

        self._set_phase(RESULT)
        self.outcome = SessionOutcome(
            phase=RESULT, score_result=score, token=token, record=record,
            reason=reason,
        )
        self.logger.log_decision(self.identity, self.session_id, self.outcome)
        if reason is None:
            self._emit(self.on_pass, token, score)
        else:
            self._emit(self.on_fail, score, reason)
        return self.outcome

    def _abort(self, error: Exception) -> SessionOutcome:
        """Fail-closed end of a started attempt: recorded, no token."""
        kind = getattr(error, "kind", "error")
        message = getattr(error, "message", None) or str(error)
        self._set_phase(RESULT)
        _log.warning("Attempt %s aborted (%s): %s", self.session_id, kind, message)

        record = self._conclude(success=False, confidence_score=0.0, failure_reason=kind)
        self._security_event(error)

        score = zero_score()
        self.outcome = SessionOutcome(phase=RESULT, score_result=score, reason=message,
                                      kind=kind, record=record)
        self.logger.log_decision(self.identity, self.session_id, self.outcome)
        self._emit(self.on_error, kind, message)
        self._emit(self.on_fail, score, message)
        return self.outcome

    # ── Bookkeeping ───────────────────────────────────────────

    def _conclude(self, success: bool, confidence_score: float,
                  match_score: Optional[float] = None,
                  liveness_score: Optional[float] = None,
                  failure_reason: Optional[str] = None) -> VerificationSession:
        """Consume the challenge, count the attempt, persist the record."""
        now = self.clock()
        self.guard.mark_used(self.challenge.id)
        self.guard.record_attempt(self.identity)

        record = VerificationSession(
            session_id=self.session_id,
            identity=self.identity,
            challenge_type=self.challenge.type,
            challenge_id=self.challenge.id,
            success=success,
            confidence_score=confidence_score,
            match_score=match_score,
            liveness_score=liveness_score,
            duration_seconds=(now - self.session_start) / 1000.0,
            failure_reason=failure_reason,
            timestamp=now,
        )
        self.store.append_session(record)
        self.store.update_stats(self.identity, success)
        if self.audit is not None:
            self.audit.record_session(record)
        return record

    def _security_event(self, error) -> None:
        kind = getattr(error, "kind", "error")
        message = getattr(error, "message", None) or str(error)
        self.store.log_security_event({
            "identity": self.identity,
            "event_type": kind,
            "reason": message,
            "session_id": self.session_id,
        })
        if self.audit is not None:
            self.audit.record_rejection(self.identity, kind, message)

    def _emit(self, callback: Optional[Callable], *args) -> None:
        if callback is not None:
            callback(*args)
