"""
Proof-of-Life — Edge Counting Classifiers (with debounce)
==========================================================
Repeated-gesture challenges (blink twice, nod twice).

A boolean "active" state (eyes closed / head down) must hold for
`min_active_frames` consecutive frames before it counts; single-frame
noise never does. One gesture is counted on the first release frame
after a debounced active run.

confidence = min(count / required_count, 1)
"""

from typing import Dict, Any, Optional

from pol_classifier import ActionClassifier
from pol_types import FrameSignal
from pol_utils_core import CONFIG, clamp, compute_ear, estimate_head_pose


class EdgeCountingClassifier(ActionClassifier):
    """Shared debounce/count state machine."""

    def __init__(self, min_active_frames: int, required_count: int,
                 params: Optional[dict] = None):
        self.min_active_frames = int(min_active_frames)
        self.required_count = int(required_count)
        super().__init__(params)

    def reset(self) -> None:
        self.count = 0
        self.active_frames = 0
        self.in_gesture = False

    def idle_result(self) -> Dict[str, Any]:
        return {"detected": False, "confidence": 0.0, "count": self.count}

    def _measure(self, signal: FrameSignal) -> tuple[float, Dict[str, Any]]:
        raise NotImplementedError

    def _is_active(self, value: float) -> bool:
        raise NotImplementedError

    def _is_released(self, value: float) -> bool:
        return not self._is_active(value)

    def _consume(self, signal, delta_time) -> Dict[str, Any]:
        value, diagnostics = self._measure(signal)

        if self._is_active(value):
            self.active_frames += 1
            if self.active_frames >= self.min_active_frames:
                self.in_gesture = True
        elif self._is_released(value):
            if self.in_gesture:
                self.count += 1
                self.in_gesture = False
            self.active_frames = 0
        elif not self.in_gesture:
            # active run broken before it was debounced
            self.active_frames = 0

        result = {
            "detected": self.count >= self.required_count,
            "confidence": clamp(self.count / self.required_count),
            "count": self.count,
        }
        result.update(diagnostics)
        return result


class BlinkClassifier(EdgeCountingClassifier):
    """Average EAR of both eyes below threshold = eyes closed."""
    challenge_type = "BLINK_TWICE"

    def __init__(self, params: Optional[dict] = None):
        cfg = {**CONFIG["classifiers"]["blink"], **(params or {})}
        self.ear_threshold = float(cfg["ear_threshold"])
        super().__init__(cfg["min_closed_frames"], cfg["required_count"], cfg)

    def _measure(self, signal):
        ear = (compute_ear(signal.landmarks["left_eye"]) +
               compute_ear(signal.landmarks["right_eye"])) / 2.0
        return ear, {"ear": round(ear, 3)}

    def _is_active(self, value):
        return value < self.ear_threshold


class NodClassifier(EdgeCountingClassifier):
    """Pitch above down_threshold = head down; below up_threshold = back up.

    Pitch between the two thresholds neither extends nor ends a nod.
    """
    challenge_type = "NOD"

    def __init__(self, params: Optional[dict] = None):
        cfg = {**CONFIG["classifiers"]["nod"], **(params or {})}
        self.down_threshold = float(cfg["down_threshold"])
        self.up_threshold = float(cfg["up_threshold"])
        super().__init__(cfg["min_down_frames"], cfg["required_count"], cfg)

    def _measure(self, signal):
        _, pitch = estimate_head_pose(signal.landmarks)
        return pitch, {"pitch": round(pitch, 1)}

    def _is_active(self, value):
        return value > self.down_threshold

    def _is_released(self, value):
        return value < self.up_threshold
