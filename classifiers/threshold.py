"""
Proof-of-Life — Threshold Classifiers (with hysteresis)
========================================================
Single-pose challenges: a normalized geometric ratio must stay above a
fixed threshold for `hold_frames` consecutive frames.

Hysteresis band:
  ratio >  threshold                  -> streak += 1
  ratio <  threshold * release_ratio  -> streak = 0
  otherwise                           -> streak unchanged

confidence = min(ratio / threshold, 1) (clamped at 0 for opposite poses)
"""

from typing import Dict, Any, Optional

from pol_classifier import ActionClassifier
from pol_types import FrameSignal
from pol_utils_core import CONFIG, clamp, compute_mar, estimate_head_pose


class ThresholdClassifier(ActionClassifier):
    """Shared hysteresis logic. Subclasses provide `_ratio()`."""

    config_key = ""

    def __init__(self, params: Optional[dict] = None):
        cfg = {**CONFIG["classifiers"][self.config_key], **(params or {})}
        self.hold_frames = int(cfg.get("hold_frames", 3))
        self.release_ratio = float(cfg.get("release_ratio", 0.85))
        self.threshold = self._threshold_from(cfg)
        super().__init__(cfg)

    def _threshold_from(self, cfg: dict) -> float:
        return float(cfg["threshold"])

    def reset(self) -> None:
        self.streak = 0
        self.frames = 0

    def _ratio(self, signal: FrameSignal) -> tuple[float, Dict[str, Any]]:
        raise NotImplementedError

    def _consume(self, signal: FrameSignal, delta_time: float) -> Dict[str, Any]:
        ratio, diagnostics = self._ratio(signal)
        self.frames += 1

        if ratio > self.threshold:
            self.streak += 1
        elif ratio < self.threshold * self.release_ratio:
            self.streak = 0

        result = {
            "detected": self.streak >= self.hold_frames,
            "confidence": round(clamp(ratio / self.threshold), 2),
            "streak": self.streak,
        }
        result.update(diagnostics)
        return result


class MouthOpenClassifier(ThresholdClassifier):
    challenge_type = "OPEN_MOUTH"
    config_key = "mouth_open"

    def _ratio(self, signal):
        mar = compute_mar(signal.landmarks["mouth"])
        return mar, {"mar": round(mar, 3)}


class HeadTurnClassifier(ThresholdClassifier):
    """Yaw past +/- angle_threshold. Negative yaw is a left turn."""
    config_key = "head_turn"

    def __init__(self, direction: str = "left", params: Optional[dict] = None):
        if direction not in ("left", "right"):
            raise ValueError(f"Unknown head turn direction: {direction}")
        self.direction = direction
        super().__init__(params)

    @property
    def challenge_type(self) -> str:
        return "TURN_LEFT" if self.direction == "left" else "TURN_RIGHT"

    def _threshold_from(self, cfg):
        return float(cfg["angle_threshold"])

    def _ratio(self, signal):
        yaw, _ = estimate_head_pose(signal.landmarks)
        ratio = -yaw if self.direction == "left" else yaw
        return ratio, {"angle": round(yaw, 1)}


class HeadTiltClassifier(ThresholdClassifier):
    """Pitch past the up/down threshold. Positive pitch is looking down."""
    config_key = "head_tilt"

    def __init__(self, direction: str = "up", params: Optional[dict] = None):
        if direction not in ("up", "down"):
            raise ValueError(f"Unknown head tilt direction: {direction}")
        self.direction = direction
        super().__init__(params)

    @property
    def challenge_type(self) -> str:
        return "LOOK_UP" if self.direction == "up" else "LOOK_DOWN"

    def _threshold_from(self, cfg):
        key = "up_threshold" if self.direction == "up" else "down_threshold"
        return float(cfg[key])

    def _ratio(self, signal):
        _, pitch = estimate_head_pose(signal.landmarks)
        ratio = -pitch if self.direction == "up" else pitch
        return ratio, {"pitch": round(pitch, 1)}
