"""
Proof-of-Life — Smile Classifier (duration accumulating)
=========================================================
The `happy` expression score must stay above threshold long enough.
Time above threshold accumulates; time below decays at half rate so a
brief flicker does not wipe progress.
"""

from typing import Dict, Any, Optional

from pol_classifier import ActionClassifier
from pol_utils_core import CONFIG, clamp, round_half_up


class SmileClassifier(ActionClassifier):
    challenge_type = "SMILE"

    def __init__(self, params: Optional[dict] = None):
        cfg = {**CONFIG["classifiers"]["smile"], **(params or {})}
        self.threshold = float(cfg["threshold"])
        self.required_duration = float(cfg["required_duration"])
        self.frame_dt = float(cfg["frame_dt"])
        super().__init__(cfg)

    def reset(self) -> None:
        self.smile_timer = 0.0

    def idle_result(self) -> Dict[str, Any]:
        return {"detected": False, "confidence": 0.0, "duration": self.smile_timer}

    def _consume(self, signal, delta_time) -> Dict[str, Any]:
        dt = self.frame_dt if delta_time is None else max(0.0, float(delta_time))
        happy = float(signal.expressions.get("happy", 0.0))

        if happy > self.threshold:
            self.smile_timer += dt
        else:
            self.smile_timer = max(0.0, self.smile_timer - dt * 0.5)

        return {
            "detected": self.smile_timer >= self.required_duration,
            "confidence": clamp(self.smile_timer / self.required_duration),
            "duration": round_half_up(self.smile_timer, 2),
            "happy_score": round_half_up(happy, 2),
        }
