"""
Proof-of-Life — Eyebrow Raise Classifier (calibrated relative)
===============================================================
The first `calibration_frames` frames only collect the subject's resting
brow gap; the baseline is their median (robust to a frame where the
subject already moved). After calibration:

  raise     = current_gap - baseline
  threshold = max(relative_threshold * baseline, absolute_threshold)

Gaps are normalized by inter-ocular distance, so the threshold is
scale-invariant. The raise must exceed threshold for `hold_frames`
consecutive frames.
"""

from typing import Dict, Any, Optional

import numpy as np

from pol_classifier import ActionClassifier
from pol_utils_core import CONFIG, brow_raise_ratio, clamp


class EyebrowRaiseClassifier(ActionClassifier):
    challenge_type = "RAISE_EYEBROWS"

    def __init__(self, params: Optional[dict] = None):
        cfg = {**CONFIG["classifiers"]["eyebrow"], **(params or {})}
        self.calibration_frames = int(cfg["calibration_frames"])
        self.relative_threshold = float(cfg["relative_threshold"])
        self.absolute_threshold = float(cfg["absolute_threshold"])
        self.hold_frames = int(cfg["hold_frames"])
        super().__init__(cfg)

    def reset(self) -> None:
        self.samples: list[float] = []
        self.baseline: Optional[float] = None
        self.streak = 0

    @property
    def calibrated(self) -> bool:
        return self.baseline is not None

    def idle_result(self) -> Dict[str, Any]:
        return {"detected": False, "confidence": 0.0, "calibrating": not self.calibrated}

    def _consume(self, signal, delta_time) -> Dict[str, Any]:
        gap = brow_raise_ratio(signal.landmarks)

        if not self.calibrated:
            self.samples.append(gap)
            if len(self.samples) >= self.calibration_frames:
                self.baseline = float(np.median(self.samples))
            return {
                "detected": False,
                "confidence": 0.0,
                "calibrating": True,
                "calibration_progress": len(self.samples) / self.calibration_frames,
            }

        raise_amount = gap - self.baseline
        threshold = max(self.relative_threshold * self.baseline, self.absolute_threshold)

        if raise_amount > threshold:
            self.streak += 1
        else:
            self.streak = 0

        return {
            "detected": self.streak >= self.hold_frames,
            "confidence": round(clamp(raise_amount / threshold), 2),
            "calibrating": False,
            "raise": round(raise_amount, 4),
            "threshold": round(threshold, 4),
            "streak": self.streak,
        }
