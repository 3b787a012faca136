"""
Proof-of-Life — Scoring Engine
===============================
Fuses four independent confidence signals into a 0-100 score, a tiered
verdict and a per-factor breakdown.

  score = 100 * (0.25 * face_confidence
               + 0.30 * challenge_accuracy
               + 0.25 * liveness_score
               + 0.20 * match_score)

Tiers are inclusive at the lower edge:
  >= 95 excellent (pass) | >= 85 good (pass) | >= 75 acceptable (pass) | fail

Pure functions only: identical inputs always give an identical result.
"""

from typing import Optional

from pol_types import ScoreResult
from pol_utils_core import CONFIG, round_half_up

WEIGHTS = dict(CONFIG["scoring"]["weights"])
THRESHOLDS = dict(CONFIG["scoring"]["tiers"])

FACTOR_LABELS = {
    "face_detection": "Face Detection",
    "challenge_accuracy": "Challenge Accuracy",
    "liveness": "Liveness Score",
    "face_match": "Identity Match",
}

LEVEL_LABELS = {
    "excellent": "Excellent — Very High Confidence",
    "good": "Good — Verification Passed",
    "acceptable": "Acceptable — Passed with Warning",
    "fail": "Failed — Insufficient Confidence",
}


def classify_level(score: float, thresholds: Optional[dict] = None) -> tuple[str, bool]:
    """Map a 0-100 score to (level, passed), evaluated top-down."""
    t = thresholds or THRESHOLDS
    if score >= t["excellent"]:
        return "excellent", True
    if score >= t["good"]:
        return "good", True
    if score >= t["acceptable"]:
        return "acceptable", True
    return "fail", False


def _factor(raw: float, key: str, weights: dict) -> dict:
    return {
        "raw": round_half_up(raw, 2),
        "weighted": round_half_up(raw * weights[key] * 100, 2),
        "weight": weights[key],
        "label": FACTOR_LABELS[key],
    }


def calculate_score(face_confidence: float = 0.0,
                    challenge_accuracy: float = 0.0,
                    liveness_score: float = 0.0,
                    match_score: float = 0.0,
                    weights: Optional[dict] = None,
                    thresholds: Optional[dict] = None) -> ScoreResult:
    """Weighted multi-factor score. Each input is expected in [0, 1]."""
    w = weights or WEIGHTS
    weighted = (
        face_confidence * w["face_detection"] +
        challenge_accuracy * w["challenge_accuracy"] +
        liveness_score * w["liveness"] +
        match_score * w["face_match"]
    )
    score = round_half_up(weighted * 100, 2)
    level, passed = classify_level(score, thresholds)

    return ScoreResult(
        score=score,
        level=level,
        passed=passed,
        breakdown={
            "face_detection": _factor(face_confidence, "face_detection", w),
            "challenge_accuracy": _factor(challenge_accuracy, "challenge_accuracy", w),
            "liveness": _factor(liveness_score, "liveness", w),
            "face_match": _factor(match_score, "face_match", w),
        },
    )


class ScoringEngine:
    """Holds a weight/tier configuration; scoring itself stays stateless."""

    def __init__(self, weights: Optional[dict] = None, thresholds: Optional[dict] = None):
        self.weights = dict(weights or WEIGHTS)
        self.thresholds = dict(thresholds or THRESHOLDS)
        if abs(sum(self.weights.values()) - 1.0) > 1e-9:
            raise ValueError(f"Score weights must sum to 1.0, got {self.weights}")

    def calculate_score(self, face_confidence=0.0, challenge_accuracy=0.0,
                        liveness_score=0.0, match_score=0.0) -> ScoreResult:
        return calculate_score(face_confidence, challenge_accuracy, liveness_score,
                               match_score, self.weights, self.thresholds)


def zero_score() -> ScoreResult:
    """Synthetic failing result for attempts that never reached scoring."""
    return ScoreResult(score=0.0, level="fail", passed=False, breakdown=None)


def get_score_label(level: str) -> str:
    return LEVEL_LABELS.get(level, "Unknown")
