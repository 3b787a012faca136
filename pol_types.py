from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Tuple, Any
import numpy as np

# 68-point model index ranges for each named landmark group
LANDMARK_GROUPS_68 = {
    "jaw": (0, 17),
    "left_eyebrow": (17, 22),
    "right_eyebrow": (22, 27),
    "nose": (27, 36),
    "left_eye": (36, 42),
    "right_eye": (42, 48),
    "mouth": (48, 68),
}

TOKEN_ACTIVE = "active"
TOKEN_EXPIRED = "expired"
TOKEN_REVOKED = "revoked"


@dataclass(frozen=True)
class Challenge:
    """An issued liveness challenge. Immutable once issued."""
    id: str
    type: str
    instruction: str
    issued_at: int                # epoch ms
    expiry_time: int              # epoch ms
    timer_seconds: float
    icon: str = ""
    difficulty: str = "easy"
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FrameSignal:
    """Per-frame output of the FaceSignalProvider. Never persisted."""
    bbox: Tuple[float, float, float, float]
    detection_score: float
    landmarks: Dict[str, np.ndarray]
    expressions: Dict[str, float] = field(default_factory=dict)
    descriptor: Optional[np.ndarray] = None

    @classmethod
    def from_dict(cls, data: dict) -> "FrameSignal":
        """Build a FrameSignal from a recorded JSON frame.

        `landmarks` may be a dict of named groups or a flat 68-point list.
        """
        raw = data.get("landmarks") or {}
        if isinstance(raw, dict):
            landmarks = {
                name: np.asarray(points, dtype=np.float64).reshape(-1, 2)
                for name, points in raw.items()
            }
        else:
            flat = np.asarray(raw, dtype=np.float64).reshape(-1, 2)
            if flat.shape[0] != 68:
                raise ValueError(f"Expected 68 landmarks, got {flat.shape[0]}")
            landmarks = {
                name: flat[start:end]
                for name, (start, end) in LANDMARK_GROUPS_68.items()
            }

        descriptor = data.get("descriptor")
        return cls(
            bbox=tuple(data.get("bbox", (0, 0, 0, 0))),
            detection_score=float(data.get("detection_score", data.get("score", 0.0))),
            landmarks=landmarks,
            expressions={k: float(v) for k, v in (data.get("expressions") or {}).items()},
            descriptor=None if descriptor is None else np.asarray(descriptor, dtype=np.float64),
        )

    def to_dict(self) -> dict:
        return {
            "bbox": list(self.bbox),
            "detection_score": self.detection_score,
            "landmarks": {k: np.asarray(v).tolist() for k, v in self.landmarks.items()},
            "expressions": dict(self.expressions),
            "descriptor": None if self.descriptor is None else np.asarray(self.descriptor).tolist(),
        }


@dataclass(frozen=True)
class ScoreResult:
    """Fused confidence verdict."""
    score: float                  # 0-100, 2 decimals
    level: str                    # excellent | good | acceptable | fail
    passed: bool
    breakdown: Optional[Dict[str, Dict[str, Any]]] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class VerificationSession:
    """Append-only history entry, one per completed or timed-out attempt."""
    session_id: str
    identity: str
    challenge_type: Optional[str]
    challenge_id: Optional[str]
    success: bool
    confidence_score: float
    match_score: Optional[float] = None
    liveness_score: Optional[float] = None
    duration_seconds: float = 0.0
    failure_reason: Optional[str] = None
    timestamp: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Token:
    """Proof-of-life token. Only `status` and `revoked_at` change after issue."""
    token_id: str
    identity: str
    issued_at: int
    expires_at: int
    confidence_score: float
    session_id: str
    challenge_type: str
    status: str = TOKEN_ACTIVE
    version: str = "1.0"
    revoked_at: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Token":
        return cls(**data)


@dataclass
class SessionOutcome:
    """Terminal outcome of one verification attempt."""
    phase: str
    score_result: Optional[ScoreResult] = None
    token: Optional[Token] = None
    reason: Optional[str] = None
    kind: Optional[str] = None
    record: Optional[VerificationSession] = None

    @property
    def passed(self) -> bool:
        return bool(self.score_result and self.score_result.passed and self.token)
