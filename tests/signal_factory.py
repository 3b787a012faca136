"""
Synthetic FrameSignals for the test suite.

Builds named 68-point landmark groups that produce exact geometric
readings (EAR, MAR, yaw, pitch, brow gap), plus a controllable clock.
"""

import threading

import numpy as np

from pol_signals import RecordedSignalProvider
from pol_types import FrameSignal

LEFT_EYE_C = (30.0, 40.0)
RIGHT_EYE_C = (70.0, 40.0)
EYE_DISTANCE = 40.0
MOUTH_WIDTH = 30.0


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            return self.now

    def advance(self, ms: int) -> None:
        with self._lock:
            self.now += ms


def _eye(cx, cy, ear):
    # EAR = (2v + 2v) / (2 * 10) with v the half-opening
    v = ear * 5.0
    return np.array([
        (cx - 5, cy), (cx - 2, cy - v), (cx + 2, cy - v),
        (cx + 5, cy), (cx + 2, cy + v), (cx - 2, cy + v),
    ], dtype=np.float64)


def _mouth(mar):
    h = mar * MOUTH_WIDTH
    pts = np.tile([50.0, 80.0], (20, 1))
    pts[0] = (50.0 - MOUTH_WIDTH / 2, 80.0)
    pts[6] = (50.0 + MOUTH_WIDTH / 2, 80.0)
    pts[14] = (50.0, 80.0 - h / 2)
    pts[18] = (50.0, 80.0 + h / 2)
    return pts


def _nose(yaw, pitch):
    tip_x = 50.0 + yaw * EYE_DISTANCE / 60.0
    tip_y = 40.0 + EYE_DISTANCE * (pitch / 80.0 + 0.7)
    pts = np.tile([50.0, 50.0], (9, 1))
    pts[3] = (tip_x, tip_y)
    return pts


def _brow(cx, cy, gap):
    y = cy - gap * EYE_DISTANCE
    return np.array([(cx - 6 + 3 * i, y) for i in range(5)], dtype=np.float64)


def make_landmarks(ear=0.30, mar=0.10, yaw=0.0, pitch=0.0, brow=0.25):
    return {
        "jaw": np.tile([50.0, 90.0], (17, 1)),
        "left_eyebrow": _brow(*LEFT_EYE_C, brow),
        "right_eyebrow": _brow(*RIGHT_EYE_C, brow),
        "nose": _nose(yaw, pitch),
        "left_eye": _eye(*LEFT_EYE_C, ear),
        "right_eye": _eye(*RIGHT_EYE_C, ear),
        "mouth": _mouth(mar),
    }


def make_signal(score=0.9, happy=0.0, descriptor=None, **geometry) -> FrameSignal:
    return FrameSignal(
        bbox=(10.0, 10.0, 80.0, 100.0),
        detection_score=score,
        landmarks=make_landmarks(**geometry),
        expressions={"happy": happy, "neutral": 1.0 - happy},
        descriptor=descriptor,
    )


def template(dim: int = 128) -> np.ndarray:
    return np.zeros(dim, dtype=np.float64)


def descriptor_at(distance: float, dim: int = 128) -> np.ndarray:
    """Descriptor `distance` away from `template()`."""
    d = np.zeros(dim, dtype=np.float64)
    d[0] = distance
    return d


class ClockedProvider(RecordedSignalProvider):
    """Recorded provider that advances a FakeClock on every detect()."""

    def __init__(self, signals, clock: FakeClock, step_ms: int = 1000):
        super().__init__(signals)
        self.clock = clock
        self.step_ms = step_ms
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        self.clock.advance(self.step_ms)
        return super().detect(frame)
