"""
Proof-of-Life — Face Signal Provider Interface
===============================================
The neural step (frame -> detection score, landmarks, expressions,
descriptor) runs outside this engine. The coordinator only sees:

  FrameSource.read()            -> raw frame (camera, video, None)
  FaceSignalProvider.detect(f)  -> FrameSignal | None
  FaceSignalProvider.compare()  -> identity similarity in [0, 1]

`RecordedSignalProvider` replays FrameSignals captured earlier (JSONL,
one frame per line, `null` for a frame without a face). The CLI and the
test suite drive the engine with it.
"""

import json
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional

from pol_types import FrameSignal
from pol_utils_core import compare_descriptors


class FrameSource(ABC):
    """Supplies raw frames to the provider."""

    @abstractmethod
    def read(self) -> Any:
        """Next raw frame. Raise InputUnavailable when a frame is dropped."""

    def release(self):
        """Optional cleanup logic on shutdown."""
        pass


class NullFrameSource(FrameSource):
    """For providers that do not need pixels (recorded signals)."""

    def read(self) -> Any:
        return None


class FaceSignalProvider(ABC):

    @abstractmethod
    def detect(self, frame: Any) -> Optional[FrameSignal]:
        """
        Run face analysis on one frame.

        Returns:
            FrameSignal with detection_score in [0, 1], named landmark
            groups, expression scores and an identity descriptor; None
            when no face is found.
        """
        pass

    def compare(self, encoding1, encoding2) -> float:
        """similarity = max(0, 1 - euclidean_distance), 3 decimals."""
        return compare_descriptors(encoding1, encoding2)


class RecordedSignalProvider(FaceSignalProvider):
    """Replays a fixed sequence of FrameSignals, then reports no face."""

    def __init__(self, signals: Iterable[Optional[FrameSignal]]):
        self._signals: List[Optional[FrameSignal]] = list(signals)
        self._cursor = 0
        self._lock = threading.Lock()

    @classmethod
    def from_jsonl(cls, path: str) -> "RecordedSignalProvider":
        signals = []
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    raise ValueError(f"{path}:{line_no}: invalid JSON ({e})") from e
                signals.append(None if data is None else FrameSignal.from_dict(data))
        return cls(signals)

    @property
    def exhausted(self) -> bool:
        with self._lock:
            return self._cursor >= len(self._signals)

    def first_descriptor(self):
        """Descriptor of the first recorded face, for quick enrollment."""
        for signal in self._signals:
            if signal is not None and signal.descriptor is not None:
                return signal.descriptor
        return None

    def rewind(self) -> None:
        with self._lock:
            self._cursor = 0

    def detect(self, frame: Any) -> Optional[FrameSignal]:
        with self._lock:
            if self._cursor >= len(self._signals):
                return None
            signal = self._signals[self._cursor]
            self._cursor += 1
            return signal
