"""
Proof-of-Life — Action Classifier Interface
============================================
Defines the `ActionClassifier` base class, one subclass per challenge type.

Coordinator Integration:
  - A fresh classifier is built (or reset) for every challenge attempt
  - Each frame, the coordinator feeds the FrameSignal to `consume()`
  - Returns a result dictionary with at least `detected` and `confidence`
  - The first `detected=True` ends the challenge phase
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from pol_errors import ClassifierTransient
from pol_types import FrameSignal


class ActionClassifier(ABC):
    """
    Abstract Base Class for all challenge classifiers.
    Owns private temporal/calibration state scoped to one attempt.
    """

    @property
    @abstractmethod
    def challenge_type(self) -> str:
        """Challenge type handled (e.g., 'OPEN_MOUTH')."""
        pass

    def __init__(self, params: Optional[dict] = None):
        self.params = dict(params or {})
        self.reset()

    @abstractmethod
    def reset(self) -> None:
        """Return to a fresh zero state for a new attempt."""
        pass

    @abstractmethod
    def _consume(self, signal: FrameSignal, delta_time: float) -> Dict[str, Any]:
        """Classify one present FrameSignal."""
        pass

    def idle_result(self) -> Dict[str, Any]:
        """Result reported for a frame with no face."""
        return {"detected": False, "confidence": 0.0}

    def consume(self, signal: Optional[FrameSignal], delta_time: float = None) -> Dict[str, Any]:
        """
        Feed one frame.

        Args:
            signal: FrameSignal, or None when no face was found
            delta_time: seconds since the previous frame (duration classifiers)

        Returns:
            {"detected": bool, "confidence": float (0.0 to 1.0), ...diagnostics}

        Raises:
            ClassifierTransient: the frame's geometry was unusable.
        """
        if signal is None:
            return self.idle_result()
        try:
            return self._consume(signal, delta_time)
        except (ValueError, KeyError, IndexError, ZeroDivisionError,
                TypeError, AttributeError) as e:
            raise ClassifierTransient(
                f"{self.challenge_type}: unusable frame geometry ({e})"
            ) from e
