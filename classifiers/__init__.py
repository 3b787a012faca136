"""
Proof-of-Life — Action Classifiers Package
===========================================
One classifier variant per challenge type. `build_classifier()` returns a
fresh instance, so every attempt starts from zero state.
"""
from typing import Optional

from pol_classifier import ActionClassifier
from pol_types import Challenge
from .threshold import MouthOpenClassifier, HeadTurnClassifier, HeadTiltClassifier
from .expression import SmileClassifier
from .edge_count import BlinkClassifier, NodClassifier
from .eyebrow import EyebrowRaiseClassifier

CLASSIFIER_FACTORIES = {
    "BLINK_TWICE": lambda p: BlinkClassifier(p),
    "SMILE": lambda p: SmileClassifier(p),
    "TURN_LEFT": lambda p: HeadTurnClassifier("left", p),
    "TURN_RIGHT": lambda p: HeadTurnClassifier("right", p),
    "OPEN_MOUTH": lambda p: MouthOpenClassifier(p),
    "RAISE_EYEBROWS": lambda p: EyebrowRaiseClassifier(p),
    "NOD": lambda p: NodClassifier(p),
    "LOOK_UP": lambda p: HeadTiltClassifier("up", p),
    "LOOK_DOWN": lambda p: HeadTiltClassifier("down", p),
}


def build_classifier(challenge_type: str, params: Optional[dict] = None) -> ActionClassifier:
    """Fresh classifier for `challenge_type`."""
    try:
        factory = CLASSIFIER_FACTORIES[challenge_type]
    except KeyError:
        raise ValueError(f"No classifier for challenge type: {challenge_type}") from None
    return factory(params)


def classifier_for(challenge: Challenge, overrides: Optional[dict] = None) -> ActionClassifier:
    """Fresh classifier for an issued challenge."""
    return build_classifier(challenge.type, overrides)


__all__ = [
    "ActionClassifier", "build_classifier", "classifier_for", "CLASSIFIER_FACTORIES",
    "MouthOpenClassifier", "HeadTurnClassifier", "HeadTiltClassifier",
    "SmileClassifier", "BlinkClassifier", "NodClassifier", "EyebrowRaiseClassifier",
]
