"""
Proof-of-Life — Challenge Generator
====================================
Issues "Simon Says" liveness challenges to defeat replay attacks.
Each challenge is drawn uniformly from the configured pool with the OS
CSPRNG and stamped with a uuid4 id, issue time and expiry.

Challenges Supported:
  - BLINK_TWICE:    two distinct blinks (EAR edge counting)
  - SMILE:          sustained smile (expression duration)
  - TURN_LEFT/RIGHT: head yaw past threshold
  - OPEN_MOUTH:     mouth aspect ratio past threshold
  - RAISE_EYEBROWS: brow lift relative to calibrated baseline
  - NOD:            two down/up head movements
  - LOOK_UP/DOWN:   head pitch past threshold
"""

import random
import secrets
import uuid
from typing import Callable, List, Optional

from pol_types import Challenge
from pol_utils_core import CONFIG, now_ms, setup_logger

_log = setup_logger("Challenge")

CHALLENGE_POOL = [
    {
        "type": "BLINK_TWICE",
        "instruction": "Blink Twice",
        "icon": "👁️",
        "difficulty": "easy",
        "params": {"detection_method": "eye_aspect_ratio", "required_count": 2},
    },
    {
        "type": "SMILE",
        "instruction": "Smile",
        "icon": "😊",
        "difficulty": "easy",
        "params": {"detection_method": "expression", "duration": 1.5},
    },
    {
        "type": "TURN_LEFT",
        "instruction": "Turn Head Left",
        "icon": "👈",
        "difficulty": "medium",
        "params": {"detection_method": "head_pose", "direction": "left"},
    },
    {
        "type": "TURN_RIGHT",
        "instruction": "Turn Head Right",
        "icon": "👉",
        "difficulty": "medium",
        "params": {"detection_method": "head_pose", "direction": "right"},
    },
    {
        "type": "OPEN_MOUTH",
        "instruction": "Open Your Mouth",
        "icon": "😮",
        "difficulty": "easy",
        "params": {"detection_method": "mouth_opening"},
    },
    {
        "type": "RAISE_EYEBROWS",
        "instruction": "Raise Eyebrows",
        "icon": "😲",
        "difficulty": "medium",
        "params": {"detection_method": "eyebrow_movement"},
    },
    {
        "type": "NOD",
        "instruction": "Nod Your Head",
        "icon": "🔄",
        "difficulty": "medium",
        "params": {"detection_method": "vertical_head_movement", "required_count": 2},
    },
    {
        "type": "LOOK_UP",
        "instruction": "Look Up",
        "icon": "👆",
        "difficulty": "medium",
        "params": {"detection_method": "head_pose", "direction": "up"},
    },
    {
        "type": "LOOK_DOWN",
        "instruction": "Look Down",
        "icon": "👇",
        "difficulty": "medium",
        "params": {"detection_method": "head_pose", "direction": "down"},
    },
]


def _secure_index(n: int) -> int:
    """Uniform index in [0, n) from the OS CSPRNG, PRNG if none is available."""
    try:
        return secrets.randbelow(n)
    except NotImplementedError:
        _log.warning("OS randomness unavailable, falling back to PRNG")
        return random.randrange(n)


class ChallengeGenerator:
    """Selects one liveness action per attempt."""

    def __init__(self, pool: Optional[List[str]] = None,
                 clock: Callable[[], int] = now_ms):
        enabled = pool if pool is not None else CONFIG["challenges"]["pool"]
        self.pool = [c for c in CHALLENGE_POOL if c["type"] in enabled]
        if not self.pool:
            raise ValueError(f"No known challenge types in pool: {enabled}")
        self.clock = clock

    def generate(self, timer_seconds: float = None) -> Challenge:
        """Issue a new random challenge expiring `timer_seconds` from now."""
        if timer_seconds is None:
            timer_seconds = CONFIG["challenges"]["timer_seconds"]
        selected = self.pool[_secure_index(len(self.pool))]
        now = self.clock()

        challenge = Challenge(
            id=str(uuid.uuid4()),
            type=selected["type"],
            instruction=selected["instruction"],
            icon=selected["icon"],
            difficulty=selected["difficulty"],
            params=dict(selected["params"]),
            issued_at=now,
            expiry_time=now + int(timer_seconds * 1000),
            timer_seconds=timer_seconds,
        )
        _log.debug("Issued challenge %s (%s)", challenge.id, challenge.type)
        return challenge

    def get_challenge_pool(self) -> List[dict]:
        return [
            {"type": c["type"], "instruction": c["instruction"],
             "icon": c["icon"], "difficulty": c["difficulty"]}
            for c in self.pool
        ]
