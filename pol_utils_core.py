"""
Proof-of-Life — Shared Utility Module
======================================
Centralized configuration, logging and landmark geometry for every
liveness component.

Contains:
  A) Configuration loading (config.yaml merged over DEFAULT_CONFIG)
  B) Logger factory + millisecond clock
  C) Landmark geometry: EAR, MAR, head pose (yaw/pitch), brow raise ratio
  D) Identity descriptor comparison (Euclidean similarity)

Landmarks are supplied as named groups from the 68-point model:
  left_eye / right_eye       6 points each
  left_eyebrow / right_eyebrow 5 points each
  nose                       9 points (index 3 = nose tip)
  mouth                      20 points (0/6 corners, 14/18 inner lips)
  jaw                        17 points
"""

from __future__ import annotations

import copy
import logging
import math
import os
import time
from typing import Optional

import numpy as np
import yaml


# ===================================================================
# Configuration
# ===================================================================

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
_config_path = os.path.join(_SCRIPT_DIR, 'config.yaml')

DEFAULT_CONFIG: dict = {
    "security": {
        "max_challenge_age_ms": 20000,
        "min_verification_ms": 2000,
        "max_attempts_per_hour": 10,
        "rate_window_ms": 3600000,
    },
    "scoring": {
        "weights": {
            "face_detection": 0.25,
            "challenge_accuracy": 0.30,
            "liveness": 0.25,
            "face_match": 0.20,
        },
        "tiers": {"excellent": 95, "good": 85, "acceptable": 75},
    },
    "tokens": {"validity_ms": 300000, "prefix": "POL", "version": "1.0"},
    "challenges": {
        "timer_seconds": 10,
        "pool": [
            "BLINK_TWICE", "SMILE", "TURN_LEFT", "TURN_RIGHT", "OPEN_MOUTH",
            "RAISE_EYEBROWS", "NOD", "LOOK_UP", "LOOK_DOWN",
        ],
    },
    "classifiers": {
        "mouth_open": {"threshold": 0.35, "hold_frames": 3, "release_ratio": 0.85},
        "head_turn": {"angle_threshold": 20.0, "hold_frames": 3, "release_ratio": 0.85},
        "head_tilt": {
            "up_threshold": 12.0, "down_threshold": 15.0,
            "hold_frames": 3, "release_ratio": 0.85,
        },
        "smile": {"threshold": 0.6, "required_duration": 1.5, "frame_dt": 0.033},
        "blink": {"ear_threshold": 0.22, "min_closed_frames": 2, "required_count": 2},
        "nod": {
            "down_threshold": 8.0, "up_threshold": -5.0,
            "min_down_frames": 2, "required_count": 2,
        },
        "eyebrow": {
            "calibration_frames": 8, "relative_threshold": 0.15,
            "absolute_threshold": 0.02, "hold_frames": 3,
        },
    },
    "session": {
        "frame_interval": 0.033,
        "timer_tick": 0.05,
        "missing_template_policy": "fail",
        "neutral_match_score": 0.85,
        "join_timeout": 2.0,
    },
    "logging": {"log_dir": "logs", "level": "INFO"},
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[str] = None) -> dict:
    """Load config.yaml and merge it over the built-in defaults."""
    target = path or _config_path
    if not os.path.exists(target):
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {target}")
        return copy.deepcopy(DEFAULT_CONFIG)
    with open(target, 'r', encoding='utf-8') as f:
        return _deep_merge(DEFAULT_CONFIG, yaml.safe_load(f) or {})


def merge_config(overrides: Optional[dict] = None) -> dict:
    """Return CONFIG with per-instance overrides applied."""
    return _deep_merge(CONFIG, overrides or {})


CONFIG = load_config()


# ===================================================================
# Logging Setup
# ===================================================================

def setup_logger(name: str, level: int = None) -> logging.Logger:
    """Create a configured logger for Proof-of-Life modules."""
    if level is None:
        level = getattr(logging, str(CONFIG["logging"]["level"]).upper(), logging.INFO)
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '[%(asctime)s] %(name)-12s %(levelname)-7s %(message)s',
            datefmt='%H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


_log = setup_logger('PolUtils')


def now_ms() -> int:
    """Wall-clock epoch time in integer milliseconds."""
    return int(time.time() * 1000)


def round_half_up(value: float, digits: int = 2) -> float:
    """Round half up (0.125 -> 0.13), unlike Python's banker's round()."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# ===================================================================
# COMPONENT C: LANDMARK GEOMETRY
# ===================================================================

def _points(group) -> np.ndarray:
    """Normalize a landmark group into an (n, 2) float array.

    Supports numpy arrays, lists of (x, y) and objects with .x/.y.
    """
    if isinstance(group, np.ndarray):
        return group.astype(np.float64).reshape(-1, 2)
    pts = []
    for lm in group:
        if hasattr(lm, 'x') and hasattr(lm, 'y'):
            pts.append((float(lm.x), float(lm.y)))
        else:
            pts.append((float(lm[0]), float(lm[1])))
    return np.asarray(pts, dtype=np.float64).reshape(-1, 2)


def _dist(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(a - b))


def compute_ear(eye) -> float:
    """Eye Aspect Ratio for one eye.

    EAR = (|p2-p6| + |p3-p5|) / (2 * |p1-p4|)

    Raises:
        ValueError: fewer than 6 points or zero eye width.
    """
    p = _points(eye)
    if p.shape[0] < 6:
        raise ValueError(f"eye group needs 6 points, got {p.shape[0]}")
    h_dist = _dist(p[0], p[3])
    if h_dist < 1e-6:
        raise ValueError("degenerate eye geometry (zero width)")
    return (_dist(p[1], p[5]) + _dist(p[2], p[4])) / (2.0 * h_dist)


def compute_mar(mouth) -> float:
    """Mouth Aspect Ratio: inner-lip opening over corner-to-corner width.

    Uses inner lip points 14/18 when the 20-point mouth group is present,
    outer lip points 3/9 otherwise.
    """
    p = _points(mouth)
    if p.shape[0] < 10:
        raise ValueError(f"mouth group needs at least 10 points, got {p.shape[0]}")
    if p.shape[0] >= 19:
        top, bottom = p[14], p[18]
    else:
        top, bottom = p[3], p[9]
    width = _dist(p[0], p[6])
    if width < 1e-6:
        raise ValueError("degenerate mouth geometry (zero width)")
    return _dist(top, bottom) / width


def _eye_centres(landmarks: dict) -> tuple[np.ndarray, np.ndarray]:
    left = _points(landmarks["left_eye"])
    right = _points(landmarks["right_eye"])
    if left.size == 0 or right.size == 0:
        raise ValueError("empty eye landmark group")
    return left.mean(axis=0), right.mean(axis=0)


def estimate_head_pose(landmarks: dict) -> tuple[float, float]:
    """Estimate (yaw, pitch) in degrees from nose tip vs. eye centres.

    Yaw is negative when the head turns left, pitch positive when the head
    tilts down. A frontal face reads roughly (0, 0).
    """
    nose = _points(landmarks["nose"])
    if nose.shape[0] < 4:
        raise ValueError("nose group needs at least 4 points")
    nose_tip = nose[3]
    left_c, right_c = _eye_centres(landmarks)

    eye_mid = (left_c + right_c) / 2.0
    eye_distance = abs(float(right_c[0] - left_c[0]))
    if eye_distance < 1e-6:
        raise ValueError("degenerate head pose geometry (eyes overlap)")

    yaw = (nose_tip[0] - eye_mid[0]) / eye_distance * 60.0
    pitch = ((nose_tip[1] - eye_mid[1]) / eye_distance - 0.7) * 80.0
    return float(yaw), float(pitch)


def brow_raise_ratio(landmarks: dict) -> float:
    """Mean eye-to-brow vertical gap normalized by inter-ocular distance.

    Scale-invariant: moving closer to the camera does not change it.
    """
    left_brow = _points(landmarks["left_eyebrow"])
    right_brow = _points(landmarks["right_eyebrow"])
    left_c, right_c = _eye_centres(landmarks)

    interocular = _dist(left_c, right_c)
    if interocular < 1e-6 or left_brow.size == 0 or right_brow.size == 0:
        raise ValueError("degenerate eyebrow geometry")

    left_gap = left_c[1] - left_brow[:, 1].mean()
    right_gap = right_c[1] - right_brow[:, 1].mean()
    return float((left_gap + right_gap) / 2.0 / interocular)


# ===================================================================
# COMPONENT D: DESCRIPTOR COMPARISON
# ===================================================================

def compare_descriptors(encoding1, encoding2) -> float:
    """Similarity in [0, 1] between two identity descriptors.

    similarity = max(0, 1 - euclidean_distance), rounded to 3 decimals.
    Typical same-person distance is < 0.6.
    """
    if encoding1 is None or encoding2 is None:
        return 0.0
    a = np.asarray(encoding1, dtype=np.float64).ravel()
    b = np.asarray(encoding2, dtype=np.float64).ravel()
    if a.shape != b.shape:
        _log.warning("Descriptor length mismatch: %d vs %d", a.size, b.size)
        return 0.0
    distance = float(np.linalg.norm(a - b))
    return round_half_up(max(0.0, 1.0 - distance), 3)
