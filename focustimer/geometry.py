"""
============================================================
 Focus Timer — Geometry Metrics
 Pure, stateless measurements on one frame's landmarks:
 EAR, MAR, approximate head pose and gaze bucket.

 Regions follow the 68-point layout:
   jaw 0-16 · nose 27-35 · left eye 36-41 · right eye 42-47 ·
   mouth 48-67 (outer 48-59, inner 60-67)
 "Left" / "right" are image-side, as the detector reports them.
============================================================
"""

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from focustimer import config
from focustimer.errors import MalformedLandmarks

# ── 68-point region slices ──────────────────────────────────
JAW_68 = slice(0, 17)
NOSE_68 = slice(27, 36)
LEFT_EYE_68 = slice(36, 42)
RIGHT_EYE_68 = slice(42, 48)
MOUTH_68 = slice(48, 68)

# ── MediaPipe Face Mesh → 68-point equivalents ──────────────
MP_JAW = [162, 234, 93, 58, 172, 136, 149, 148, 152,
          377, 378, 365, 397, 288, 323, 454, 389]
MP_NOSE = [168, 6, 197, 1, 98, 97, 2, 326, 327]       # [3] = nose tip
MP_LEFT_EYE = [33, 160, 158, 133, 153, 144]            # p0 outer corner
MP_RIGHT_EYE = [362, 385, 387, 263, 373, 380]          # p3 outer corner
MP_MOUTH = [
    61, 40, 37, 0, 267, 270, 291, 321, 314, 17, 84, 91,  # outer lip
    78, 81, 13, 311, 308, 402, 14, 178,                  # inner lip
]

# Point roles inside each region
NOSE_TIP = 3
LEFT_EYE_OUTER = 0
RIGHT_EYE_OUTER = 3
MOUTH_LEFT_CORNER = 0
MOUTH_RIGHT_CORNER = 6
MOUTH_INNER_LEFT = 12
MOUTH_INNER_RIGHT = 16
MOUTH_VERTICAL_PAIRS = ((13, 19), (14, 18), (15, 17))


def _as_points(points) -> np.ndarray:
    if points is None:
        return np.empty((0, 2), dtype=np.float64)
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return np.empty((0, 2), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] < 2:
        raise MalformedLandmarks(f"expected (N, 2) points, got shape {arr.shape}")
    return arr[:, :2]


@dataclass(frozen=True)
class LandmarkSet:
    """One face's landmark regions for a single frame."""

    left_eye: np.ndarray
    right_eye: np.ndarray
    mouth: np.ndarray
    nose: np.ndarray
    jaw: np.ndarray

    def __post_init__(self):
        for name in ("left_eye", "right_eye", "mouth", "nose", "jaw"):
            arr = _as_points(getattr(self, name)).copy()
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @classmethod
    def from_points(cls, points) -> "LandmarkSet":
        """Build from a full 68-point array."""
        pts = _as_points(points)
        if len(pts) < 68:
            raise MalformedLandmarks(f"expected 68 points, got {len(pts)}")
        return cls(
            left_eye=pts[LEFT_EYE_68],
            right_eye=pts[RIGHT_EYE_68],
            mouth=pts[MOUTH_68],
            nose=pts[NOSE_68],
            jaw=pts[JAW_68],
        )

    @classmethod
    def from_mediapipe(cls, coords) -> "LandmarkSet":
        """Build from MediaPipe Face Mesh pixel coordinates (468+ points)."""
        pts = _as_points(coords)
        needed = max(MP_JAW + MP_NOSE + MP_LEFT_EYE + MP_RIGHT_EYE + MP_MOUTH)
        if len(pts) <= needed:
            raise MalformedLandmarks(
                f"expected at least {needed + 1} mesh points, got {len(pts)}"
            )
        return cls(
            left_eye=pts[MP_LEFT_EYE],
            right_eye=pts[MP_RIGHT_EYE],
            mouth=pts[MP_MOUTH],
            nose=pts[MP_NOSE],
            jaw=pts[MP_JAW],
        )


@dataclass(frozen=True)
class HeadPose:
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0

    @property
    def total_movement(self) -> float:
        return abs(self.yaw) + abs(self.pitch) + abs(self.roll)

    def to_dict(self) -> dict:
        return {
            "yaw": round(self.yaw, 2),
            "pitch": round(self.pitch, 2),
            "roll": round(self.roll, 2),
        }


class Gaze(str, Enum):
    CENTER = "center"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


def _dist(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(a - b))


def eye_aspect_ratio(eye) -> float:
    """6-point EAR; low = closed. Short contours give the fallback, never 0."""
    pts = _as_points(eye)
    if len(pts) < config.EYE_POINTS:
        return config.EAR_FALLBACK
    v1 = _dist(pts[1], pts[5])
    v2 = _dist(pts[2], pts[4])
    h_dist = _dist(pts[0], pts[3])
    if h_dist <= 0:
        return config.EAR_FALLBACK
    return (v1 + v2) / (2.0 * h_dist)


def mouth_aspect_ratio(mouth) -> float:
    """3 inner-lip verticals over the inner corner distance; 0 when too few points."""
    pts = _as_points(mouth)
    if len(pts) < config.MOUTH_MIN_POINTS:
        return config.MAR_FALLBACK
    h_dist = _dist(pts[MOUTH_INNER_LEFT], pts[MOUTH_INNER_RIGHT])
    if h_dist <= 0:
        return config.MAR_FALLBACK
    v_sum = sum(_dist(pts[a], pts[b]) for a, b in MOUTH_VERTICAL_PAIRS)
    return v_sum / (3.0 * h_dist)


def average_ear(landmarks: LandmarkSet) -> float:
    return (eye_aspect_ratio(landmarks.left_eye)
            + eye_aspect_ratio(landmarks.right_eye)) / 2.0


def estimate_head_pose(landmarks: LandmarkSet) -> HeadPose:
    """2D approximation of yaw / pitch / roll in degrees.

    yaw:   nose tip offset from the outer-corner midpoint, over eye width
    pitch: eye-to-nose drop against nose-to-mouth drop
    roll:  slope of the outer eye corner line
    """
    if (len(landmarks.nose) <= NOSE_TIP
            or len(landmarks.left_eye) <= LEFT_EYE_OUTER
            or len(landmarks.right_eye) <= RIGHT_EYE_OUTER
            or len(landmarks.mouth) <= MOUTH_RIGHT_CORNER):
        return HeadPose()

    nose_tip = landmarks.nose[NOSE_TIP]
    left_corner = landmarks.left_eye[LEFT_EYE_OUTER]
    right_corner = landmarks.right_eye[RIGHT_EYE_OUTER]
    mouth_y = (landmarks.mouth[MOUTH_LEFT_CORNER][1]
               + landmarks.mouth[MOUTH_RIGHT_CORNER][1]) / 2.0
    eye_center = (left_corner + right_corner) / 2.0

    yaw = math.degrees(math.atan2(nose_tip[0] - eye_center[0],
                                  abs(left_corner[0] - right_corner[0])))

    eye_to_nose = nose_tip[1] - eye_center[1]
    nose_to_mouth = abs(nose_tip[1] - mouth_y)
    pitch = math.degrees(math.atan2(eye_to_nose, nose_to_mouth))

    dx = right_corner[0] - left_corner[0]
    dy = right_corner[1] - left_corner[1]
    roll = math.degrees(math.atan(dy / dx)) if dx != 0 else 0.0

    return HeadPose(yaw=float(yaw), pitch=float(pitch), roll=float(roll))


def estimate_gaze(landmarks: LandmarkSet) -> Gaze:
    """Bucket the nose-tip → eye-midpoint vector."""
    if (len(landmarks.left_eye) == 0 or len(landmarks.right_eye) == 0
            or len(landmarks.nose) <= NOSE_TIP):
        return Gaze.UNKNOWN

    eye_center = (landmarks.left_eye.mean(axis=0)
                  + landmarks.right_eye.mean(axis=0)) / 2.0
    dx, dy = landmarks.nose[NOSE_TIP] - eye_center

    if abs(dx) > config.GAZE_HORIZONTAL_THRESHOLD:
        return Gaze.RIGHT if dx > 0 else Gaze.LEFT
    if abs(dy) > config.GAZE_VERTICAL_THRESHOLD:
        return Gaze.DOWN if dy > 0 else Gaze.UP
    return Gaze.CENTER
