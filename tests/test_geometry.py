"""
Focus Timer -- Geometry Metrics Tests
EAR / MAR formulas, fallbacks, head pose and gaze buckets.
"""

import math

import numpy as np
import pytest

from conftest import make_face_points, make_landmarks
from focustimer.errors import MalformedLandmarks
from focustimer.geometry import (
    Gaze,
    LandmarkSet,
    average_ear,
    estimate_gaze,
    estimate_head_pose,
    eye_aspect_ratio,
    mouth_aspect_ratio,
)


# ── EAR ───────────────────────────────────────────────────────

@pytest.mark.parametrize("target", [0.05, 0.2, 0.3, 0.45])
def test_ear_matches_constructed_value(target):
    landmarks = make_landmarks(ear=target)
    assert eye_aspect_ratio(landmarks.left_eye) == pytest.approx(target)
    assert average_ear(landmarks) == pytest.approx(target)


def test_ear_is_non_negative_and_translation_invariant():
    rng = np.random.default_rng(7)
    for _ in range(50):
        eye = rng.uniform(0, 500, size=(6, 2))
        eye[3] = eye[0] + rng.uniform(5, 50, size=2)  # non-degenerate width
        base = eye_aspect_ratio(eye)
        moved = eye_aspect_ratio(eye + rng.uniform(-1000, 1000, size=2))
        assert base >= 0
        assert moved == pytest.approx(base)


def test_ear_short_contour_falls_back_never_zero():
    assert eye_aspect_ratio([(0, 0), (1, 1), (2, 2)]) == 0.25
    assert eye_aspect_ratio([]) == 0.25


def test_ear_zero_width_falls_back():
    eye = np.zeros((6, 2))
    assert eye_aspect_ratio(eye) == 0.25


# ── MAR ───────────────────────────────────────────────────────

@pytest.mark.parametrize("target", [0.0, 0.3, 0.6, 0.9])
def test_mar_matches_constructed_value(target):
    landmarks = make_landmarks(mar=target)
    assert mouth_aspect_ratio(landmarks.mouth) == pytest.approx(target)


def test_mar_short_mouth_is_zero():
    assert mouth_aspect_ratio(np.ones((12, 2))) == 0.0


def test_mar_grows_with_mouth_opening():
    values = [mouth_aspect_ratio(make_landmarks(mar=m).mouth) for m in (0.1, 0.4, 0.7)]
    assert values == sorted(values)


# ── Head pose ─────────────────────────────────────────────────

def test_neutral_face_pose():
    pose = estimate_head_pose(make_landmarks())
    assert pose.yaw == pytest.approx(0.0)
    assert pose.roll == pytest.approx(0.0)
    assert pose.pitch == pytest.approx(math.degrees(math.atan2(5, 55)))
    assert pose.total_movement < 25


def test_nose_offset_turns_yaw():
    right = estimate_head_pose(make_landmarks(nose_offset=(30.0, 5.0)))
    left = estimate_head_pose(make_landmarks(nose_offset=(-30.0, 5.0)))
    assert right.yaw > 0 > left.yaw
    assert right.yaw == pytest.approx(math.degrees(math.atan2(30, 140)))


def test_tilted_eyes_give_roll():
    pts = make_face_points()
    pts[42:48, 1] += 20  # drop the right eye
    pose = estimate_head_pose(LandmarkSet.from_points(pts))
    assert pose.roll == pytest.approx(math.degrees(math.atan(20 / 140)))


def test_pose_to_dict_rounds():
    d = estimate_head_pose(make_landmarks()).to_dict()
    assert set(d) == {"yaw", "pitch", "roll"}
    assert d["pitch"] == round(d["pitch"], 2)


# ── Gaze ──────────────────────────────────────────────────────

@pytest.mark.parametrize("offset, expected", [
    ((0.0, 5.0), Gaze.CENTER),
    ((9.0, 0.0), Gaze.RIGHT),
    ((-9.0, 0.0), Gaze.LEFT),
    ((0.0, 7.0), Gaze.DOWN),
    ((0.0, -7.0), Gaze.UP),
    ((9.0, 7.0), Gaze.RIGHT),  # horizontal wins
])
def test_gaze_buckets(offset, expected):
    assert estimate_gaze(make_landmarks(nose_offset=offset)) == expected


def test_gaze_unknown_without_eyes():
    landmarks = make_landmarks()
    empty = LandmarkSet(left_eye=[], right_eye=[], mouth=landmarks.mouth,
                        nose=landmarks.nose, jaw=landmarks.jaw)
    assert estimate_gaze(empty) == Gaze.UNKNOWN
    assert estimate_head_pose(empty).total_movement == 0


# ── LandmarkSet ───────────────────────────────────────────────

def test_landmark_set_rejects_short_input():
    with pytest.raises(MalformedLandmarks):
        LandmarkSet.from_points(np.zeros((40, 2)))


def test_landmark_set_rejects_non_2d():
    with pytest.raises(MalformedLandmarks):
        LandmarkSet.from_points(np.zeros(136))


def test_landmark_set_is_immutable_copy():
    pts = make_face_points()
    landmarks = LandmarkSet.from_points(pts)
    pts[36:42] = 0
    assert eye_aspect_ratio(landmarks.left_eye) == pytest.approx(0.3)
    with pytest.raises(ValueError):
        landmarks.left_eye[0, 0] = 1.0


def test_from_mediapipe_maps_regions():
    coords = np.arange(478 * 2, dtype=np.float64).reshape(478, 2)
    landmarks = LandmarkSet.from_mediapipe(coords)
    assert landmarks.left_eye.shape == (6, 2)
    assert landmarks.mouth.shape == (20, 2)
    assert landmarks.nose[3].tolist() == coords[1].tolist()
    with pytest.raises(MalformedLandmarks):
        LandmarkSet.from_mediapipe(coords[:100])
