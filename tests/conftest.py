"""Shared fixtures: synthetic faces, temporary storage, fake clock and detector."""

import numpy as np
import pytest

from focustimer import config
from focustimer.analyzer import Detection
from focustimer.database import Storage
from focustimer.geometry import LandmarkSet


# ── Synthetic 68-point face ───────────────────────────────────
#
# Eyes 40px wide centred on (200, 200) and (300, 200), mouth inner
# corners 44px apart on y=260, nose tip 5px below the eye line.
# Neutral pose: yaw 0, roll 0, pitch ≈ 5°, gaze center.

def _eye(cx: float, cy: float, ear: float) -> list:
    v = ear * 20.0
    return [
        (cx - 20, cy), (cx - 7, cy - v), (cx + 7, cy - v),
        (cx + 20, cy), (cx + 7, cy + v), (cx - 7, cy + v),
    ]


def _mouth(cx: float, cy: float, mar: float) -> list:
    m = mar * 22.0
    outer = [
        (cx - 30, cy),
        (cx - 22, cy - 10), (cx - 11, cy - 12), (cx, cy - 12),
        (cx + 11, cy - 12), (cx + 22, cy - 10),
        (cx + 30, cy),
        (cx + 22, cy + 10 + m), (cx + 11, cy + 12 + m), (cx, cy + 12 + m),
        (cx - 11, cy + 12 + m), (cx - 22, cy + 10 + m),
    ]
    inner = [
        (cx - 22, cy),
        (cx - 12, cy - m), (cx, cy - m), (cx + 12, cy - m),
        (cx + 22, cy),
        (cx + 12, cy + m), (cx, cy + m), (cx - 12, cy + m),
    ]
    return outer + inner


def make_face_points(ear: float = 0.3, mar: float = 0.0,
                     nose_offset=(0.0, 5.0), shift=(0.0, 0.0)) -> np.ndarray:
    jaw = [(160 + i * 11.25, 200 + 80 * np.sin(np.pi * i / 16)) for i in range(17)]
    brows = [(175 + i * 15, 180) for i in range(10)]
    nx, ny = 250 + nose_offset[0], 200 + nose_offset[1]
    nose = [
        (250, 170), (250, 180), (250, 190), (nx, ny),
        (238, ny + 7), (244, ny + 9), (250, ny + 10), (256, ny + 9), (262, ny + 7),
    ]
    points = (jaw + brows + nose
              + _eye(200, 200, ear) + _eye(300, 200, ear)
              + _mouth(250, 260, mar))
    arr = np.array(points, dtype=np.float64)
    assert arr.shape == (68, 2)
    return arr + np.array(shift, dtype=np.float64)


def make_landmarks(**kwargs) -> LandmarkSet:
    return LandmarkSet.from_points(make_face_points(**kwargs))


def make_detection(confidence: float = 0.9, emotion=None, **kwargs) -> Detection:
    return Detection(landmarks=make_landmarks(**kwargs), confidence=confidence,
                     emotion=emotion)


# ── Fakes ─────────────────────────────────────────────────────

class FakeClock:
    """Millisecond clock the test moves by hand."""

    def __init__(self, now: float = 0.0):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


class FakeDetector:
    def __init__(self, detection=None, error: Exception | None = None):
        self.detection = detection
        self.error = error
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.detection


class FakeFrameSource:
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.frame = np.zeros((48, 64, 3), dtype=np.uint8)

    def read(self):
        if not self.ok:
            return False, None
        return True, self.frame


# ── Fixtures ──────────────────────────────────────────────────

@pytest.fixture
def storage(tmp_path):
    store = Storage(f"sqlite:///{tmp_path / 'focus_timer.db'}")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def clock():
    return FakeClock(0.0)


@pytest.fixture
def face():
    return make_detection()


@pytest.fixture
def steady_blinks(monkeypatch):
    """Stop a blink-free session from counting as drowsy."""
    monkeypatch.setattr(config, "BLINK_LOW_DEDUCTIONS", ())
    monkeypatch.setattr(config, "DROWSY_BLINK_RATE", 0)
