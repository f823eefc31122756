"""
Focus Timer -- Frame Analyzer Tests
Face / no-face events, confidence floor, edge-triggered absence.
"""

import pytest

from conftest import make_detection
from focustimer.analyzer import FrameAnalyzer, FrameEventKind
from focustimer.geometry import Gaze
from focustimer.scoring import FatigueLevel


def _kinds(events):
    return [e.kind for e in events]


def test_face_produces_one_result(face):
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    events = analyzer.analyze(face, 150)
    assert _kinds(events) == [FrameEventKind.FACE]
    result = events[0].result
    assert result.ear == pytest.approx(0.3)
    assert result.mar == pytest.approx(0.0)
    assert result.gaze_direction == Gaze.CENTER
    assert result.confidence == 90
    assert result.timestamp == 150
    assert 0 <= result.attention_score <= 100
    assert analyzer.last_result is result


@pytest.mark.parametrize("mar", [0.3, 0.8])
def test_open_mouth_reaches_result(mar):
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    events = analyzer.analyze(make_detection(mar=mar), 150)
    assert _kinds(events) == [FrameEventKind.FACE]
    assert events[0].result.mar == pytest.approx(mar)
    assert events[0].result.to_dict()["mar"] == pytest.approx(mar, abs=1e-3)


def test_no_detection_is_no_face():
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    assert _kinds(analyzer.analyze(None, 150)) == [FrameEventKind.NO_FACE]


@pytest.mark.parametrize("confidence", [0.0, 0.1, float("nan")])
def test_low_confidence_is_no_face(confidence):
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    detection = make_detection(confidence=confidence)
    assert _kinds(analyzer.analyze(detection, 150)) == [FrameEventKind.NO_FACE]


def test_confidence_floor_is_inclusive():
    analyzer = FrameAnalyzer(min_confidence=0.15)
    analyzer.start(0)
    events = analyzer.analyze(make_detection(confidence=0.15), 150)
    assert _kinds(events) == [FrameEventKind.FACE]
    assert events[0].result.confidence == 15


def test_face_lost_timeout_fires_once_per_episode(face):
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    fired = []
    for t in range(150, 12_000, 150):
        for event in analyzer.analyze(None, t):
            if event.kind == FrameEventKind.FACE_LOST_TIMEOUT:
                fired.append(t)
    assert fired == [5100]

    # a face ends the episode; the next absence fires again
    analyzer.analyze(face, 12_000)
    fired = [t for t in range(12_150, 18_000, 150)
             if FrameEventKind.FACE_LOST_TIMEOUT in _kinds(analyzer.analyze(None, t))]
    assert fired == [17_100]


def test_face_lost_measured_from_last_face(face):
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    analyzer.analyze(face, 3000)
    assert FrameEventKind.FACE_LOST_TIMEOUT not in _kinds(analyzer.analyze(None, 8000))
    assert FrameEventKind.FACE_LOST_TIMEOUT in _kinds(analyzer.analyze(None, 8001))
    assert analyzer.time_since_last_face(9000) == 6000


def test_closed_eyes_give_high_fatigue():
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    result = analyzer.analyze(make_detection(ear=0.1), 150)[0].result
    assert result.fatigue_level == FatigueLevel.HIGH
    assert result.is_drowsy
    assert not result.is_attentive


def test_attentive_flag_and_emotion(steady_blinks):
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    result = analyzer.analyze(make_detection(emotion="happy"), 150)[0].result
    assert result.attention_score == 100
    assert result.is_attentive
    assert result.emotion == "happy"
    d = result.to_dict()
    assert d["gaze_direction"] == "center"
    assert d["fatigue_level"] == "low"
    assert d["blink_status"] == "very_drowsy"
    assert d["emotion"] == "happy"


def test_blinks_flow_into_rate():
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    analyzer.analyze(make_detection(ear=0.3), 100)
    analyzer.analyze(make_detection(ear=0.1), 250)
    result = analyzer.analyze(make_detection(ear=0.3), 400)[0].result
    assert result.blink_rate == 1
    assert analyzer.blink_rate(400) == 1


def test_histories_are_bounded(face):
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    for i in range(100):
        analyzer.analyze(face, 150 * (i + 1))
    assert len(analyzer.ear_history) == 30
    assert len(analyzer.attention_history) == 60


def test_reset_clears_session_state():
    analyzer = FrameAnalyzer()
    analyzer.start(0)
    analyzer.analyze(make_detection(ear=0.3), 100)
    analyzer.analyze(make_detection(ear=0.1), 250)
    analyzer.analyze(make_detection(ear=0.3), 400)
    analyzer.analyze(make_detection(ear=0.18), 550)
    assert analyzer.scorer.drowsy_frames > 0
    analyzer.reset()
    assert analyzer.blink_rate(600) == 0
    assert analyzer.scorer.drowsy_frames == 0
    assert analyzer.last_result is None
    assert len(analyzer.ear_history) == 0
