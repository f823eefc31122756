"""
============================================================
 Focus Timer — Frame Analyzer
 Runs once per sampled frame: geometry → blink tracker →
 attention scorer. Emits FACE / NO_FACE results and an
 edge-triggered FACE_LOST_TIMEOUT per absence episode.
============================================================
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from focustimer import config
from focustimer.blink import BlinkTracker
from focustimer.geometry import (
    Gaze,
    HeadPose,
    LandmarkSet,
    average_ear,
    estimate_gaze,
    estimate_head_pose,
    mouth_aspect_ratio,
)
from focustimer.scoring import AttentionScorer, FatigueLevel, blink_status

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """What the external detector hands over for one frame."""

    landmarks: LandmarkSet
    confidence: float
    emotion: Optional[str] = None


@dataclass(frozen=True)
class FaceAnalysisResult:
    ear: float
    mar: float
    head_pose: HeadPose
    gaze_direction: Gaze
    blink_rate: int
    attention_score: int
    fatigue_level: FatigueLevel
    is_drowsy: bool
    confidence: int
    timestamp: float = 0.0
    is_attentive: bool = False
    emotion: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ear": round(self.ear, 4),
            "mar": round(self.mar, 4),
            "head_pose": self.head_pose.to_dict(),
            "gaze_direction": self.gaze_direction.value,
            "blink_rate": self.blink_rate,
            "blink_status": blink_status(self.blink_rate),
            "attention_score": self.attention_score,
            "fatigue_level": self.fatigue_level.value,
            "is_drowsy": self.is_drowsy,
            "is_attentive": self.is_attentive,
            "confidence": self.confidence,
            "emotion": self.emotion,
            "timestamp": self.timestamp,
        }


class FrameEventKind(str, Enum):
    FACE = "face"
    NO_FACE = "no_face"
    FACE_LOST_TIMEOUT = "face_lost_timeout"


@dataclass(frozen=True)
class FrameEvent:
    kind: FrameEventKind
    timestamp: float
    result: Optional[FaceAnalysisResult] = field(default=None)


class FrameAnalyzer:
    """Per-session analysis state: blink tracker, drowsy counter, absence timer."""

    def __init__(self, min_confidence: Optional[float] = None) -> None:
        self.min_confidence = (config.MIN_FACE_CONFIDENCE
                               if min_confidence is None else min_confidence)
        self.blink_tracker = BlinkTracker()
        self.scorer = AttentionScorer()
        self.ear_history: deque = deque(maxlen=config.EAR_HISTORY_LENGTH)
        self.attention_history: deque = deque(maxlen=config.ATTENTION_HISTORY_LENGTH)
        self.last_face_time: Optional[float] = None
        self.last_result: Optional[FaceAnalysisResult] = None
        self._lost_fired: bool = False
        self.frame_count: int = 0

    # ═════════════════════════════════════════════════════════
    #  SESSION LIFECYCLE
    # ═════════════════════════════════════════════════════════

    def start(self, now: float) -> None:
        """Begin a session; the absence clock starts now."""
        self.reset()
        self.last_face_time = now

    def reset(self) -> None:
        self.blink_tracker.reset()
        self.scorer.reset()
        self.ear_history.clear()
        self.attention_history.clear()
        self.last_face_time = None
        self.last_result = None
        self._lost_fired = False
        self.frame_count = 0

    def time_since_last_face(self, now: float) -> float:
        if self.last_face_time is None:
            return 0.0
        return max(0.0, now - self.last_face_time)

    # ═════════════════════════════════════════════════════════
    #  FRAME PROCESSING
    # ═════════════════════════════════════════════════════════

    def _qualifies(self, detection: Optional[Detection]) -> bool:
        if detection is None:
            return False
        try:
            confidence = float(detection.confidence)
        except (TypeError, ValueError):
            return False
        return not math.isnan(confidence) and confidence >= self.min_confidence

    def analyze(self, detection: Optional[Detection], now: float) -> list:
        """Analyze one sample at `now` (ms) and return the FrameEvents it produced."""
        self.frame_count += 1
        if self.last_face_time is None:
            self.last_face_time = now

        if not self._qualifies(detection):
            events = [FrameEvent(FrameEventKind.NO_FACE, now)]
            if (not self._lost_fired
                    and now - self.last_face_time > config.FACE_LOST_TIMEOUT_MS):
                self._lost_fired = True
                log.info("[ANALYZER] No face for %.0fms", now - self.last_face_time)
                events.append(FrameEvent(FrameEventKind.FACE_LOST_TIMEOUT, now))
            return events

        self.last_face_time = now
        self._lost_fired = False
        result = self._analyze_face(detection, now)
        self.last_result = result
        return [FrameEvent(FrameEventKind.FACE, now, result)]

    def _analyze_face(self, detection: Detection, now: float) -> FaceAnalysisResult:
        landmarks = detection.landmarks
        ear = average_ear(landmarks)
        mar = mouth_aspect_ratio(landmarks.mouth)
        head_pose = estimate_head_pose(landmarks)
        gaze = estimate_gaze(landmarks)

        self.blink_tracker.update(ear, now)
        blink_rate = self.blink_tracker.blink_rate(now)

        assessment = self.scorer.assess(ear, mar, head_pose, gaze, blink_rate)
        self.ear_history.append(ear)
        self.attention_history.append(assessment.attention_score)

        if self.frame_count % 20 == 0:
            log.debug(
                "[ANALYZER] ear=%.3f mar=%.3f blinks=%d score=%d fatigue=%s",
                ear, mar, blink_rate, assessment.attention_score,
                assessment.fatigue_level.value,
            )

        confidence = int(round(min(1.0, max(0.0, float(detection.confidence))) * 100))
        return FaceAnalysisResult(
            ear=float(min(1.0, max(0.0, ear))),
            mar=float(max(0.0, mar)),
            head_pose=head_pose,
            gaze_direction=gaze,
            blink_rate=blink_rate,
            attention_score=assessment.attention_score,
            fatigue_level=assessment.fatigue_level,
            is_drowsy=assessment.is_drowsy,
            confidence=confidence,
            timestamp=now,
            is_attentive=assessment.attention_score > config.ATTENTIVE_SCORE,
            emotion=detection.emotion,
        )

    def blink_rate(self, now: float) -> int:
        return self.blink_tracker.blink_rate(now)
