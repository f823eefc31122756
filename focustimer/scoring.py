"""
============================================================
 Focus Timer — Attention Scorer
 Deduction-table attention score (0-100) and tiered
 fatigue level.

 Score starts at 100. Each signal deducts at most one tier
 (most severe first); signals are independent and additive.
============================================================
"""

from dataclasses import dataclass
from enum import Enum

from focustimer import config
from focustimer.geometry import Gaze, HeadPose


class FatigueLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _below(value: float, tiers) -> int:
    for threshold, deduction in tiers:
        if value < threshold:
            return deduction
    return 0


def _above(value: float, tiers) -> int:
    for threshold, deduction in tiers:
        if value > threshold:
            return deduction
    return 0


def attention_score(ear: float, mar: float, head_pose: HeadPose,
                    gaze, blink_rate: int) -> int:
    score = 100
    score -= _below(ear, config.EAR_DEDUCTIONS)
    score -= _above(mar, config.MAR_DEDUCTIONS)
    score -= _above(head_pose.total_movement, config.HEAD_MOVEMENT_DEDUCTIONS)
    if gaze != Gaze.CENTER:
        score -= config.GAZE_OFF_CENTER_DEDUCTION
    # Too few blinks reads as drowsy, too many as tense; 12-25/min is normal
    blink_penalty = _below(blink_rate, config.BLINK_LOW_DEDUCTIONS)
    if not blink_penalty:
        blink_penalty = _above(blink_rate, config.BLINK_HIGH_DEDUCTIONS)
    score -= blink_penalty
    return int(max(0, min(100, score)))


def fatigue_level(score: int, ear: float, drowsy_frames: int) -> FatigueLevel:
    if (score < config.FATIGUE_HIGH_SCORE or ear < config.FATIGUE_HIGH_EAR
            or drowsy_frames > config.FATIGUE_HIGH_FRAMES):
        return FatigueLevel.HIGH
    if (score < config.FATIGUE_MEDIUM_SCORE or ear < config.FATIGUE_MEDIUM_EAR
            or drowsy_frames > config.FATIGUE_MEDIUM_FRAMES):
        return FatigueLevel.MEDIUM
    return FatigueLevel.LOW


def score(ear: float, mar: float, head_pose: HeadPose, gaze, blink_rate: int,
          drowsy_frames: int = 0) -> tuple:
    """(attention score, fatigue level) for one frame."""
    value = attention_score(ear, mar, head_pose, gaze, blink_rate)
    return value, fatigue_level(value, ear, drowsy_frames)


@dataclass(frozen=True)
class DrowsinessSignals:
    eyes: bool
    mouth: bool
    head: bool
    blinks: bool

    @property
    def any(self) -> bool:
        return self.eyes or self.mouth or self.head or self.blinks


def drowsiness_signals(ear: float, mar: float, pitch: float,
                       blink_rate: int) -> DrowsinessSignals:
    return DrowsinessSignals(
        eyes=ear < config.DROWSY_EAR_THRESHOLD,
        mouth=mar > config.DROWSY_MAR_THRESHOLD,
        head=abs(pitch) > config.DROWSY_PITCH_THRESHOLD,
        blinks=blink_rate < config.DROWSY_BLINK_RATE,
    )


def blink_status(blink_rate: int) -> str:
    if blink_rate < config.BLINK_RATE_VERY_LOW:
        return "very_drowsy"
    if blink_rate < config.BLINK_RATE_LOW:
        return "drowsy"
    if blink_rate <= config.BLINK_RATE_HIGH:
        return "normal"
    if blink_rate <= config.BLINK_RATE_VERY_HIGH:
        return "slightly_tense"
    return "very_tense"


@dataclass(frozen=True)
class Assessment:
    attention_score: int
    fatigue_level: FatigueLevel
    is_drowsy: bool
    drowsy_frames: int


class AttentionScorer:
    """Scores frames and owns the consecutive-drowsy-frame counter."""

    def __init__(self) -> None:
        self.drowsy_frames: int = 0

    def assess(self, ear: float, mar: float, head_pose: HeadPose,
               gaze, blink_rate: int) -> Assessment:
        signals = drowsiness_signals(ear, mar, head_pose.pitch, blink_rate)
        if signals.any:
            self.drowsy_frames += 1
        else:
            self.drowsy_frames = 0

        value, level = score(ear, mar, head_pose, gaze, blink_rate,
                             self.drowsy_frames)
        return Assessment(
            attention_score=value,
            fatigue_level=level,
            is_drowsy=signals.any,
            drowsy_frames=self.drowsy_frames,
        )

    def reset(self) -> None:
        self.drowsy_frames = 0
