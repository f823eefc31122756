"""
============================================================
 Focus Timer — Presence Gate
 Debounces the face / no-face stream into discrete,
 confirmed transitions for the timer:

   Idle → WaitingForFace → Confirmed → (timer starts) → Idle
   WaitingForFace / Confirmed ──FaceLostTimeout──→ Lost
   Lost ──face──→ WaitingForFace (confirmation restarts)

 Also turns sustained absence, fatigue and renewed
 attention into pause / resume requests while the camera
 is monitoring.
============================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from focustimer import config
from focustimer.analyzer import FrameEvent, FrameEventKind
from focustimer.scoring import FatigueLevel
from focustimer.timer import TimerPhase

log = logging.getLogger(__name__)


class GatePhase(str, Enum):
    IDLE = "idle"
    WAITING_FOR_FACE = "waiting_for_face"
    CONFIRMED = "confirmed"
    LOST = "lost"


@dataclass(frozen=True)
class GateState:
    phase: GatePhase
    since: Optional[float] = None
    camera_mode: bool = False

    def to_dict(self, now: Optional[float] = None) -> dict:
        progress = 0.0
        if self.phase == GatePhase.CONFIRMED:
            progress = 1.0
        elif self.since is not None and now is not None:
            progress = min(1.0, max(0.0, (now - self.since) / config.PRESENCE_CONFIRM_MS))
        return {
            "phase": self.phase.value,
            "since": self.since,
            "camera_mode": self.camera_mode,
            "confirm_progress": round(progress, 3),
        }


class GateAction(str, Enum):
    CONFIRMED = "confirmed"
    PAUSE = "pause"
    RESUME = "resume"


class PauseReason(str, Enum):
    FACE_LOST = "FACE_LOST"
    FATIGUE = "FATIGUE"
    LOW_ATTENTION = "LOW_ATTENTION"


@dataclass(frozen=True)
class GateDecision:
    action: GateAction
    reason: Optional[PauseReason] = None


class PresenceGate:
    """Owns GateState. Every transition goes through `arm`, `disarm`,
    `observe` or `consume`."""

    def __init__(self) -> None:
        self.phase: GatePhase = GatePhase.IDLE
        self.since: Optional[float] = None
        self.camera_mode: bool = False

    @property
    def state(self) -> GateState:
        return GateState(self.phase, self.since, self.camera_mode)

    def _enter(self, phase: GatePhase, since: Optional[float] = None) -> None:
        if phase != self.phase:
            log.info("[GATE] %s → %s", self.phase.value, phase.value)
        self.phase = phase
        self.since = since

    # ═════════════════════════════════════════════════════════
    #  CAMERA MODE
    # ═════════════════════════════════════════════════════════

    def arm(self, timer_phase: TimerPhase) -> None:
        """Enter camera-monitoring mode. Arms WaitingForFace only while the timer is idle."""
        self.camera_mode = True
        if timer_phase == TimerPhase.IDLE:
            self._enter(GatePhase.WAITING_FOR_FACE)

    def disarm(self) -> None:
        self.camera_mode = False
        self._enter(GatePhase.IDLE)

    def consume(self) -> bool:
        """Take the one-shot Confirmed signal. Returns False if there was none."""
        if self.phase != GatePhase.CONFIRMED:
            return False
        self._enter(GatePhase.IDLE)
        return True

    def release(self) -> None:
        """The timer was started by hand; drop any pending confirmation."""
        if self.phase != GatePhase.IDLE:
            self._enter(GatePhase.IDLE)

    # ═════════════════════════════════════════════════════════
    #  EVENT HANDLING
    # ═════════════════════════════════════════════════════════

    def observe(self, event: FrameEvent, timer_phase: TimerPhase) -> Optional[GateDecision]:
        if event.kind == FrameEventKind.FACE:
            return self._on_face(event, timer_phase)
        if event.kind == FrameEventKind.NO_FACE:
            if self.phase == GatePhase.WAITING_FOR_FACE and self.since is not None:
                log.debug("[GATE] Face dropped before confirmation, restarting")
                self.since = None
            return None
        if event.kind == FrameEventKind.FACE_LOST_TIMEOUT:
            return self._on_face_lost(timer_phase)
        return None

    def _on_face(self, event: FrameEvent, timer_phase: TimerPhase) -> Optional[GateDecision]:
        now = event.timestamp
        if self.phase == GatePhase.LOST:
            self._enter(GatePhase.WAITING_FOR_FACE, now)

        if self.phase == GatePhase.WAITING_FOR_FACE:
            if self.since is None:
                self.since = now
            if now - self.since >= config.PRESENCE_CONFIRM_MS:
                self._enter(GatePhase.CONFIRMED, self.since)
                return GateDecision(GateAction.CONFIRMED)
            return None

        if not self.camera_mode or event.result is None:
            return None

        result = event.result
        if timer_phase == TimerPhase.RUNNING:
            if result.fatigue_level == FatigueLevel.HIGH:
                return GateDecision(GateAction.PAUSE, PauseReason.FATIGUE)
            if result.attention_score < config.PAUSE_SCORE_THRESHOLD:
                return GateDecision(GateAction.PAUSE, PauseReason.LOW_ATTENTION)
        elif timer_phase == TimerPhase.PAUSED:
            # stricter than the pause rule: a high-fatigue frame still
            # scores above 40 and would pause again on the next frame
            if (result.attention_score > config.RESUME_SCORE_THRESHOLD
                    and result.fatigue_level != FatigueLevel.HIGH):
                return GateDecision(GateAction.RESUME)
        return None

    def _on_face_lost(self, timer_phase: TimerPhase) -> Optional[GateDecision]:
        if self.phase in (GatePhase.WAITING_FOR_FACE, GatePhase.CONFIRMED):
            self._enter(GatePhase.LOST)
        if self.camera_mode and timer_phase == TimerPhase.RUNNING:
            return GateDecision(GateAction.PAUSE, PauseReason.FACE_LOST)
        return None
