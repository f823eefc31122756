"""
============================================================
 Focus Timer — Timer State Machine
 Idle / Running / Paused with per-task accumulated time.

 Every mutation is written through to the store. A failed
 write is logged and the timer keeps going in memory; the
 next successful write carries the full state and
 reconciles.
============================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from focustimer import config
from focustimer.errors import StorageWriteFailure

log = logging.getLogger(__name__)


class TimerPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class TimerState:
    phase: TimerPhase
    active_task_id: Optional[str]
    elapsed_ms: int
    started_at: Optional[float]
    selected_task_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "active_task_id": self.active_task_id,
            "selected_task_id": self.selected_task_id,
            "elapsed_ms": self.elapsed_ms,
            "elapsed": format_duration(self.elapsed_ms),
            "started_at": self.started_at,
        }


def format_duration(ms) -> str:
    """Milliseconds → HH:MM:SS."""
    total = max(0, int(ms or 0)) // 1000
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class TimerStateMachine:
    """The activity timer. `store` needs `load(key, default)` and `save(key, value)`."""

    def __init__(self, store) -> None:
        self.store = store
        self.phase: TimerPhase = TimerPhase.IDLE
        self.active_task_id: Optional[str] = None
        self.selected_task_id: Optional[str] = None
        self.started_at: Optional[float] = None
        self._elapsed_ms: int = 0
        self._task_times: dict = {}
        self._unsaved: bool = False

    # ═════════════════════════════════════════════════════════
    #  PERSISTENCE
    # ═════════════════════════════════════════════════════════

    def load(self, now: float) -> TimerState:
        """Restore the persisted state. Time spent while the process was down is not counted."""
        saved = self.store.load(config.TIMER_STATE_KEY, {}) or {}
        self._task_times = {
            str(k): int(v) for k, v in (self.store.load(config.TASK_TIMES_KEY, {}) or {}).items()
        }

        self.active_task_id = saved.get("activeTaskId")
        self.selected_task_id = saved.get("selectedTaskId", self.active_task_id)
        self._elapsed_ms = max(0, int(saved.get("elapsedMs") or 0))
        try:
            phase = TimerPhase(saved.get("phase", TimerPhase.IDLE.value))
        except ValueError:
            phase = TimerPhase.IDLE

        if self.active_task_id is None:
            phase = TimerPhase.IDLE
        self.phase = phase

        if phase == TimerPhase.RUNNING:
            self.started_at = now - self._elapsed_ms
        else:
            self.started_at = None
            if phase == TimerPhase.IDLE:
                self._elapsed_ms = 0
                self.active_task_id = None

        log.info("[TIMER] Restored: %s task=%s elapsed=%s",
                 self.phase.value, self.active_task_id, format_duration(self._elapsed_ms))
        return self.state(now)

    def _persist(self) -> None:
        if self.active_task_id is not None:
            self._task_times[self.active_task_id] = self._elapsed_ms
        record = {
            "activeTaskId": self.active_task_id,
            "elapsedMs": self._elapsed_ms,
            "phase": self.phase.value,
            "startedAt": self.started_at,
            "selectedTaskId": self.selected_task_id,
        }
        try:
            self.store.save(config.TIMER_STATE_KEY, record)
            self.store.save(config.TASK_TIMES_KEY, dict(self._task_times))
        except StorageWriteFailure as e:
            if not self._unsaved:
                log.warning("[TIMER] State write failed, continuing in memory: %s", e)
            self._unsaved = True
            return
        if self._unsaved:
            log.info("[TIMER] Storage recovered, state reconciled")
            self._unsaved = False

    # ═════════════════════════════════════════════════════════
    #  TRANSITIONS
    # ═════════════════════════════════════════════════════════

    def select_task(self, task_id: Optional[str]) -> None:
        self.selected_task_id = task_id
        self._persist()

    def start(self, task_id: str, now: float) -> bool:
        """Idle → Running on `task_id`, continuing from its stored time."""
        if task_id is None:
            return False
        task_id = str(task_id)
        if self.active_task_id == task_id and self.phase != TimerPhase.IDLE:
            return self.resume(now)
        if self.phase != TimerPhase.IDLE:
            self.stop(now)

        self._elapsed_ms = int(self._task_times.get(task_id, 0))
        self.started_at = now - self._elapsed_ms
        self.active_task_id = task_id
        self.selected_task_id = task_id
        self.phase = TimerPhase.RUNNING
        log.info("[TIMER] Started '%s' at %s", task_id, format_duration(self._elapsed_ms))
        self._persist()
        return True

    def pause(self, now: float) -> bool:
        if self.phase != TimerPhase.RUNNING:
            return False
        self._elapsed_ms = self.elapsed(now)
        self.started_at = None
        self.phase = TimerPhase.PAUSED
        log.info("[TIMER] Paused '%s' at %s", self.active_task_id, format_duration(self._elapsed_ms))
        self._persist()
        return True

    def resume(self, now: float) -> bool:
        if self.phase != TimerPhase.PAUSED:
            return False
        self.started_at = now - self._elapsed_ms
        self.phase = TimerPhase.RUNNING
        log.info("[TIMER] Resumed '%s'", self.active_task_id)
        self._persist()
        return True

    def stop(self, now: float) -> Optional[tuple]:
        """Running|Paused → Idle. Returns (task_id, elapsed_ms) or None if already idle."""
        if self.phase == TimerPhase.IDLE:
            return None
        task_id = self.active_task_id
        elapsed = self.elapsed(now)
        self._task_times[task_id] = elapsed
        self.phase = TimerPhase.IDLE
        self.active_task_id = None
        self.started_at = None
        self._elapsed_ms = 0
        log.info("[TIMER] Stopped '%s' at %s", task_id, format_duration(elapsed))
        self._persist()
        return task_id, elapsed

    def reset(self, now: float) -> None:
        """Discard the current task's stored time and return to Idle."""
        task_id = self.active_task_id or self.selected_task_id
        if task_id is not None:
            self._task_times.pop(task_id, None)
        self.phase = TimerPhase.IDLE
        self.active_task_id = None
        self.started_at = None
        self._elapsed_ms = 0
        log.info("[TIMER] Reset '%s'", task_id)
        self._persist()

    def tick(self, now: float) -> int:
        """Write the running time through to the store."""
        if self.phase != TimerPhase.RUNNING:
            return self.elapsed(now)
        self._elapsed_ms = self.elapsed(now)
        self._persist()
        return self._elapsed_ms

    # ═════════════════════════════════════════════════════════
    #  QUERIES
    # ═════════════════════════════════════════════════════════

    def elapsed(self, now: float) -> int:
        if self.phase == TimerPhase.RUNNING and self.started_at is not None:
            # never runs backwards, even if the clock does
            return max(self._elapsed_ms, int(round(now - self.started_at)))
        return self._elapsed_ms

    def state(self, now: float) -> TimerState:
        return TimerState(
            phase=self.phase,
            active_task_id=self.active_task_id,
            elapsed_ms=self.elapsed(now),
            started_at=self.started_at,
            selected_task_id=self.selected_task_id,
        )

    @property
    def task_times(self) -> dict:
        return dict(self._task_times)

    def task_elapsed(self, task_id: str) -> int:
        return int(self._task_times.get(str(task_id), 0))
