"""
============================================================
 Focus Timer — Blink Tracker
 Hysteresis detector: EAR stream → discrete blinks →
 trailing 60-second blink rate.
============================================================
"""

import logging
import math
from collections import deque
from dataclasses import dataclass

from focustimer import config

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlinkState:
    is_eye_closed: bool
    last_transition_time: float
    blink_timestamps: tuple


def clamp_ear(ear) -> float:
    """NaN / non-numeric → fallback, everything else clipped to [0, 1]."""
    try:
        value = float(ear)
    except (TypeError, ValueError):
        return config.EAR_FALLBACK
    if math.isnan(value):
        return config.EAR_FALLBACK
    return min(1.0, max(0.0, value))


class BlinkTracker:
    """One detection session's blink state.

    A blink is a closed→open cycle whose closed phase lasted between
    BLINK_MIN_DURATION_MS and BLINK_MAX_DURATION_MS. Shorter is noise,
    longer is an eyes-closed episode.
    """

    def __init__(self) -> None:
        self.is_eye_closed: bool = False
        self.last_transition_time: float = 0.0
        self._blink_timestamps: deque = deque()
        self.blink_total: int = 0

    def update(self, ear, now: float) -> bool:
        """Feed one EAR sample at `now` (ms). Returns True when a blink was recorded."""
        ear = clamp_ear(ear)
        threshold = config.BLINK_EAR_THRESHOLD

        if ear < threshold and not self.is_eye_closed:
            self.is_eye_closed = True
            self.last_transition_time = now
            return False

        if ear >= threshold and self.is_eye_closed:
            duration = now - self.last_transition_time
            self.is_eye_closed = False
            self.last_transition_time = now
            if config.BLINK_MIN_DURATION_MS <= duration <= config.BLINK_MAX_DURATION_MS:
                self._record(now)
                log.debug("[BLINK] Blink recorded (%.0fms)", duration)
                return True
            log.debug("[BLINK] Discarded closure of %.0fms", duration)
        return False

    def _record(self, now: float) -> None:
        # Log stays monotonic even if the caller's clock steps back
        if self._blink_timestamps and now < self._blink_timestamps[-1]:
            now = self._blink_timestamps[-1]
        self._blink_timestamps.append(now)
        self.blink_total += 1

    def _prune(self, now: float) -> None:
        window = config.BLINK_RATE_WINDOW_MS
        while self._blink_timestamps and now - self._blink_timestamps[0] > window:
            self._blink_timestamps.popleft()

    def blink_rate(self, now: float) -> int:
        """Blinks within the last 60 seconds of `now`."""
        self._prune(now)
        return len(self._blink_timestamps)

    def snapshot(self, now: float) -> BlinkState:
        self._prune(now)
        return BlinkState(
            is_eye_closed=self.is_eye_closed,
            last_transition_time=self.last_transition_time,
            blink_timestamps=tuple(self._blink_timestamps),
        )

    def reset(self) -> None:
        self.is_eye_closed = False
        self.last_transition_time = 0.0
        self._blink_timestamps.clear()
        self.blink_total = 0
