"""
============================================================
 Focus Timer — Monitor Engine
 Owns one FrameAnalyzer, PresenceGate and TimerStateMachine
 and wires them together:

   frame source → detector (worker thread) → analyzer
     → gate → timer (write-through) → callbacks

 Sampling runs on its own thread at a fixed cadence. At
 most one detector call is in flight; while it is busy the
 tick still runs (timer write-through) without waiting.
============================================================
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait as wait_futures
from typing import Callable, Optional

from focustimer import config
from focustimer.analyzer import Detection, FaceAnalysisResult, FrameAnalyzer, FrameEventKind
from focustimer.errors import DetectorUnavailable
from focustimer.presence import GateAction, GatePhase, GateState, PresenceGate
from focustimer.timer import TimerPhase, TimerState, TimerStateMachine

log = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class Monitor:
    """Attention-gated activity timer.

    `detector` needs `detect(frame) -> Detection | None`; `frame_source`
    needs `read() -> (ok, frame)`. Both are optional: without them the
    monitor is driven by calling `process()` directly.
    """

    def __init__(self, storage, detector=None, frame_source=None,
                 clock: Callable[[], float] | None = None,
                 on_analysis: Callable[[FaceAnalysisResult], None] | None = None,
                 on_no_face: Callable[[], None] | None = None,
                 on_timer_change: Callable[[TimerState], None] | None = None,
                 on_gate_change: Callable[[GateState], None] | None = None):
        self.storage = storage
        self.detector = detector
        self.frame_source = frame_source
        self.clock = clock or wall_clock_ms

        self.on_analysis = on_analysis
        self.on_no_face = on_no_face
        self.on_timer_change = on_timer_change
        self.on_gate_change = on_gate_change

        self.analyzer = FrameAnalyzer()
        self.gate = PresenceGate()
        self.timer = TimerStateMachine(storage)

        self._lock = threading.RLock()
        self._detecting = False
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._pending = None            # (future, submitted_at)

        # ── Detector backoff ──
        self._failures = 0
        self._backoff_until = 0.0

        self.timer.load(self.clock())

    # ═════════════════════════════════════════════════════════
    #  CALLBACKS
    # ═════════════════════════════════════════════════════════

    def _notify_timer(self, now: float) -> None:
        if self.on_timer_change is not None:
            self.on_timer_change(self.timer.state(now))

    def _notify_gate(self) -> None:
        if self.on_gate_change is not None:
            self.on_gate_change(self.gate.state)

    # ═════════════════════════════════════════════════════════
    #  ANALYSIS STEP
    # ═════════════════════════════════════════════════════════

    def process(self, detection: Optional[Detection], now: float) -> list:
        """Run one sample through analyzer → gate → timer. Returns the FrameEvents."""
        with self._lock:
            events = self.analyzer.analyze(detection, now)
            for event in events:
                if event.kind == FrameEventKind.FACE and self.on_analysis is not None:
                    self.on_analysis(event.result)
                elif event.kind == FrameEventKind.FACE_LOST_TIMEOUT and self.on_no_face is not None:
                    self.on_no_face()

                before = self.gate.state
                decision = self.gate.observe(event, self.timer.phase)
                if self.gate.state != before:
                    self._notify_gate()
                if decision is None:
                    continue

                if decision.action == GateAction.CONFIRMED:
                    self._try_auto_start(now)
                elif decision.action == GateAction.PAUSE:
                    self._auto_pause(decision.reason, event.result, now)
                elif decision.action == GateAction.RESUME:
                    if self.timer.resume(now):
                        log.info("[ENGINE] Attention back, resuming")
                        self._notify_timer(now)

            self.timer.tick(now)
            return events

    def _try_auto_start(self, now: float) -> bool:
        if self.gate.phase != GatePhase.CONFIRMED or self.timer.phase != TimerPhase.IDLE:
            return False
        task_id = self.timer.selected_task_id
        if task_id is None:
            log.info("[ENGINE] Presence confirmed, ready to start once a task is selected")
            return False
        self.gate.consume()
        self._notify_gate()
        self.timer.start(task_id, now)
        log.info("[ENGINE] Presence confirmed, auto-started '%s'", task_id)
        self._notify_timer(now)
        return True

    def _auto_pause(self, reason, result: Optional[FaceAnalysisResult], now: float) -> None:
        task_id = self.timer.active_task_id
        if not self.timer.pause(now):
            return
        log.info("[ENGINE] Auto-paused '%s': %s", task_id, reason.value)
        metrics = {}
        if result is not None:
            metrics = {
                "attention_score": result.attention_score,
                "fatigue_level": result.fatigue_level.value,
                "ear_value": result.ear,
                "mar_value": result.mar,
                "blink_rate": result.blink_rate,
            }
        self.storage.log_pause(
            reason.value,
            task_id=task_id,
            elapsed_ms=self.timer.elapsed(now),
            **metrics,
        )
        self._notify_timer(now)

    # ═════════════════════════════════════════════════════════
    #  SAMPLING
    # ═════════════════════════════════════════════════════════

    def _on_detector_error(self, exc: Exception, now: float) -> None:
        self._failures += 1
        delay = min(config.DETECTOR_BACKOFF_BASE * 2 ** (self._failures - 1),
                    config.DETECTOR_BACKOFF_MAX)
        self._backoff_until = now + delay * 1000.0
        if isinstance(exc, DetectorUnavailable):
            log.warning("[ENGINE] Detector unavailable (%s), retrying in %.1fs", exc, delay)
        else:
            log.warning("[ENGINE] Detector error (%s), retrying in %.1fs", exc, delay)

    def _collect(self) -> tuple | None:
        """Finished detector call → (detection, submitted_at), else None."""
        if self._pending is None:
            return None
        future, submitted_at = self._pending
        if not future.done():
            return None
        self._pending = None
        try:
            detection = future.result()
        except Exception as e:  # any detector failure is a missed frame
            self._on_detector_error(e, submitted_at)
            return None, submitted_at
        if self._failures:
            log.info("[ENGINE] Detector recovered")
        self._failures = 0
        return detection, submitted_at

    def sample(self, wait: float | None = None) -> None:
        """One sampling tick. With `wait`, block up to that many seconds for the detector."""
        now = self.clock()
        with self._lock:
            if not self._detecting or self._executor is None:
                return
            processed = False

            collected = self._collect()
            if collected is not None:
                self.process(*collected)
                processed = True

            if self._pending is None:
                if now < self._backoff_until:
                    if not processed:
                        self.process(None, now)
                        processed = True
                else:
                    ok, frame = self.frame_source.read()
                    if not ok:
                        if not processed:
                            self.process(None, now)
                            processed = True
                    else:
                        future = self._executor.submit(self.detector.detect, frame)
                        self._pending = (future, now)

            pending = self._pending

        if wait and pending is not None:
            wait_futures([pending[0]], timeout=wait)
            with self._lock:
                collected = self._collect() if self._detecting else None
                if collected is not None:
                    self.process(*collected)
                    processed = True

        if not processed:
            with self._lock:
                self.timer.tick(now)

    def _sampling_loop(self) -> None:
        interval = config.SAMPLE_INTERVAL_MS / 1000.0
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            try:
                self.sample()
            except Exception:
                log.exception("[ENGINE] Sampling tick failed")
            next_tick += interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                next_tick = time.monotonic()
                delay = 0
            self._stop_event.wait(delay)

    # ═════════════════════════════════════════════════════════
    #  DETECTION LIFECYCLE
    # ═════════════════════════════════════════════════════════

    @property
    def detecting(self) -> bool:
        return self._detecting

    def start_detection(self, background: bool = True) -> None:
        """Begin a detection session. With `background=False` the caller drives `sample()`."""
        with self._lock:
            if self._detecting:
                return
            self._detecting = True
            self.analyzer.start(self.clock())
            self._failures = 0
            self._backoff_until = 0.0
            self._stop_event.clear()
            if self.detector is not None and self.frame_source is not None:
                self._executor = ThreadPoolExecutor(max_workers=1,
                                                    thread_name_prefix="Detector")
                if background:
                    self._thread = threading.Thread(target=self._sampling_loop,
                                                    daemon=True, name="Sampler")
                    self._thread.start()
        log.info("[ENGINE] Detection started")

    def stop_detection(self) -> None:
        """Halt sampling and clear blink / drowsy state. Gate and timer are untouched."""
        with self._lock:
            if not self._detecting:
                return
            self._detecting = False
            self._stop_event.set()
            thread, self._thread = self._thread, None
            executor, self._executor = self._executor, None
            self._pending = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

        with self._lock:
            self.analyzer.reset()
        log.info("[ENGINE] Detection stopped")

    def enter_camera_mode(self) -> None:
        with self._lock:
            self.gate.arm(self.timer.phase)
            self._notify_gate()
        self.start_detection()

    def exit_camera_mode(self) -> None:
        self.stop_detection()
        with self._lock:
            self.gate.disarm()
            self._notify_gate()

    def shutdown(self) -> None:
        self.stop_detection()
        with self._lock:
            self.timer.tick(self.clock())

    # ═════════════════════════════════════════════════════════
    #  MANUAL CONTROLS (always available)
    # ═════════════════════════════════════════════════════════

    def select_task(self, task_id: Optional[str]) -> None:
        with self._lock:
            now = self.clock()
            self.timer.select_task(None if task_id is None else str(task_id))
            if not self._try_auto_start(now):
                self._notify_timer(now)

    def _stop_and_log(self, now: float) -> Optional[tuple]:
        stopped = self.timer.stop(now)
        if stopped is not None:
            self.storage.log_session(*stopped)
        return stopped

    def start_timer(self, task_id: str) -> bool:
        with self._lock:
            now = self.clock()
            task_id = str(task_id)
            if self.timer.phase != TimerPhase.IDLE and self.timer.active_task_id != task_id:
                self._stop_and_log(now)
            started = self.timer.start(task_id, now)
            if started:
                self.gate.release()
                self._notify_gate()
                self._notify_timer(now)
            return started

    def pause_timer(self) -> bool:
        with self._lock:
            now = self.clock()
            paused = self.timer.pause(now)
            if paused:
                self._notify_timer(now)
            return paused

    def resume_timer(self) -> bool:
        with self._lock:
            now = self.clock()
            resumed = self.timer.resume(now)
            if resumed:
                self._notify_timer(now)
            return resumed

    def stop_timer(self) -> Optional[tuple]:
        with self._lock:
            now = self.clock()
            stopped = self._stop_and_log(now)
            if stopped is not None:
                self._notify_timer(now)
            return stopped

    def reset_timer(self) -> None:
        with self._lock:
            now = self.clock()
            self.timer.reset(now)
            self._notify_timer(now)

    # ═════════════════════════════════════════════════════════
    #  QUERIES
    # ═════════════════════════════════════════════════════════

    def get_blink_rate(self) -> int:
        with self._lock:
            return self.analyzer.blink_rate(self.clock())

    def get_timer_state(self) -> TimerState:
        with self._lock:
            return self.timer.state(self.clock())

    def get_gate_state(self) -> GateState:
        with self._lock:
            return self.gate.state

    def status(self) -> dict:
        with self._lock:
            now = self.clock()
            last = self.analyzer.last_result
            return {
                "detecting": self._detecting,
                "timer": self.timer.state(now).to_dict(),
                "gate": self.gate.state.to_dict(now),
                "blink_rate": self.analyzer.blink_rate(now),
                "blink_total": self.analyzer.blink_tracker.blink_total,
                "last_analysis": last.to_dict() if last is not None else None,
                "ear_history": [round(v, 4) for v in self.analyzer.ear_history],
                "attention_history": list(self.analyzer.attention_history),
                "detector_backoff": self._failures > 0,
            }
