"""
============================================================
 Focus Timer — Headless Runner
 Camera → detector → monitor, printing timer progress to
 the terminal. No web server.

 Usage:
   python run_headless.py --task Study
   python run_headless.py --task Study --camera 1 --debug
============================================================
"""

import argparse
import logging
import signal
import sys
import time

from focustimer import config
from focustimer.camera import Camera
from focustimer.database import Storage
from focustimer.detector import MediaPipeDetector
from focustimer.engine import Monitor
from focustimer.timer import format_duration

log = logging.getLogger("focustimer.headless")


def main():
    parser = argparse.ArgumentParser(
        description="Focus Timer — headless camera monitor"
    )
    parser.add_argument(
        "--task", default=None,
        help="Task to select; the timer auto-starts once your face is confirmed",
    )
    parser.add_argument(
        "--camera", type=int, default=None,
        help="Camera index (default: config.CAMERA_INDEX)",
    )
    parser.add_argument(
        "--db", default=None,
        help="Database URI (default: config.DATABASE_URI)",
    )
    parser.add_argument(
        "--interval", type=float, default=1.0,
        help="Seconds between progress lines (default: 1.0)",
    )
    parser.add_argument(
        "--debug", action="store_true",
        help="Log per-frame analysis values",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    # ── Storage ──
    storage = Storage(args.db or config.DATABASE_URI)
    storage.init_db()

    # ── Camera ──
    cam_src = args.camera if args.camera is not None else config.CAMERA_INDEX
    camera = Camera(src=cam_src).start()

    cam_ready = False
    for _ in range(100):
        ok, _ = camera.read()
        if ok:
            cam_ready = True
            break
        time.sleep(0.1)
    if not cam_ready:
        log.error("[HEADLESS] Camera failed to open! Check connection.")
        camera.stop()
        sys.exit(1)

    detector = MediaPipeDetector()
    monitor = Monitor(
        storage,
        detector=detector,
        frame_source=camera,
        on_no_face=lambda: log.info("[HEADLESS] No face for %ds", config.FACE_LOST_TIMEOUT_MS // 1000),
        on_timer_change=lambda s: log.info("[HEADLESS] Timer %s %s %s", s.phase.value,
                                           s.active_task_id or "-", format_duration(s.elapsed_ms)),
    )
    if args.task:
        monitor.select_task(args.task)

    # ── Signal Handling ──
    running = True

    def _on_exit(sig, frame):
        nonlocal running
        print("\n[HEADLESS] Shutting down...")
        running = False

    signal.signal(signal.SIGINT, _on_exit)
    signal.signal(signal.SIGTERM, _on_exit)

    monitor.enter_camera_mode()
    print("[HEADLESS] Monitoring, press Ctrl+C to stop")

    try:
        while running:
            status = monitor.status()
            timer = status["timer"]
            last = status["last_analysis"] or {}
            print(
                f"\r  {timer['phase']:<8} {timer['elapsed']}  "
                f"gate={status['gate']['phase']:<16} "
                f"score={last.get('attention_score', '-'):>3}  "
                f"blinks/min={status['blink_rate']:<3}",
                end="", flush=True,
            )
            time.sleep(args.interval)
    finally:
        print()
        monitor.exit_camera_mode()
        monitor.shutdown()
        camera.stop()
        detector.release()
        storage.close()
        print("[HEADLESS] Shutdown complete.")


if __name__ == "__main__":
    main()
