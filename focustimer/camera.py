"""
============================================================
 Focus Timer — Threaded Camera
 Background capture with reconnect; `read()` hands out the
 latest frame by atomic reference swap.
============================================================
"""

import logging
import threading
import time

import cv2

from focustimer import config

log = logging.getLogger(__name__)


class Camera:
    """Latest-frame camera capture."""

    def __init__(self, src=None):
        self.src = src if src is not None else config.CAMERA_INDEX
        self.cap = None
        self._current_frame = None    # atomic reference
        self.running = False
        self._thread = None
        self._first_frame = False

    def start(self):
        """Open the camera and start the capture thread."""
        self._connect()
        if self.cap is None or not self.cap.isOpened():
            log.error("[CAMERA] Failed to open source %s", self.src)
            return self

        self.running = True
        self._thread = threading.Thread(target=self._update, daemon=True, name="Camera")
        self._thread.start()
        log.info("[CAMERA] Capture thread started (source=%s)", self.src)
        return self

    def _connect(self):
        if self.cap is not None:
            self.cap.release()
            self.cap = None

        cap = cv2.VideoCapture(self.src)
        if not cap.isOpened():
            log.warning("[CAMERA] cv2.VideoCapture failed for source %s", self.src)
            return

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.CAMERA_WIDTH)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.CAMERA_HEIGHT)
        cap.set(cv2.CAP_PROP_FPS, config.CAMERA_FPS)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        actual_w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        log.info("[CAMERA] Opened source %s (%dx%d)", self.src, actual_w, actual_h)
        self.cap = cap

    def _update(self):
        while self.running:
            if self.cap is None or not self.cap.isOpened():
                log.warning("[CAMERA] Lost connection. Reconnecting...")
                time.sleep(config.CAMERA_RECONNECT_DELAY)
                self._connect()
                continue

            ret, frame = self.cap.read()
            if not ret or frame is None:
                time.sleep(0.01)
                continue

            if config.CAMERA_FLIP_HORIZONTAL:
                frame = cv2.flip(frame, 1)

            self._current_frame = frame

            if not self._first_frame:
                self._first_frame = True
                h, w = frame.shape[:2]
                log.info("[CAMERA] First frame captured (%dx%d)", w, h)

    def read(self):
        """Return (ok, frame) for the latest frame."""
        frame = self._current_frame
        if frame is None:
            return False, None
        return True, frame

    def stop(self):
        self.running = False
        if self._thread is not None:
            self._thread.join(timeout=3)
            self._thread = None
        if self.cap is not None:
            self.cap.release()
            self.cap = None
        log.info("[CAMERA] Stopped and released.")

    @property
    def is_opened(self):
        return self.cap is not None and self.cap.isOpened()
