"""
============================================================
 Focus Timer — MediaPipe Face Detector
 Wraps the FaceLandmarker task (VIDEO mode, one face) and
 maps its mesh onto the 68-point regions the analyzer
 measures.
============================================================
"""

import logging
import os
import time

import cv2
import mediapipe as mp
import numpy as np

from focustimer import config
from focustimer.analyzer import Detection
from focustimer.errors import DetectorUnavailable, MalformedLandmarks
from focustimer.geometry import LandmarkSet

log = logging.getLogger(__name__)

BaseOptions = mp.tasks.BaseOptions
FaceLandmarker = mp.tasks.vision.FaceLandmarker
FaceLandmarkerOptions = mp.tasks.vision.FaceLandmarkerOptions
VisionRunningMode = mp.tasks.vision.RunningMode


class MediaPipeDetector:
    """`detect(frame) -> Detection | None` over BGR frames."""

    def __init__(self, model_path: str | None = None):
        self.model_path = model_path or config.FACE_LANDMARKER_MODEL_PATH
        self._landmarker = None
        self._last_ts: int = 0

    def load(self):
        """Create the landmarker. Raises DetectorUnavailable if the model can't be loaded."""
        if self._landmarker is not None:
            return self
        if not os.path.exists(self.model_path):
            raise DetectorUnavailable(f"model file not found: {self.model_path}")
        options = FaceLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=self.model_path),
            running_mode=VisionRunningMode.VIDEO,
            num_faces=1,
            min_face_detection_confidence=0.5,
            min_face_presence_confidence=0.5,
            min_tracking_confidence=0.5,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
        )
        try:
            self._landmarker = FaceLandmarker.create_from_options(options)
        except (RuntimeError, ValueError, OSError) as e:
            raise DetectorUnavailable(f"FaceLandmarker failed to load: {e}") from e
        log.info("[DETECTOR] FaceLandmarker loaded (%s)", self.model_path)
        return self

    def _timestamp(self) -> int:
        # VIDEO mode rejects timestamps that don't increase
        ts = int(time.monotonic() * 1000)
        if ts <= self._last_ts:
            ts = self._last_ts + 1
        self._last_ts = ts
        return ts

    def detect(self, frame: np.ndarray) -> Detection | None:
        if self._landmarker is None:
            self.load()
        if frame is None or frame.size == 0:
            return None

        h, w = frame.shape[:2]
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        result = self._landmarker.detect_for_video(mp_image, self._timestamp())

        if not result.face_landmarks:
            return None

        landmarks = result.face_landmarks[0]
        raw = np.array([(lm.x, lm.y) for lm in landmarks], dtype=np.float64)
        inside = np.all((raw >= 0.0) & (raw <= 1.0), axis=1)
        confidence = float(inside.mean()) if len(raw) else 0.0
        coords = raw * np.array([w, h], dtype=np.float64)

        try:
            landmark_set = LandmarkSet.from_mediapipe(coords)
        except MalformedLandmarks as e:
            log.debug("[DETECTOR] Unusable mesh: %s", e)
            return None
        return Detection(landmarks=landmark_set, confidence=confidence)

    def release(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
            log.info("[DETECTOR] Released.")
