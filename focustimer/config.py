"""
============================================================
 Focus Timer — Central Configuration
 All tunable thresholds and constants live here.
============================================================
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ── Camera ──────────────────────────────────────────────────
CAMERA_INDEX = int(os.getenv("CAMERA_INDEX", 0))
CAMERA_WIDTH = 640
CAMERA_HEIGHT = 480
CAMERA_FPS = 30
CAMERA_RECONNECT_DELAY = 2.0
CAMERA_FLIP_HORIZONTAL = True  # Mirror view, matches what the user sees

# ── Flask ───────────────────────────────────────────────────
FLASK_SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "change-me")
FLASK_HOST = os.getenv("FLASK_HOST", "127.0.0.1")
FLASK_PORT = int(os.getenv("FLASK_PORT", 5000))
FLASK_DEBUG = False

# ── MediaPipe Face Landmarker ───────────────────────────────
FACE_LANDMARKER_MODEL_PATH = os.getenv(
    "FACE_LANDMARKER_MODEL_PATH", "face_landmarker.task"
)
MIN_FACE_CONFIDENCE = float(os.getenv("MIN_FACE_CONFIDENCE", 0.15))

# Detector retry after DetectorUnavailable / detector errors (seconds)
DETECTOR_BACKOFF_BASE = 1.0
DETECTOR_BACKOFF_MAX = 30.0

# ── Sampling ────────────────────────────────────────────────
SAMPLE_INTERVAL_MS = 150      # Analysis cadence, independent of rendering
FACE_LOST_TIMEOUT_MS = 5000   # Sustained absence before FaceLostTimeout

# ── Geometry fallbacks ──────────────────────────────────────
EAR_FALLBACK = 0.25  # Indeterminate eye state (never 0 → no fake blinks)
MAR_FALLBACK = 0.0
EYE_POINTS = 6
MOUTH_MIN_POINTS = 20

# ── Gaze buckets (eye-center relative pixels) ───────────────
GAZE_HORIZONTAL_THRESHOLD = 8
GAZE_VERTICAL_THRESHOLD = 6

# ── Blink Detection ─────────────────────────────────────────
BLINK_EAR_THRESHOLD = 0.25
BLINK_MIN_DURATION_MS = 100
BLINK_MAX_DURATION_MS = 500
BLINK_RATE_WINDOW_MS = 60000

# Blink-rate bands (blinks/min): <8 very drowsy, <12 drowsy,
# <=25 normal, <=35 slightly tense, above very tense
BLINK_RATE_VERY_LOW = 8
BLINK_RATE_LOW = 12
BLINK_RATE_HIGH = 25
BLINK_RATE_VERY_HIGH = 35

# ── Attention Score Deductions ──────────────────────────────
# (threshold, deduction): checked most severe first, one tier per signal
EAR_DEDUCTIONS = ((0.15, 40), (0.20, 25), (0.25, 10))            # ear < t
MAR_DEDUCTIONS = ((0.7, 30), (0.5, 15))                          # mar > t
HEAD_MOVEMENT_DEDUCTIONS = ((45.0, 25), (25.0, 15))              # sum > t
GAZE_OFF_CENTER_DEDUCTION = 20
BLINK_LOW_DEDUCTIONS = ((BLINK_RATE_VERY_LOW, 35), (BLINK_RATE_LOW, 20))      # rate < t
BLINK_HIGH_DEDUCTIONS = ((BLINK_RATE_VERY_HIGH, 25), (BLINK_RATE_HIGH, 10))   # rate > t

# ── Drowsiness / Fatigue ────────────────────────────────────
DROWSY_EAR_THRESHOLD = 0.20
DROWSY_MAR_THRESHOLD = 0.4
DROWSY_PITCH_THRESHOLD = 25.0
DROWSY_BLINK_RATE = BLINK_RATE_LOW

FATIGUE_HIGH_SCORE = 30
FATIGUE_HIGH_EAR = 0.15
FATIGUE_HIGH_FRAMES = 10
FATIGUE_MEDIUM_SCORE = 60
FATIGUE_MEDIUM_EAR = 0.20
FATIGUE_MEDIUM_FRAMES = 5

ATTENTIVE_SCORE = 70  # is_attentive when score above this

# ── Presence Gate ───────────────────────────────────────────
PRESENCE_CONFIRM_MS = 5000    # Continuous face presence before auto-start
PAUSE_SCORE_THRESHOLD = 30    # Auto-pause below this attention score
RESUME_SCORE_THRESHOLD = 40   # Auto-resume above this attention score

# ── Trend History ───────────────────────────────────────────
EAR_HISTORY_LENGTH = 30
ATTENTION_HISTORY_LENGTH = 60

# ── Database ────────────────────────────────────────────────
DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///focus_timer.db")
TIMER_STATE_KEY = "timer_state"
TASK_TIMES_KEY = "task_times"

# ── Dashboard ───────────────────────────────────────────────
RECENT_PAUSES_LIMIT = 50

# ── Version ─────────────────────────────────────────────────
VERSION = "1.0.0"
