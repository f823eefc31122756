"""
============================================================
 Focus Timer — Error Taxonomy
 None of these are fatal: every one degrades to a safe default.
============================================================
"""


class FocusTimerError(Exception):
    """Base class for all focus timer errors."""


class DetectorUnavailable(FocusTimerError):
    """Model or camera not ready. The caller retries with backoff."""


class MalformedLandmarks(FocusTimerError):
    """Landmark data cannot be interpreted as 2D points."""


class StorageWriteFailure(FocusTimerError):
    """Persisting timer state failed. The timer keeps running in memory."""
