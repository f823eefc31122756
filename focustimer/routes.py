"""
============================================================
 Focus Timer — Routes & Realtime Events
 JSON API over the Monitor plus SocketIO pushes for
 analysis results, absence, timer and gate changes.
============================================================
"""

import logging
from datetime import datetime

from flask import jsonify, request

from focustimer import config

log = logging.getLogger(__name__)

# ── Module-level references (populated by register_routes) ──
_monitor = None
_socketio = None
_camera = None
_detector = None
_session_start: datetime | None = None


# ═════════════════════════════════════════════════════════════
#  PUBLIC API, called from __init__.py
# ═════════════════════════════════════════════════════════════

def register_routes(app, socketio, monitor, camera=None, detector=None):
    """Register all Flask routes and hook the monitor's callbacks to SocketIO."""
    global _monitor, _socketio, _camera, _detector, _session_start
    _monitor = monitor
    _socketio = socketio
    _camera = camera
    _detector = detector
    _session_start = datetime.utcnow()

    monitor.on_analysis = _emit_analysis
    monitor.on_no_face = _emit_no_face
    monitor.on_timer_change = _emit_timer
    monitor.on_gate_change = _emit_gate

    # ── Status ──
    @app.route("/api/status")
    def api_status():
        status = monitor.status()
        status["version"] = config.VERSION
        return jsonify(status)

    @app.route("/api/tasks")
    def api_tasks():
        state = monitor.get_timer_state()
        return jsonify({
            "task_times": monitor.timer.task_times,
            "selected_task_id": state.selected_task_id,
            "active_task_id": state.active_task_id,
        })

    @app.route("/api/pauses")
    def api_pauses():
        limit = request.args.get("limit", config.RECENT_PAUSES_LIMIT, type=int)
        return jsonify(monitor.storage.recent_pauses(limit=limit))

    @app.route("/api/stats")
    def api_stats():
        stats = monitor.storage.pause_stats(since=_session_start)
        stats["sessions"] = monitor.storage.recent_sessions(limit=10)
        return jsonify(stats)

    # ── Timer controls ──
    @app.route("/api/timer/start", methods=["POST"])
    def api_timer_start():
        task_id = _task_id_from_request()
        if task_id is None:
            return jsonify({"ok": False, "error": "task_id is required"}), 400
        ok = monitor.start_timer(task_id)
        return _timer_response(monitor, ok)

    @app.route("/api/timer/pause", methods=["POST"])
    def api_timer_pause():
        return _timer_response(monitor, monitor.pause_timer())

    @app.route("/api/timer/resume", methods=["POST"])
    def api_timer_resume():
        return _timer_response(monitor, monitor.resume_timer())

    @app.route("/api/timer/stop", methods=["POST"])
    def api_timer_stop():
        return _timer_response(monitor, monitor.stop_timer() is not None)

    @app.route("/api/timer/reset", methods=["POST"])
    def api_timer_reset():
        monitor.reset_timer()
        return _timer_response(monitor, True)

    @app.route("/api/tasks/select", methods=["POST"])
    def api_select_task():
        monitor.select_task(_task_id_from_request())
        return _timer_response(monitor, True)

    # ── Camera / detection ──
    @app.route("/api/camera", methods=["POST"])
    def api_camera():
        data = request.get_json(silent=True) or {}
        if data.get("enabled", True):
            monitor.enter_camera_mode()
        else:
            monitor.exit_camera_mode()
        return jsonify({
            "ok": True,
            "detecting": monitor.detecting,
            "gate": monitor.get_gate_state().to_dict(),
        })

    @app.route("/api/detection/start", methods=["POST"])
    def api_detection_start():
        monitor.start_detection()
        return jsonify({"ok": True, "detecting": monitor.detecting})

    @app.route("/api/detection/stop", methods=["POST"])
    def api_detection_stop():
        monitor.stop_detection()
        return jsonify({"ok": True, "detecting": monitor.detecting})

    # ── SocketIO connect event ──
    @socketio.on("connect")
    def on_connect():
        socketio.emit("system_status", {
            "message": "Focus timer online.",
            "version": config.VERSION,
            "detecting": monitor.detecting,
        })
        socketio.emit("timer_update", monitor.get_timer_state().to_dict())


def stop_engine():
    """Stop detection and release the camera and detector."""
    global _monitor, _camera, _detector

    if _monitor is not None:
        _monitor.shutdown()
        _monitor = None

    if _camera is not None:
        _camera.stop()
        _camera = None

    if _detector is not None:
        _detector.release()
        _detector = None

    log.info("[ENGINE] All resources released.")


# ═════════════════════════════════════════════════════════════
#  HELPERS
# ═════════════════════════════════════════════════════════════

def _task_id_from_request():
    data = request.get_json(silent=True) or {}
    task_id = data.get("task_id")
    return None if task_id in (None, "") else str(task_id)


def _timer_response(monitor, ok: bool):
    return jsonify({"ok": bool(ok), "timer": monitor.get_timer_state().to_dict()})


def _emit(event: str, payload) -> None:
    if _socketio is None:
        return
    _socketio.emit(event, payload)


def _emit_analysis(result) -> None:
    _emit("analysis", result.to_dict())


def _emit_no_face() -> None:
    _emit("no_face", {"timeout_ms": config.FACE_LOST_TIMEOUT_MS})


def _emit_timer(state) -> None:
    _emit("timer_update", state.to_dict())


def _emit_gate(state) -> None:
    _emit("gate_update", state.to_dict())
