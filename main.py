"""
============================================================
 Focus Timer — Main Entry Point
 Run: python main.py
============================================================
"""

import logging
import signal
import sys
import types

from focustimer import config, create_app, socketio


def signal_handler(sig: int, frame: types.FrameType | None) -> None:
    """Handle Ctrl+C gracefully."""
    print("\n\n[FOCUS] Shutting down...")
    from focustimer.routes import stop_engine
    stop_engine()
    sys.exit(0)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    print(r"""
    ╔═══════════════════════════════════════════════════════╗
    ║   Focus Timer — attention-gated activity timer        ║
    ╚═══════════════════════════════════════════════════════╝
    """)
    print(f"  🌐 API:        http://{config.FLASK_HOST}:{config.FLASK_PORT}/api/status")
    print(f"  📷 Camera:     Source {config.CAMERA_INDEX}")
    print(f"  🧠 Model:      {config.FACE_LANDMARKER_MODEL_PATH}")
    print(f"  💾 Database:   {config.DATABASE_URI}")
    print()

    app = create_app()

    # Register signal handler AFTER app is created to avoid interference during init
    signal.signal(signal.SIGINT, signal_handler)

    socketio.run(
        app,
        host=config.FLASK_HOST,
        port=config.FLASK_PORT,
        debug=config.FLASK_DEBUG,
        use_reloader=False,
        log_output=False,
        allow_unsafe_werkzeug=True,
    )


if __name__ == "__main__":
    main()
