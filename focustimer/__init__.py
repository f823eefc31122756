"""
============================================================
 Focus Timer — Flask Application Factory
============================================================
"""

from flask import Flask
from flask_socketio import SocketIO

socketio = SocketIO()


def create_app(monitor=None):
    """Create and configure the Flask application.

    Without a `monitor`, builds the default one: SQLite storage, the
    threaded camera and the MediaPipe detector.
    """
    app = Flask(__name__)

    from focustimer import config
    app.config["SECRET_KEY"] = config.FLASK_SECRET_KEY

    # Initialize extensions
    socketio.init_app(app, async_mode="threading", cors_allowed_origins="*")

    camera = detector = None
    if monitor is None:
        from focustimer.camera import Camera
        from focustimer.database import Storage
        from focustimer.detector import MediaPipeDetector
        from focustimer.engine import Monitor

        storage = Storage(config.DATABASE_URI)
        storage.init_db()
        camera = Camera().start()
        detector = MediaPipeDetector()
        monitor = Monitor(storage, detector=detector, frame_source=camera)

    app.extensions["focustimer.monitor"] = monitor

    # Register routes
    from focustimer.routes import register_routes
    register_routes(app, socketio, monitor, camera=camera, detector=detector)

    return app
