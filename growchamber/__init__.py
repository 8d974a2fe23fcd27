from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from growchamber.blueprints.api.automation import automation_api
from growchamber.blueprints.api.health import health_api
from growchamber.blueprints.api.live import live_api
from growchamber.config import load_config, setup_logging
from growchamber.extensions import init_extensions, socketio

MAX_REQUEST_BYTES = 1024 * 1024


def create_app(config_overrides: dict[str, Any] | None = None, *, bootstrap_runtime: bool = False) -> Flask:
    config = load_config()
    if config_overrides:
        for key, value in config_overrides.items():
            setattr(config, key if hasattr(config, key) else key.lower(), value)

    # Configure logging early so MQTT connect and rule loading are visible
    setup_logging(debug=config.DEBUG, log_file=config.log_file_path)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())
    flask_app.config["MAX_CONTENT_LENGTH"] = MAX_REQUEST_BYTES

    # Socket.IO must exist before the container attaches the emitter
    init_extensions(flask_app, config.socketio_cors_origins)

    from growchamber.services.container import ServiceContainer

    container = ServiceContainer.build(config, start_runtime=bootstrap_runtime, socketio=socketio)
    flask_app.config["CONTAINER"] = container

    # ── Graceful shutdown handlers ──────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        if getattr(container, "_shutdown_complete", False):
            return
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    atexit.register(_graceful_shutdown, "atexit")

    if bootstrap_runtime:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(OSError, ValueError):
                signal.signal(sig, _signal_handler)

    # Global JSON error handler for /api/ routes. Domain exceptions carry
    # their own ``http_status``.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith("/api/"):
            raise exc
        from growchamber.domain.exceptions import GrowChamberError
        from growchamber.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, GrowChamberError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context="unhandled")

    @flask_app.errorhandler(413)
    def _handle_too_large(_exc):
        from growchamber.utils.http import error_response

        return error_response("Request payload too large", 413)

    # ── API version prefix ──────────────────────────────────────────
    V1 = "/api/v1"

    flask_app.register_blueprint(live_api, url_prefix=f"{V1}/live")
    flask_app.register_blueprint(automation_api, url_prefix=f"{V1}/automation")
    flask_app.register_blueprint(health_api, url_prefix=f"{V1}/health")

    # Register Socket.IO event handlers (must be after socketio init)
    from growchamber.socketio import register_handlers

    register_handlers()

    for bp_name in flask_app.blueprints:
        logging.info("Registered blueprint: %s", bp_name)

    return flask_app


__all__ = ["create_app", "socketio"]
