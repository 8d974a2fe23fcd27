"""growchamber.socketio.live_handlers

Lifecycle handlers for the ``/live`` namespace. Broadcasting is done by
EmitterService; a newly connected dashboard gets the current state
immediately instead of waiting for the next snapshot or watchdog tick.
"""

import logging

from flask import current_app, request
from flask_socketio import emit

from growchamber.enums.events import WebSocketEvent
from growchamber.schemas.events import build_live_state_payload, build_watchdog_payload
from growchamber.utils.emitters import SOCKETIO_NAMESPACE_LIVE

logger = logging.getLogger(__name__)


def _current_state():
    container = current_app.config.get("CONTAINER")
    if container is None:
        return None
    return container.store.current()


def handle_live_connect():
    logger.info("Client %s connected to %s", request.sid, SOCKETIO_NAMESPACE_LIVE)
    state = _current_state()
    if state is None:
        return
    emit(WebSocketEvent.LIVE_STATE.value, build_live_state_payload(state).model_dump(mode="json"))
    emit(
        WebSocketEvent.WATCHDOG_STATUS.value,
        {source.value: build_watchdog_payload(status).model_dump() for source, status in state.watchdog.items()},
    )


def handle_request_state(_data=None):
    state = _current_state()
    if state is not None:
        emit(WebSocketEvent.LIVE_STATE.value, build_live_state_payload(state).model_dump(mode="json"))


def handle_live_disconnect():
    logger.info("Client %s disconnected from %s", request.sid, SOCKETIO_NAMESPACE_LIVE)


def register_live_handlers(sio) -> None:
    """Attach the ``/live`` handlers to the server created by the latest ``init_app``."""
    sio.on_event("connect", handle_live_connect, namespace=SOCKETIO_NAMESPACE_LIVE)
    sio.on_event("request_state", handle_request_state, namespace=SOCKETIO_NAMESPACE_LIVE)
    sio.on_event("disconnect", handle_live_disconnect, namespace=SOCKETIO_NAMESPACE_LIVE)
