"""
WebSocket Emitters
==================

Purpose:
    Centralized WebSocket emitter service leveraging the Flask-SocketIO server.

Features:
- Subscribes to the live state store and pushes every published record to
  dashboards on the ``/live`` namespace.
- Watchdog status, recommendations, triggered actions and alerts are also
  emitted as their own events, but only when they changed.
- Payloads are pydantic models from ``growchamber.schemas.events``.
"""

import logging
from typing import Any, Callable, Optional

from flask_socketio import SocketIO

from growchamber.domain.live_state import LiveState
from growchamber.enums.events import WebSocketEvent
from growchamber.schemas.events import (
    build_alert_payload,
    build_live_state_payload,
    build_recommendation_payload,
    build_triggered_action_payload,
    build_watchdog_payload,
)

logger = logging.getLogger(__name__)

# Socket.IO Namespace Constants
SOCKETIO_NAMESPACE_LIVE = "/live"


def _watchdog_signature(state: LiveState) -> dict:
    return {
        source: (status.source_state, status.transport_connected)
        for source, status in state.watchdog.items()
    }


class EmitterService:
    """
    Centralized WebSocket Emitter Service.

    Attributes:
        sio: The Socket.IO SocketIO instance for emitting events.
        namespace: Namespace every live event is emitted on.
    """

    def __init__(self, sio: SocketIO, namespace: str = SOCKETIO_NAMESPACE_LIVE):
        self.sio = sio
        self.namespace = namespace
        self._unsubscribe: Optional[Callable[[], None]] = None

    def emit(self, event: str, payload: Any, room: str | None = None) -> None:
        """
        Emit a Socket.IO event on the live namespace.

        Failures are logged; a broken client connection never reaches the
        telemetry pipeline.
        """
        try:
            logger.debug("Emitting event='%s' to namespace='%s' room='%s'", event, self.namespace, room or "broadcast")
            self.sio.emit(event, payload, room=room, namespace=self.namespace)
        except Exception as e:
            logger.exception("[Emitter] Failed to emit event '%s': %s", event, e)

    # ---------------------------------------------------------------------
    # Live state wiring
    # ---------------------------------------------------------------------

    def attach(self, store) -> None:
        """Emit on every publish of ``store`` (a LiveStateStore)."""
        self.detach()
        self._unsubscribe = store.subscribe(self.on_state_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_state_change(self, previous: LiveState, current: LiveState) -> None:
        self.emit_live_state(current)

        if _watchdog_signature(previous) != _watchdog_signature(current):
            self.emit_watchdog_status(current)
        if previous.recommendations != current.recommendations:
            self.emit_recommendations(current)
        if current.triggered_actions and previous.triggered_actions != current.triggered_actions:
            self.emit_triggered_actions(current)

        known = set(previous.alerts)
        for alert in reversed(current.alerts):
            if alert not in known:
                self.emit(WebSocketEvent.ALERT.value, build_alert_payload(alert).model_dump())

    # ---------------------------------------------------------------------
    # Individual events
    # ---------------------------------------------------------------------

    def emit_live_state(self, state: LiveState) -> None:
        self.emit(WebSocketEvent.LIVE_STATE.value, build_live_state_payload(state).model_dump(mode="json"))

    def emit_watchdog_status(self, state: LiveState) -> None:
        payload = {source.value: build_watchdog_payload(status).model_dump() for source, status in state.watchdog.items()}
        self.emit(WebSocketEvent.WATCHDOG_STATUS.value, payload)

    def emit_recommendations(self, state: LiveState) -> None:
        payload = [build_recommendation_payload(rec).model_dump() for rec in state.recommendations]
        self.emit(WebSocketEvent.RECOMMENDATIONS.value, payload)

    def emit_triggered_actions(self, state: LiveState) -> None:
        payload = [build_triggered_action_payload(t).model_dump() for t in state.triggered_actions]
        self.emit(WebSocketEvent.TRIGGERED_ACTIONS.value, payload)
