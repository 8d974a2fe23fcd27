"""
MQTT client wrapper: connection lifecycle, topic fan-out and health tracking.

Connectivity changes are published on the EventBus as
``DeviceEvent.CONNECTIVITY_CHANGED`` and, when given, reported to an
``on_connectivity(connected)`` callback so the staleness watchdog can track
the transport separately from data freshness.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

from growchamber.constants import Timeouts
from growchamber.enums.events import DeviceEvent
from growchamber.hardware.mqtt.client_factory import create_mqtt_client
from growchamber.schemas.events import ConnectivityStatePayload
from growchamber.utils.event_bus import EventBus
from growchamber.utils.time import iso_now, utc_now

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Any, Any, Any], None]


@dataclass
class HealthStatus:
    """
    Tracks the health status of the MQTT client connection.
    """

    is_connected: bool = False
    last_error: str | None = None
    last_error_time: datetime | None = None
    connection_attempts: int = 0
    disconnects: int = 0
    successful_publishes: int = 0
    failed_publishes: int = 0
    active_subscriptions: int = 0

    @property
    def success_rate(self) -> float:
        """Publish success rate percentage"""
        total_publishes = self.successful_publishes + self.failed_publishes
        if total_publishes == 0:
            return 0.0
        return (self.successful_publishes / total_publishes) * 100

    def mark_connected(self):
        self.is_connected = True
        self.last_error = None
        self.last_error_time = None

    def mark_disconnected(self):
        self.is_connected = False
        self.disconnects += 1

    def record_error(self, error: Exception | str):
        self.last_error = str(error)
        self.last_error_time = utc_now()

    def to_dict(self):
        """Return health status as a dictionary."""
        return {
            "is_connected": self.is_connected,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "connection_attempts": self.connection_attempts,
            "disconnects": self.disconnects,
            "successful_publishes": self.successful_publishes,
            "failed_publishes": self.failed_publishes,
            "active_subscriptions": self.active_subscriptions,
            "publish_success_rate": round(self.success_rate, 2),
        }


class MQTTClientWrapper:
    """
    Wrapper class for handling MQTT client functionality.

    Subscriptions are remembered and re-issued after every reconnect; paho's
    network loop reconnects on its own with exponential backoff.
    """

    def __init__(
        self,
        broker: str,
        port: int,
        client_id: str = "",
        *,
        on_connectivity: Optional[Callable[[bool], None]] = None,
        client: Optional[mqtt.Client] = None,
        event_bus: Optional[EventBus] = None,
        auto_connect: bool = True,
    ):
        """
        Args:
            broker: The MQTT broker address.
            port: The MQTT broker port.
            client_id: The MQTT client ID.
            on_connectivity: Called with True/False on every transport change.
            client: Pre-built paho client (tests).
            event_bus: EventBus for connectivity events; the singleton by default.
            auto_connect: Connect immediately.
        """
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.client = client or create_mqtt_client(client_id=client_id)
        self.connected = False
        self._on_connectivity = on_connectivity
        self._callback_lock = threading.Lock()
        self._callbacks: list[tuple[str, MessageCallback]] = []
        self.client.on_message = self._dispatch_message
        self.client.on_connect = self._handle_connect
        self.client.on_disconnect = self._handle_disconnect
        self.event_bus = event_bus or EventBus()
        self.health_status = HealthStatus()
        if auto_connect:
            self.connect()

    @property
    def endpoint(self) -> str:
        return f"{self.broker}:{self.port}"

    def connect(self) -> bool:
        """
        Start the network loop and connect. Returns False when the first
        attempt failed; paho keeps retrying in the background either way.
        """
        self.health_status.connection_attempts += 1
        try:
            self.client.connect(self.broker, self.port, Timeouts.MQTT_KEEPALIVE)
        except (OSError, ValueError) as e:
            logger.error("Error connecting to MQTT broker %s: %s", self.endpoint, e)
            self.health_status.record_error(e)
            self._set_connected(False, reason=str(e))
            # Keep retrying in the background
            self.client.connect_async(self.broker, self.port, Timeouts.MQTT_KEEPALIVE)
            self.client.loop_start()
            return False
        self.client.loop_start()
        return True

    def disconnect(self):
        """Disconnect and stop the network loop."""
        try:
            self.client.disconnect()
        except (OSError, ValueError) as e:
            logger.error("Error disconnecting from MQTT broker: %s", e)
            self.health_status.record_error(e)
        finally:
            self.client.loop_stop()
            self._set_connected(False, reason="shutdown")
            logger.info("Disconnected from MQTT broker %s", self.endpoint)

    def publish(self, topic: str, payload: str | bytes, qos: int = 0) -> bool:
        """
        Publish a message. Returns True when paho accepted it.
        """
        if not self.connected:
            self.health_status.failed_publishes += 1
            logger.warning("MQTT client not connected. Cannot publish to %s.", topic)
            return False
        try:
            msg_info = self.client.publish(topic, payload, qos=qos)
        except (OSError, ValueError) as e:
            self.health_status.failed_publishes += 1
            self.health_status.record_error(e)
            logger.error("Error publishing to MQTT topic %s: %s", topic, e)
            return False
        if msg_info.rc == mqtt.MQTT_ERR_SUCCESS:
            self.health_status.successful_publishes += 1
            logger.debug("Published to %s: %s", topic, payload)
            return True
        self.health_status.failed_publishes += 1
        logger.error("Failed to publish to %s. MQTT result code: %s", topic, msg_info.rc)
        return False

    def subscribe(self, topic: str, callback: MessageCallback) -> None:
        """
        Register ``callback(client, userdata, msg)`` for ``topic`` (wildcards allowed).

        The subscription is sent now if connected and again after every reconnect.
        """
        with self._callback_lock:
            self._callbacks.append((topic, callback))
            self.health_status.active_subscriptions = len({t for t, _ in self._callbacks})
        if self.connected:
            self._send_subscribe(topic)

    def _send_subscribe(self, topic: str) -> None:
        result, _mid = self.client.subscribe(topic)
        if result == mqtt.MQTT_ERR_SUCCESS:
            logger.info("Subscribed to topic %s", topic)
        else:
            logger.error("Failed to subscribe to topic %s: result code %s", topic, result)

    def _handle_connect(self, client, userdata, flags, rc) -> None:
        if rc != 0:
            logger.error("MQTT broker %s refused connection: rc=%s", self.endpoint, rc)
            self.health_status.record_error(f"connect rc={rc}")
            self._set_connected(False, reason=f"rc={rc}")
            return
        logger.info("Connected to MQTT broker %s", self.endpoint)
        self.health_status.mark_connected()
        with self._callback_lock:
            topics = list(dict.fromkeys(t for t, _ in self._callbacks))
        for topic in topics:
            self._send_subscribe(topic)
        self._set_connected(True)

    def _handle_disconnect(self, client, userdata, rc) -> None:
        if rc != 0:
            logger.warning("Unexpected MQTT disconnect from %s (rc=%s); reconnecting", self.endpoint, rc)
        self._set_connected(False, reason=f"rc={rc}")

    def _set_connected(self, connected: bool, *, reason: str | None = None) -> None:
        was_connected = self.connected
        self.connected = connected
        if connected == was_connected:
            return
        if not connected:
            self.health_status.mark_disconnected()
        payload = ConnectivityStatePayload(
            connection_type="mqtt",
            status="connected" if connected else "disconnected",
            endpoint=self.endpoint,
            port=self.port,
            details={"reason": reason} if reason else None,
            timestamp=iso_now(),
        )
        self.event_bus.publish(DeviceEvent.CONNECTIVITY_CHANGED, payload)
        if self._on_connectivity is not None:
            try:
                self._on_connectivity(connected)
            except Exception as e:
                logger.error("Connectivity callback failed: %s", e, exc_info=True)

    def _dispatch_message(self, client, userdata, msg) -> None:
        """
        Fan out MQTT messages to all registered callbacks that match the topic
        using MQTT wildcard semantics.
        """
        with self._callback_lock:
            callbacks = list(self._callbacks)

        handled = False
        for sub, callback in callbacks:
            if not mqtt.topic_matches_sub(sub, msg.topic):
                continue
            handled = True
            try:
                callback(client, userdata, msg)
            except Exception as e:
                logger.error("Error in MQTT callback for topic %s: %s", sub, e, exc_info=True)

        if not handled:
            logger.debug("MQTT message on %s had no registered handlers", msg.topic)
