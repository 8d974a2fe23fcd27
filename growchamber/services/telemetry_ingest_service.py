"""
Telemetry Ingest Service
========================

Router for controller telemetry arriving over MQTT.

This service is strictly responsible for:
1. Subscribing to the controller and nutrient-controller topics.
2. Decoding JSON payloads.
3. Handing each event to the :class:`TelemetryPipeline`.

It does NOT fuse, validate readings or evaluate rules; that all happens on
the pipeline's serialized path. Handlers never raise into the MQTT loop.

Topics (``prefix`` defaults to ``grow_drexl_v2``):

    {prefix}/data                sensorData      -> apply_sensor_data
    {nutrient_prefix}/sensors    nutrientSensors -> apply_nutrient_sensors
    {nutrient_prefix}/status     nutrientStatus  -> apply_nutrient_status
    {prefix}/watchdog            watchdogStatus  -> apply_watchdog_status
    {prefix}/alert               alert           -> apply_alert
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any, Callable, Mapping

from growchamber.enums.events import TelemetryEvent
from growchamber.services.telemetry_pipeline import TelemetryPipeline

logger = logging.getLogger(__name__)


class TelemetryIngestService:
    """Decodes MQTT telemetry and routes it to the pipeline."""

    def __init__(
        self,
        mqtt_client,
        pipeline: TelemetryPipeline,
        *,
        topic_prefix: str = "grow_drexl_v2",
        nutrient_prefix: str = "grow/esp32/nutrients",
    ):
        self.mqtt_client = mqtt_client
        self.pipeline = pipeline
        self.routes: dict[str, TelemetryEvent] = {
            f"{topic_prefix}/data": TelemetryEvent.SENSOR_DATA,
            f"{nutrient_prefix}/sensors": TelemetryEvent.NUTRIENT_SENSORS,
            f"{nutrient_prefix}/status": TelemetryEvent.NUTRIENT_STATUS,
            f"{topic_prefix}/watchdog": TelemetryEvent.WATCHDOG_STATUS,
            f"{topic_prefix}/alert": TelemetryEvent.ALERT,
        }
        self._handlers: dict[TelemetryEvent, Callable[[Mapping[str, Any]], Any]] = {
            TelemetryEvent.SENSOR_DATA: self.pipeline.apply_sensor_data,
            TelemetryEvent.NUTRIENT_SENSORS: self.pipeline.apply_nutrient_sensors,
            TelemetryEvent.NUTRIENT_STATUS: self.pipeline.apply_nutrient_status,
            TelemetryEvent.WATCHDOG_STATUS: self.pipeline.apply_watchdog_status,
            TelemetryEvent.ALERT: self.pipeline.apply_alert,
        }
        self._counters: dict[str, int] = defaultdict(int)

        self._subscribe_to_topics()
        logger.info("TelemetryIngestService initialized and listening")

    # ---------------------------------------------------------------------
    # Topic Management
    # ---------------------------------------------------------------------

    def _subscribe_to_topics(self) -> None:
        for topic in self.routes:
            try:
                self.mqtt_client.subscribe(topic, self._on_message)
                logger.debug("Subscribed to MQTT topic: %s", topic)
            except Exception as exc:
                logger.error("Failed to subscribe to %s: %s", topic, exc)
                self._counters["subscribe_errors"] += 1

    # ---------------------------------------------------------------------
    # Message Handling
    # ---------------------------------------------------------------------

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        """
        Route one MQTT message.

        Guaranteed not to raise exceptions to prevent killing the MQTT loop.
        """
        topic = str(getattr(msg, "topic", ""))
        payload_bytes = getattr(msg, "payload", b"")
        self._counters["received"] += 1

        event = self.routes.get(topic)
        if event is None:
            logger.warning("Unroutable MQTT topic: %s", topic)
            self._counters["unknown_topic"] += 1
            return

        data = self._parse_json(payload_bytes, source=event.value)
        if data is None:
            return

        try:
            self.handle_event(event, data)
        except Exception as exc:
            logger.exception("Telemetry handling error topic=%s: %s", topic, exc)
            self._counters["failed"] += 1

    def handle_event(self, event: TelemetryEvent | str, data: Mapping[str, Any]) -> Any:
        """Apply a decoded event; also used by transports other than MQTT."""
        event = TelemetryEvent(event)
        result = self._handlers[event](data)
        self._counters[event.value] += 1
        return result

    def _parse_json(self, payload: bytes, *, source: str) -> dict[str, Any] | None:
        """Safely decodes MQTT byte payload into a JSON dictionary."""
        try:
            decoded = payload.decode(errors="strict") if isinstance(payload, (bytes, bytearray)) else str(payload)
            data = json.loads(decoded)

            if not isinstance(data, dict):
                logger.warning("Dropped non-dict payload from %s", source)
                self._counters["invalid"] += 1
                return None

            return data

        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from %s: %s", source, exc)
            self._counters["invalid"] += 1
        except UnicodeDecodeError as exc:
            logger.error("Payload decode error from %s: %s", source, exc)
            self._counters["invalid"] += 1

        return None

    def get_stats(self) -> dict[str, int]:
        return dict(self._counters)
