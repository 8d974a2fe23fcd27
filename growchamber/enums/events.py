from enum import Enum
from typing import TypeAlias


class WebSocketEvent(str, Enum):
    """WebSocket event names for real-time communication."""

    LIVE_STATE = "live_state"
    WATCHDOG_STATUS = "watchdog_status"
    RECOMMENDATIONS = "recommendations"
    TRIGGERED_ACTIONS = "triggered_actions"
    ALERT = "alert"


class TelemetryEvent(str, Enum):
    """Inbound telemetry event kinds, named after the controller's push events."""

    SENSOR_DATA = "sensorData"
    NUTRIENT_SENSORS = "nutrientSensors"
    NUTRIENT_STATUS = "nutrientStatus"
    WATCHDOG_STATUS = "watchdogStatus"
    ALERT = "alert"


class DeviceEvent(str, Enum):
    """Transport connectivity events published by the MQTT wrapper."""

    CONNECTIVITY_CHANGED = "connectivity_changed"


class RuntimeEvent(str, Enum):
    RULES_RELOADED = "rules_reloaded"
    RULE_EXECUTED = "rule_executed"


EventType: TypeAlias = TelemetryEvent | DeviceEvent | RuntimeEvent | WebSocketEvent
