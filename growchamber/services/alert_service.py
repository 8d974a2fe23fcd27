"""Throttled environmental and feed-health alerts."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

from growchamber.constants import AlertThresholds
from growchamber.domain.alerts import EnvironmentalAlert
from growchamber.domain.conditions import ReservoirConditions
from growchamber.domain.snapshot import RawSnapshot
from growchamber.domain.watchdog import WatchdogStatus
from growchamber.enums.common import RecommendationSeverity, SourceState, TelemetrySource
from growchamber.hardware.sensors.processors.utils import (
    ECO2_KEY,
    HUMIDITY_KEY,
    HUMIDITY_PROBE_KEYS,
    TANK_LEVEL_KEY,
    TEMPERATURE_KEY,
    TEMPERATURE_PROBE_KEYS,
    coerce_float,
)
from growchamber.utils.cache import TTLCache
from growchamber.utils.time import utc_now

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 600


class EnvironmentalAlertService:
    """
    Raises operator alerts from raw telemetry and watchdog transitions.

    Each alert key is throttled: once raised, the same key stays quiet for
    the cooldown period even if the condition persists.
    """

    # Alert keys
    TANK_LOW = "tank_low"
    HUMIDITY_HIGH = "humidity_high"
    ECO2_HIGH = "eco2_high"
    TEMP_FROST = "temp_frost"
    SENSORS_OFFLINE = "sensors_offline"
    CONTROLLER_CRITICAL = "controller_critical"
    TRANSPORT_LOST = "transport_lost"

    def __init__(
        self,
        *,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._clock = clock
        self._cooldown = TTLCache(
            enabled=cooldown_seconds > 0,
            ttl_seconds=cooldown_seconds,
            maxsize=64,
            clock=lambda: self._clock().timestamp(),
        )
        self._stats = {"raised": 0, "suppressed": 0}

    def check_snapshot(
        self,
        raw: RawSnapshot,
        reservoir: Optional[ReservoirConditions] = None,
    ) -> List[EnvironmentalAlert]:
        """Alerts for one controller snapshot. Positional probes are checked individually."""
        alerts: List[EnvironmentalAlert] = []

        tank = reservoir.tank_level_percent if reservoir else raw.value(TANK_LEVEL_KEY)
        if tank is not None and 0 < tank < AlertThresholds.TANK_LOW_PERCENT:
            self._raise(
                alerts,
                self.TANK_LOW,
                RecommendationSeverity.WARNING,
                "Water tank almost empty",
                f"Tank level {tank:.0f}%: refill to avoid missed irrigation",
                tank,
            )

        humidities = [
            v for v in (raw.value(k) for k in (*HUMIDITY_PROBE_KEYS, HUMIDITY_KEY)) if v is not None and v > 0
        ]
        if humidities and max(humidities) > AlertThresholds.MOLD_RISK_HUMIDITY:
            peak = max(humidities)
            self._raise(
                alerts,
                self.HUMIDITY_HIGH,
                RecommendationSeverity.WARNING,
                "Mold risk: high humidity",
                f"Maximum humidity {peak:.1f}% (limit {AlertThresholds.MOLD_RISK_HUMIDITY:.0f}%): check exhaust and dehumidifier",
                peak,
            )

        eco2 = reservoir.eco2_ppm if reservoir else raw.value(ECO2_KEY)
        if eco2 is not None and eco2 > AlertThresholds.ECO2_HIGH_PPM:
            self._raise(
                alerts,
                self.ECO2_HIGH,
                RecommendationSeverity.CRITICAL,
                "CO2 level critical",
                f"eCO2 {eco2:.0f} ppm (limit {AlertThresholds.ECO2_HIGH_PPM:.0f} ppm): check ventilation",
                eco2,
            )

        probe_temps = [raw.value(k) for k in TEMPERATURE_PROBE_KEYS]
        connected = [
            t for t in probe_temps
            if t is not None and t != 0 and t > AlertThresholds.PROBE_DISCONNECTED_TEMPERATURE
        ]
        if connected and min(connected) < AlertThresholds.FROST_RISK_TEMPERATURE:
            coldest = min(connected)
            self._raise(
                alerts,
                self.TEMP_FROST,
                RecommendationSeverity.CRITICAL,
                "Frost risk",
                f"Minimum temperature {coldest:.1f}°C (limit {AlertThresholds.FROST_RISK_TEMPERATURE:.0f}°C): check heating",
                coldest,
            )

        # All probes at exactly 0 °C while the controller still reports: I2C bus failure
        reported = [t for t in probe_temps if t is not None]
        if raw.has(TEMPERATURE_KEY) and reported and all(t == 0 for t in reported):
            self._raise(
                alerts,
                self.SENSORS_OFFLINE,
                RecommendationSeverity.CRITICAL,
                "All temperature probes failed",
                "Every climate probe reports 0°C, most likely a sensor bus fault: check wiring",
            )

        return alerts

    def check_watchdog(
        self, previous: WatchdogStatus, current: WatchdogStatus
    ) -> List[EnvironmentalAlert]:
        """Alerts for a watchdog transition (controller lost, broker lost)."""
        alerts: List[EnvironmentalAlert] = []
        if (
            current.source == TelemetrySource.CONTROLLER
            and current.source_state == SourceState.CRITICAL
            and previous.source_state != SourceState.CRITICAL
        ):
            seconds = (current.elapsed_ms or 0) / 1000.0
            self._raise(
                alerts,
                self.CONTROLLER_CRITICAL,
                RecommendationSeverity.CRITICAL,
                "Controller offline",
                f"No sensor data for {seconds:.0f} seconds: check controller power, WiFi and broker",
                seconds,
            )
        if previous.transport_connected and not current.transport_connected:
            self._raise(
                alerts,
                self.TRANSPORT_LOST,
                RecommendationSeverity.WARNING,
                "Broker connection lost",
                "The message broker connection dropped; sensor data and commands are unavailable",
            )
        return alerts

    def check_external(self, payload: Mapping[str, Any]) -> List[EnvironmentalAlert]:
        """Throttle an alert pushed by the controller or another upstream service."""
        key = str(payload.get("key") or payload.get("type") or "external")
        try:
            severity = RecommendationSeverity(str(payload.get("severity") or payload.get("level") or "warning").lower())
        except ValueError:
            severity = RecommendationSeverity.WARNING
        message = str(payload.get("message") or payload.get("description") or "")
        title = str(payload.get("title") or message or key)
        alerts: List[EnvironmentalAlert] = []
        self._raise(alerts, key, severity, title, message, coerce_float(payload.get("value")))
        return alerts

    def _raise(
        self,
        alerts: List[EnvironmentalAlert],
        key: str,
        severity: RecommendationSeverity,
        title: str,
        message: str,
        value: Optional[float] = None,
    ) -> None:
        if self._cooldown.contains(key):
            self._stats["suppressed"] += 1
            return
        now = self._clock()
        self._cooldown.set(key, now)
        self._stats["raised"] += 1
        logger.warning("Alert %s: %s", key, message)
        alerts.append(
            EnvironmentalAlert(key=key, severity=severity, title=title, message=message, raised_at=now, value=value)
        )

    def reset(self, key: Optional[str] = None) -> None:
        """Forget cooldowns so the next occurrence alerts immediately."""
        if key is None:
            self._cooldown.clear()
        else:
            self._cooldown.invalidate(key)

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
