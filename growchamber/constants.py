"""
Application Constants
=====================

Centralized constants to replace magic numbers throughout the codebase.
Organized by domain for easy discovery and maintenance.

Usage:
    from growchamber.constants import Metrics, AlertThresholds, OPTIMAL_RANGES
"""

from growchamber.domain.recommendation import OptimalRange, PhaseRanges
from growchamber.enums.common import GrowthPhase
from growchamber.hardware.sensors.processors.utils import SOIL_PROBE_COUNT

# =============================================================================
# Timing Constants (seconds unless otherwise noted)
# =============================================================================

class Timeouts:
    """Timeout values for various operations."""
    HTTP_REQUEST_TIMEOUT = 10  # seconds
    MQTT_KEEPALIVE = 60  # seconds
    MQTT_RECONNECT_MIN_DELAY = 1  # seconds
    MQTT_RECONNECT_MAX_DELAY = 60  # seconds
    WORKER_JOIN_TIMEOUT = 5.0  # seconds


# =============================================================================
# Rule metrics
# =============================================================================

class Metrics:
    """Canonical metric names usable in automation rule conditions."""
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    LIGHT = "light"
    SOIL_MOISTURE = "soil_moisture"
    VPD = "vpd"
    DEW_POINT = "dew_point"
    DLI = "dli"
    HEAT_INDEX = "heat_index"
    TANK_LEVEL = "tank_level"
    GAS_LEVEL = "gas_level"
    ECO2 = "eco2"
    EC = "ec"
    PH = "ph"
    WATER_TEMP = "water_temp"
    RESERVOIR_LEVEL = "reservoir_level"

    @staticmethod
    def soil_probe(index: int) -> str:
        """Per-probe soil moisture metric, 1-based like the controller labels."""
        return f"soil_moisture_{index + 1}"

    @staticmethod
    def plant_height(index: int) -> str:
        return f"plant_height_{index + 1}"


KNOWN_METRICS = frozenset(
    {
        Metrics.TEMPERATURE,
        Metrics.HUMIDITY,
        Metrics.LIGHT,
        Metrics.SOIL_MOISTURE,
        Metrics.VPD,
        Metrics.DEW_POINT,
        Metrics.DLI,
        Metrics.HEAT_INDEX,
        Metrics.TANK_LEVEL,
        Metrics.GAS_LEVEL,
        Metrics.ECO2,
        Metrics.EC,
        Metrics.PH,
        Metrics.WATER_TEMP,
        Metrics.RESERVOIR_LEVEL,
    }
    | {Metrics.soil_probe(i) for i in range(SOIL_PROBE_COUNT)}
    | {Metrics.plant_height(i) for i in range(SOIL_PROBE_COUNT)}
)

# Names used by the controller payloads and older rule configurations
METRIC_ALIASES = {
    "temp": Metrics.TEMPERATURE,
    "lux": Metrics.LIGHT,
    "light_intensity": Metrics.LIGHT,
    "soilMoisture": Metrics.SOIL_MOISTURE,
    "soil": Metrics.SOIL_MOISTURE,
    "dewPoint": Metrics.DEW_POINT,
    "heatIndex": Metrics.HEAT_INDEX,
    "tankLevel": Metrics.TANK_LEVEL,
    "gasLevel": Metrics.GAS_LEVEL,
    "waterTemp": Metrics.WATER_TEMP,
    "reservoirLevel_percent": Metrics.RESERVOIR_LEVEL,
    "reservoirLevel": Metrics.RESERVOIR_LEVEL,
}


def canonical_metric(name: str) -> str:
    """Map a configured metric name to its canonical form (unknown names pass through)."""
    return METRIC_ALIASES.get(name, name)


# =============================================================================
# Environmental alert thresholds
# =============================================================================

class AlertThresholds:
    TANK_LOW_PERCENT = 10.0
    MOLD_RISK_HUMIDITY = 85.0
    ECO2_HIGH_PPM = 2000.0
    FROST_RISK_TEMPERATURE = 5.0
    # Probes reading below this are disconnected, not cold
    PROBE_DISCONNECTED_TEMPERATURE = -40.0
    ALERT_HISTORY_SIZE = 20


# =============================================================================
# Advisory ranges
# =============================================================================

class RecommendationMargins:
    """Distance beyond a range bound at which WARNING escalates to CRITICAL."""
    TEMPERATURE = 4.0  # °C
    HUMIDITY = 10.0  # %
    VPD = 0.3  # kPa
    DLI = 10.0  # mol/m²/day
    # Absolute limits that are critical in every phase
    TEMPERATURE_CRITICAL_MAX = 32.0
    HUMIDITY_CRITICAL_MAX = 80.0
    # Within this of the VPD optimum an "on target" info is emitted
    VPD_ON_TARGET = 0.1


OPTIMAL_RANGES = {
    GrowthPhase.SEEDLING: PhaseRanges(
        temperature=OptimalRange(min=22, max=25, optimal=24),
        humidity=OptimalRange(min=65, max=75, optimal=70),
        vpd=OptimalRange(min=0.4, max=0.8, optimal=0.6),
        dli=OptimalRange(min=12, max=18, optimal=15),
    ),
    GrowthPhase.VEGETATIVE: PhaseRanges(
        temperature=OptimalRange(min=22, max=28, optimal=25),
        humidity=OptimalRange(min=55, max=70, optimal=60),
        vpd=OptimalRange(min=0.8, max=1.2, optimal=1.0),
        dli=OptimalRange(min=35, max=50, optimal=40),
    ),
    GrowthPhase.FLOWERING: PhaseRanges(
        temperature=OptimalRange(min=20, max=26, optimal=24),
        humidity=OptimalRange(min=45, max=55, optimal=50),
        vpd=OptimalRange(min=1.0, max=1.5, optimal=1.2),
        dli=OptimalRange(min=40, max=60, optimal=50),
    ),
    GrowthPhase.LATE_FLOWERING: PhaseRanges(
        temperature=OptimalRange(min=18, max=24, optimal=21),
        humidity=OptimalRange(min=40, max=50, optimal=45),
        vpd=OptimalRange(min=1.2, max=1.6, optimal=1.4),
        dli=OptimalRange(min=40, max=60, optimal=50),
    ),
}

# Photoperiod per phase used for DLI when no explicit light hours are configured
PHASE_LIGHT_HOURS = {
    GrowthPhase.SEEDLING: 18.0,
    GrowthPhase.VEGETATIVE: 18.0,
    GrowthPhase.FLOWERING: 12.0,
    GrowthPhase.LATE_FLOWERING: 12.0,
}
