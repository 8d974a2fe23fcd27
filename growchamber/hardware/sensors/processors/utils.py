# growchamber/hardware/sensors/processors/utils.py
"""
Shared Utilities for Sensor Processors
=======================================

Common helper functions and constants used by the snapshot parser, the
fusion processor and the soil calibration processor.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Optional, Sequence, Tuple

# ============================================================================
# Constants
# ============================================================================

# Combined readings the controller averages itself
TEMPERATURE_KEY = "temp"
HUMIDITY_KEY = "humidity"

# Positional probes, bottom to top
TEMPERATURE_PROBE_KEYS: Tuple[str, ...] = ("temp_bottom", "temp_middle", "temp_top")
HUMIDITY_PROBE_KEYS: Tuple[str, ...] = ("humidity_bottom", "humidity_middle", "humidity_top")

# Light, in order of preference
LIGHT_KEYS: Tuple[str, ...] = ("lux", "light_intensity")

SOIL_ARRAY_KEY = "soil"
HEIGHTS_ARRAY_KEY = "heights"
SOIL_PROBE_COUNT = 6

# Reservoir / air quality fields reported by the main controller
TANK_LEVEL_KEY = "tankLevel"
GAS_LEVEL_KEY = "gasLevel"
ECO2_KEY = "eco2"

# Fields reported by the nutrient controller
NUTRIENT_EC_KEY = "ec"
NUTRIENT_PH_KEY = "ph"
NUTRIENT_TEMP_KEY = "temp"
NUTRIENT_RESERVOIR_KEY = "reservoirLevel_percent"
NUTRIENT_DOSED_KEY = "totalDosed_ml"

# Ordering metadata, never treated as readings
SEQUENCE_KEYS: Tuple[str, ...] = ("seq", "sequence")
TIMESTAMP_KEYS: Tuple[str, ...] = ("timestamp",)

# 12-bit ADC full scale of the capacitive soil probes
ADC_MAX = 4095.0


# ============================================================================
# Helper Functions
# ============================================================================

def coerce_float(value: Any) -> Optional[float]:
    """
    Safely coerce a value to float.

    Returns None for:
    - None values
    - Boolean values (to avoid True->1.0)
    - Unparseable strings
    - NaN and infinities
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value)
        except (ValueError, TypeError):
            return None
    else:
        return None
    if not math.isfinite(result):
        return None
    return result


def coerce_int(value: Any) -> Optional[int]:
    """
    Safely coerce a value to int.

    Returns None for:
    - None values
    - Boolean values
    - Unparseable strings
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except (ValueError, TypeError, OverflowError):
            return None
    return None


def coerce_float_list(values: Iterable[Any]) -> Tuple[Optional[float], ...]:
    """Coerce every element of a sequence, keeping positions."""
    return tuple(coerce_float(v) for v in values)


def positive_or_none(value: Optional[float]) -> Optional[float]:
    """Zero and negative readings mean "probe absent" for most fields."""
    if value is None or value <= 0:
        return None
    return value


def mean_of_positive(values: Sequence[Optional[float]]) -> Optional[float]:
    """Arithmetic mean of the readings that are present and > 0."""
    usable = [v for v in values if v is not None and v > 0]
    if not usable:
        return None
    return sum(usable) / len(usable)

