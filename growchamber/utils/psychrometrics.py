"""
Psychrometric Calculations
==========================

Pure utility functions for air-science derived metrics used in grow environments.

Functions:
- calculate_svp_kpa: Saturation vapor pressure (helper)
- calculate_vpd_kpa: Vapor Pressure Deficit
- calculate_dew_point_c: Dew point temperature
- calculate_heat_index_c: Heat index (apparent temperature)
- calculate_dli: Daily Light Integral from an instantaneous lux reading
- optimal_temperature_for_vpd / optimal_humidity_for_vpd: VPD inversions
- classify_vpd: position of a VPD against the phase target range

Nothing here rounds. Rounding happens only when values are serialized for
consumers, so repeated calls within a fusion cycle never compound error.

"No reading" convention: VPD, dew point and DLI return ``0.0`` when an input
is missing, zero or outside the physical domain. Callers that need to tell
"no data" apart from a real zero check ``FusedConditions.is_valid`` first.
"""
from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, Optional

from growchamber.enums.common import GrowthPhase

if TYPE_CHECKING:
    from growchamber.domain.conditions import DerivedQuantities, FusedConditions

SVP_A_KPA = 0.61078
MAGNUS_A = 17.27
MAGNUS_B_SVP = 237.3
MAGNUS_B_DEW_POINT = 237.7

# Approximate lux -> PPFD factor for broad-spectrum LEDs, not a calibrated conversion
LUX_TO_PPFD = 0.015
DEFAULT_LIGHT_HOURS = 18.0

# Beyond the target range by more than this the VPD is "too low/high"
VPD_CRITICAL_MARGIN_KPA = 0.3

VPD_TARGETS: Dict[GrowthPhase, tuple[float, float]] = {
    GrowthPhase.SEEDLING: (0.4, 0.8),
    GrowthPhase.VEGETATIVE: (0.8, 1.2),
    GrowthPhase.FLOWERING: (1.0, 1.5),
    GrowthPhase.LATE_FLOWERING: (1.2, 1.6),
}


def _usable(value: Optional[float]) -> bool:
    return value is not None and not isinstance(value, bool) and math.isfinite(value) and value != 0


# =============================================================================
# Core Calculations
# =============================================================================

def calculate_svp_kpa(temperature_c: Optional[float]) -> Optional[float]:
    """
    Calculate Saturation Vapor Pressure (SVP) in kPa using Magnus formula.

    SVP = 0.61078 × exp(17.27 × T / (T + 237.3))

    Args:
        temperature_c: Temperature in Celsius

    Returns:
        Saturation vapor pressure in kPa, or None at or below the
        formula's singularity (T <= -237.3 °C) and for non-finite input
    """
    if temperature_c is None or not math.isfinite(temperature_c):
        return None
    if temperature_c <= -MAGNUS_B_SVP:
        return None
    return SVP_A_KPA * math.exp((MAGNUS_A * temperature_c) / (temperature_c + MAGNUS_B_SVP))


def calculate_vpd_kpa(temperature_c: Optional[float], relative_humidity: Optional[float]) -> float:
    """
    Calculate Vapor Pressure Deficit (VPD) in kPa.

    VPD = SVP × (1 - RH/100)

    Optimal VPD ranges for plants:
    - Seedlings/clones: 0.4-0.8 kPa
    - Vegetative: 0.8-1.2 kPa
    - Flowering: 1.0-1.5 kPa

    Args:
        temperature_c: Temperature in Celsius
        relative_humidity: Relative humidity percentage (0-100)

    Returns:
        VPD in kPa; 0.0 when either input is missing, zero or unusable.
        Humidity above 100 % is treated as saturated air.
    """
    if not (_usable(temperature_c) and _usable(relative_humidity)):
        return 0.0
    if relative_humidity < 0:
        return 0.0
    svp = calculate_svp_kpa(temperature_c)
    if svp is None:
        return 0.0
    humidity = min(relative_humidity, 100.0)
    return svp * (1 - humidity / 100.0)


def calculate_dew_point_c(temperature_c: Optional[float], relative_humidity: Optional[float]) -> float:
    """
    Calculate dew point temperature in Celsius using the Magnus inversion.

    Dew point is the temperature at which air becomes saturated and condensation begins.
    Important for:
    - Preventing mold/mildew (keep leaf temp above dew point)
    - Understanding transpiration limits

    Formula:
        gamma = (a * T) / (b + T) + ln(RH/100)
        Td = (b * gamma) / (a - gamma)

    Where a = 17.27, b = 237.7

    Args:
        temperature_c: Temperature in Celsius
        relative_humidity: Relative humidity percentage (0-100)

    Returns:
        Dew point in Celsius; 0.0 when either input is missing, zero or unusable
    """
    if not (_usable(temperature_c) and _usable(relative_humidity)):
        return 0.0
    if relative_humidity < 0 or temperature_c <= -MAGNUS_B_DEW_POINT:
        return 0.0
    humidity = min(relative_humidity, 100.0)

    gamma = (MAGNUS_A * temperature_c) / (MAGNUS_B_DEW_POINT + temperature_c) + math.log(humidity / 100.0)
    if gamma >= MAGNUS_A:
        return 0.0
    return (MAGNUS_B_DEW_POINT * gamma) / (MAGNUS_A - gamma)


def calculate_heat_index_c(temperature_c: Optional[float], relative_humidity: Optional[float]) -> Optional[float]:
    """
    Calculate heat index (apparent temperature) in Celsius.

    Uses the Rothfusz regression equation (NOAA). Only valid for
    temperatures >= 27°C and RH >= 40%; below these the actual temperature
    is returned.

    Returns:
        Heat index in Celsius, or None if inputs are None
    """
    if temperature_c is None or relative_humidity is None:
        return None

    temp_c = float(temperature_c)
    humidity = float(relative_humidity)

    if temp_c < 27.0 or humidity < 40.0:
        return temp_c

    temp_f = temp_c * 9 / 5 + 32

    c1 = -42.379
    c2 = 2.04901523
    c3 = 10.14333127
    c4 = -0.22475541
    c5 = -0.00683783
    c6 = -0.05481717
    c7 = 0.00122874
    c8 = 0.00085282
    c9 = -0.00000199

    hi_f = (c1 + c2 * temp_f + c3 * humidity +
            c4 * temp_f * humidity +
            c5 * temp_f ** 2 +
            c6 * humidity ** 2 +
            c7 * temp_f ** 2 * humidity +
            c8 * temp_f * humidity ** 2 +
            c9 * temp_f ** 2 * humidity ** 2)

    if humidity > 85 and 80 <= temp_f <= 87:
        hi_f += ((humidity - 85) / 10) * ((87 - temp_f) / 5)

    return (hi_f - 32) * 5 / 9


def calculate_dli(lux: Optional[float], hours_of_light: float = DEFAULT_LIGHT_HOURS) -> float:
    """
    Approximate Daily Light Integral in mol/m²/day.

    PPFD ≈ lux × 0.015 (broad-spectrum approximation), integrated over the
    photoperiod: DLI = PPFD × 3600 × hours / 1e6.

    Args:
        lux: Instantaneous illuminance
        hours_of_light: Photoperiod length in hours (0-24)

    Returns:
        DLI; 0.0 when lux is missing, negative or non-finite
    """
    if hours_of_light < 0 or hours_of_light > 24:
        raise ValueError(f"hours_of_light must be within 0-24, got {hours_of_light}")
    if lux is None or isinstance(lux, bool) or not math.isfinite(lux) or lux <= 0:
        return 0.0
    ppfd = lux * LUX_TO_PPFD
    return ppfd * 3600 * hours_of_light / 1e6


# =============================================================================
# VPD targeting
# =============================================================================

def optimal_temperature_for_vpd(target_vpd_kpa: float, relative_humidity: float) -> Optional[float]:
    """
    Temperature (°C) at which air of the given humidity reaches ``target_vpd_kpa``.

    Inverts SVP = VPD / (1 - RH/100) through the Magnus formula. Returns None
    when no physical solution exists (RH outside (0, 100), VPD <= 0).
    """
    if target_vpd_kpa is None or relative_humidity is None:
        return None
    if target_vpd_kpa <= 0 or not 0 < relative_humidity < 100:
        return None
    svp = target_vpd_kpa / (1 - relative_humidity / 100.0)
    x = math.log(svp / SVP_A_KPA)
    if x >= MAGNUS_A:
        return None
    return MAGNUS_B_SVP * x / (MAGNUS_A - x)


def optimal_humidity_for_vpd(target_vpd_kpa: float, temperature_c: float) -> Optional[float]:
    """
    Relative humidity (%) at which air at ``temperature_c`` reaches ``target_vpd_kpa``.

    Returns None when the target exceeds the saturation pressure at that
    temperature (no humidity can produce it) or inputs are unusable.
    """
    if target_vpd_kpa is None or target_vpd_kpa < 0:
        return None
    svp = calculate_svp_kpa(temperature_c)
    if not svp:
        return None
    humidity = (1 - target_vpd_kpa / svp) * 100.0
    if humidity < 0 or humidity > 100:
        return None
    return humidity


def classify_vpd(vpd_kpa: float, phase: GrowthPhase = GrowthPhase.VEGETATIVE) -> str:
    """
    Position of a VPD against the phase target range.

    Returns one of ``too_low``, ``low``, ``optimal``, ``high``, ``too_high``;
    ``too_*`` means more than 0.3 kPa beyond the range.
    """
    low, high = VPD_TARGETS[GrowthPhase(phase)]
    if vpd_kpa < low - VPD_CRITICAL_MARGIN_KPA:
        return "too_low"
    if vpd_kpa < low:
        return "low"
    if vpd_kpa > high + VPD_CRITICAL_MARGIN_KPA:
        return "too_high"
    if vpd_kpa > high:
        return "high"
    return "optimal"


# =============================================================================
# Fusion-cycle entry point
# =============================================================================

def compute_derived_quantities(
    fused: "FusedConditions",
    hours_of_light: float = DEFAULT_LIGHT_HOURS,
) -> Optional["DerivedQuantities"]:
    """
    Derive VPD, dew point, DLI and heat index from fused conditions.

    Returns None when ``fused.is_valid`` is false: derived physics is never
    computed from untrusted readings.
    """
    from growchamber.domain.conditions import DerivedQuantities

    if not fused.is_valid:
        return None

    temperature = fused.temperature
    humidity = fused.humidity
    return DerivedQuantities(
        vpd_kpa=calculate_vpd_kpa(temperature, humidity),
        dew_point_c=calculate_dew_point_c(temperature, humidity),
        dli_mol_m2_day=calculate_dli(fused.light_lux, hours_of_light) if fused.light_lux is not None else None,
        heat_index_c=calculate_heat_index_c(temperature, humidity),
    )
