# growchamber/hardware/sensors/processors/fusion_processor.py
"""
Sensor Fusion Processor
=======================

Turns a raw multi-probe snapshot into one canonical reading per quantity.

Precedence for temperature and humidity:
1. The controller's own pre-averaged ``temp``/``humidity`` pair, when both are > 0.
2. Otherwise the mean of the positional probes (bottom/middle/top) that
   are present and > 0.
3. Otherwise ``None``; the record becomes invalid.

Partial pushes: a snapshot that carries *none* of a quantity's keys keeps the
previous value for that quantity. A snapshot that carries the keys with
unusable values produces ``None``; stale values are never carried over
silently, staleness is the watchdog's job.

Light uses ``lux`` then ``light_intensity``. Unlike temperature, a lux of 0
is a real reading (lights off); only missing or negative values mean "no
reading".
"""

from __future__ import annotations

import logging
from typing import Optional

from growchamber.domain.conditions import FusedConditions, ReservoirConditions
from growchamber.domain.snapshot import RawSnapshot
from growchamber.hardware.sensors.processors.calibration_processor import SoilCalibrationProcessor
from growchamber.hardware.sensors.processors.utils import (
    ECO2_KEY,
    GAS_LEVEL_KEY,
    HEIGHTS_ARRAY_KEY,
    HUMIDITY_KEY,
    HUMIDITY_PROBE_KEYS,
    LIGHT_KEYS,
    NUTRIENT_DOSED_KEY,
    NUTRIENT_EC_KEY,
    NUTRIENT_PH_KEY,
    NUTRIENT_RESERVOIR_KEY,
    NUTRIENT_TEMP_KEY,
    SOIL_ARRAY_KEY,
    TANK_LEVEL_KEY,
    TEMPERATURE_KEY,
    TEMPERATURE_PROBE_KEYS,
    mean_of_positive,
    positive_or_none,
)

logger = logging.getLogger(__name__)


class SensorFusionProcessor:
    """Stateless fusion of raw snapshots; the caller supplies the previous record."""

    def __init__(self, soil_calibration: Optional[SoilCalibrationProcessor] = None):
        self.soil_calibration = soil_calibration or SoilCalibrationProcessor()
        self._stats = {"fused": 0, "invalid": 0}

    # ------------------------------------------------------------------ #
    # Climate snapshot
    # ------------------------------------------------------------------ #

    def fuse(self, raw: RawSnapshot, previous: Optional[FusedConditions] = None) -> FusedConditions:
        """Fuse ``raw`` on top of ``previous`` (used only for omitted quantities)."""
        previous = previous or FusedConditions.empty()

        temperature, humidity = self._fuse_climate(raw, previous)

        if raw.has(SOIL_ARRAY_KEY):
            soil = self.soil_calibration.calibrate(raw.array(SOIL_ARRAY_KEY))
        else:
            soil = previous.soil_moisture_percent

        if raw.has_any(*LIGHT_KEYS):
            light = self._fuse_light(raw)
        else:
            light = previous.light_lux

        if raw.has(HEIGHTS_ARRAY_KEY):
            heights = tuple(positive_or_none(h) for h in raw.array(HEIGHTS_ARRAY_KEY))
        else:
            heights = previous.plant_heights_cm

        fused = FusedConditions(
            temperature=temperature,
            humidity=humidity,
            soil_moisture_percent=soil,
            light_lux=light,
            plant_heights_cm=heights,
        )

        self._stats["fused"] += 1
        if not fused.is_valid:
            self._stats["invalid"] += 1
            logger.debug(
                "Fused conditions invalid (temperature=%s humidity=%s)", fused.temperature, fused.humidity
            )
        return fused

    def _fuse_climate(
        self, raw: RawSnapshot, previous: FusedConditions
    ) -> tuple[Optional[float], Optional[float]]:
        combined_temp = raw.value(TEMPERATURE_KEY)
        combined_humidity = raw.value(HUMIDITY_KEY)
        # The controller's own average wins only as a complete pair
        if combined_temp is not None and combined_humidity is not None and combined_temp > 0 and combined_humidity > 0:
            return combined_temp, combined_humidity

        temperature = self._fuse_quantity(raw, TEMPERATURE_KEY, TEMPERATURE_PROBE_KEYS, previous.temperature)
        humidity = self._fuse_quantity(raw, HUMIDITY_KEY, HUMIDITY_PROBE_KEYS, previous.humidity)
        return temperature, humidity

    @staticmethod
    def _fuse_quantity(
        raw: RawSnapshot,
        combined_key: str,
        probe_keys: tuple[str, ...],
        previous_value: Optional[float],
    ) -> Optional[float]:
        if not raw.has_any(combined_key, *probe_keys):
            return previous_value
        return mean_of_positive([raw.value(k) for k in probe_keys])

    @staticmethod
    def _fuse_light(raw: RawSnapshot) -> Optional[float]:
        for key in LIGHT_KEYS:
            value = raw.value(key)
            if value is not None and value >= 0:
                return value
        return None

    # ------------------------------------------------------------------ #
    # Reservoir / nutrient snapshots
    # ------------------------------------------------------------------ #

    def fuse_reservoir(self, raw: RawSnapshot, previous: Optional[ReservoirConditions] = None) -> ReservoirConditions:
        """Fuse tank and air-quality fields from the main controller feed."""
        previous = previous or ReservoirConditions()
        return ReservoirConditions(
            tank_level_percent=self._field(raw, TANK_LEVEL_KEY, previous.tank_level_percent, allow_zero=True),
            gas_level=self._field(raw, GAS_LEVEL_KEY, previous.gas_level),
            eco2_ppm=self._field(raw, ECO2_KEY, previous.eco2_ppm),
            ec=previous.ec,
            ph=previous.ph,
            water_temp_c=previous.water_temp_c,
            reservoir_level_percent=previous.reservoir_level_percent,
            total_dosed_ml=previous.total_dosed_ml,
        )

    def fuse_nutrients(self, raw: RawSnapshot, previous: Optional[ReservoirConditions] = None) -> ReservoirConditions:
        """Fuse the nutrient controller's EC/pH/water-temperature push."""
        previous = previous or ReservoirConditions()
        return ReservoirConditions(
            tank_level_percent=previous.tank_level_percent,
            gas_level=previous.gas_level,
            eco2_ppm=previous.eco2_ppm,
            ec=self._field(raw, NUTRIENT_EC_KEY, previous.ec, allow_zero=True),
            ph=self._field(raw, NUTRIENT_PH_KEY, previous.ph),
            water_temp_c=self._field(raw, NUTRIENT_TEMP_KEY, previous.water_temp_c),
            reservoir_level_percent=self._field(
                raw, NUTRIENT_RESERVOIR_KEY, previous.reservoir_level_percent, allow_zero=True
            ),
            total_dosed_ml=self._field(raw, NUTRIENT_DOSED_KEY, previous.total_dosed_ml, allow_zero=True),
        )

    @staticmethod
    def _field(
        raw: RawSnapshot, key: str, previous_value: Optional[float], *, allow_zero: bool = False
    ) -> Optional[float]:
        if not raw.has(key):
            return previous_value
        value = raw.value(key)
        if value is None or value < 0 or (value == 0 and not allow_zero):
            return None
        return value

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
