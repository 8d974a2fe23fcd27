"""
Soil Calibration Processor
==========================
Maps raw capacitive soil-moisture ADC counts to percent.

Firmware versions differ: some send raw 12-bit counts, others send an
already-calibrated percentage. Both are accepted per reading:

- ``(0, 100]``   -> already a percentage, passed through unchanged
- ``(100, 4095]`` -> raw counts, ``(dry - raw) / (dry - wet) * 100`` clamped to [0, 100]
- anything else (0, negative, above ADC range, non-numeric) -> no reading
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from growchamber.hardware.sensors.processors.utils import ADC_MAX, SOIL_PROBE_COUNT

logger = logging.getLogger(__name__)

DEFAULT_DRY_VALUE = 4095
DEFAULT_WET_VALUE = 1200


@dataclass(frozen=True)
class SoilCalibration:
    """
    Two-point calibration of one probe.

    Attributes:
        dry: ADC count in dry air (0 %)
        wet: ADC count submerged in water (100 %)
    """

    dry: float = DEFAULT_DRY_VALUE
    wet: float = DEFAULT_WET_VALUE

    def __post_init__(self):
        if self.wet >= self.dry:
            raise ValueError(f"Wet value ({self.wet}) must be lower than dry value ({self.dry})")
        if self.dry > ADC_MAX:
            raise ValueError(f"Dry value ({self.dry}) exceeds ADC range ({ADC_MAX:.0f})")

    def to_percent(self, raw: float) -> float:
        percent = (self.dry - raw) / (self.dry - self.wet) * 100.0
        return max(0.0, min(100.0, percent))


class SoilCalibrationProcessor:
    """Applies per-probe calibration to the positional ``soil`` array."""

    def __init__(self, calibrations: Optional[Sequence[SoilCalibration]] = None):
        calibrations = list(calibrations or [])
        if len(calibrations) > SOIL_PROBE_COUNT:
            raise ValueError(f"At most {SOIL_PROBE_COUNT} soil calibrations are supported")
        # Probes without an explicit calibration use the defaults
        calibrations.extend(SoilCalibration() for _ in range(SOIL_PROBE_COUNT - len(calibrations)))
        self._calibrations: tuple[SoilCalibration, ...] = tuple(calibrations)

    @classmethod
    def uniform(cls, dry: float = DEFAULT_DRY_VALUE, wet: float = DEFAULT_WET_VALUE) -> "SoilCalibrationProcessor":
        return cls([SoilCalibration(dry=dry, wet=wet)] * SOIL_PROBE_COUNT)

    @property
    def calibrations(self) -> tuple[SoilCalibration, ...]:
        return self._calibrations

    def calibration_for(self, index: int) -> SoilCalibration:
        if 0 <= index < len(self._calibrations):
            return self._calibrations[index]
        return SoilCalibration()

    def calibrate_reading(self, raw: Optional[float], index: int = 0) -> Optional[float]:
        """Percent for one probe, or None when the probe gave no reading."""
        if raw is None or raw <= 0:
            return None
        if raw <= 100:
            return raw
        if raw <= ADC_MAX:
            return self.calibration_for(index).to_percent(raw)
        logger.debug("Soil probe %d reading %s outside ADC range", index, raw)
        return None

    def calibrate(self, raw_values: Iterable[Optional[float]]) -> tuple[Optional[float], ...]:
        return tuple(self.calibrate_reading(raw, i) for i, raw in enumerate(raw_values))
