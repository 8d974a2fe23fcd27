"""
Fused Conditions Value Objects
==============================
Canonical per-quantity readings produced by the fusion processor, the
physical quantities derived from them, and the fused reservoir state.

Following Domain-Driven Design (DDD), these are value objects:
- Immutable (frozen dataclass)
- Superseded on every fusion cycle, never mutated
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional


@dataclass(frozen=True)
class FusedConditions:
    """
    One record per fusion cycle.

    ``None`` always means "no reading". ``is_valid`` is true iff both
    temperature and humidity are present and > 0; consumers must not trust
    derived physics when it is false.
    """

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    soil_moisture_percent: tuple[Optional[float], ...] = ()
    light_lux: Optional[float] = None
    plant_heights_cm: tuple[Optional[float], ...] = ()

    @property
    def is_valid(self) -> bool:
        return (
            self.temperature is not None
            and self.humidity is not None
            and self.temperature > 0
            and self.humidity > 0
        )

    @property
    def soil_moisture_mean(self) -> Optional[float]:
        """Mean of the probes that produced a reading."""
        usable = [v for v in self.soil_moisture_percent if v is not None]
        if not usable:
            return None
        return sum(usable) / len(usable)

    @classmethod
    def empty(cls) -> "FusedConditions":
        return cls()

    def to_dict(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "soil_moisture_percent": list(self.soil_moisture_percent),
            "soil_moisture_mean": self.soil_moisture_mean,
            "light_lux": self.light_lux,
            "plant_heights_cm": list(self.plant_heights_cm),
            "is_valid": self.is_valid,
        }


@dataclass(frozen=True)
class DerivedQuantities:
    """Physical quantities derived from valid fused conditions. Unrounded."""

    vpd_kpa: float
    dew_point_c: float
    dli_mol_m2_day: Optional[float]
    heat_index_c: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "vpd_kpa": self.vpd_kpa,
            "dew_point_c": self.dew_point_c,
            "dli_mol_m2_day": self.dli_mol_m2_day,
            "heat_index_c": self.heat_index_c,
        }


@dataclass(frozen=True)
class ReservoirConditions:
    """
    Fused reservoir, air-quality and nutrient readings.

    Tank, gas and eCO2 arrive with the main controller snapshot; the rest
    comes from the nutrient controller.
    """

    CONTROLLER_FIELDS = ("tank_level_percent", "gas_level", "eco2_ppm")
    NUTRIENT_FIELDS = ("ec", "ph", "water_temp_c", "reservoir_level_percent", "total_dosed_ml")

    tank_level_percent: Optional[float] = None
    gas_level: Optional[float] = None
    eco2_ppm: Optional[float] = None
    ec: Optional[float] = None
    ph: Optional[float] = None
    water_temp_c: Optional[float] = None
    reservoir_level_percent: Optional[float] = None
    total_dosed_ml: Optional[float] = None

    def without(self, fields: tuple[str, ...]) -> "ReservoirConditions":
        """Copy with ``fields`` cleared to "no reading"."""
        return replace(self, **{name: None for name in fields})

    def to_dict(self) -> dict[str, Any]:
        return {
            "tank_level_percent": self.tank_level_percent,
            "gas_level": self.gas_level,
            "eco2_ppm": self.eco2_ppm,
            "ec": self.ec,
            "ph": self.ph,
            "water_temp_c": self.water_temp_c,
            "reservoir_level_percent": self.reservoir_level_percent,
            "total_dosed_ml": self.total_dosed_ml,
        }
