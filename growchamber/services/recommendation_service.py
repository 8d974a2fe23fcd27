"""
Recommendation Generator
========================

Turns the current climate into operator advisories for the active growth
phase. Pure: the same inputs always give the same list, and every advisory
keeps the id ``"{metric}-{direction}"`` while its condition persists, so a
presentation layer can dismiss it until it resolves.

Severity ladder per metric:
- temperature / humidity outside the phase range: WARNING, CRITICAL beyond
  the margin or above the absolute limit
- VPD below range: OPTIMIZATION, WARNING beyond the margin
- VPD above range: WARNING, CRITICAL beyond the margin
- VPD within 0.1 kPa of the optimum: INFO
- DLI outside range (lights on only): OPTIMIZATION, WARNING beyond the margin
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import List, Mapping, Optional

from growchamber.constants import OPTIMAL_RANGES, RecommendationMargins
from growchamber.domain.conditions import DerivedQuantities, FusedConditions
from growchamber.domain.recommendation import (
    ActionRef,
    OptimalRange,
    PhaseRanges,
    Recommendation,
    recommendation_id,
)
from growchamber.enums.common import GrowthPhase, RecommendationSeverity

Severity = RecommendationSeverity

MORNING_HOURS = (6, 8)
EVENING_HOURS = (20, 22)


class RecommendationGenerator:
    """Phase-aware climate advisories."""

    def __init__(
        self,
        ranges: Optional[Mapping[GrowthPhase, PhaseRanges]] = None,
        *,
        local_tz: Optional[tzinfo] = None,
    ):
        self.ranges = dict(ranges or OPTIMAL_RANGES)
        self.local_tz = local_tz

    def generate(
        self,
        fused: FusedConditions,
        derived: Optional[DerivedQuantities],
        phase: GrowthPhase | str = GrowthPhase.VEGETATIVE,
        *,
        now: Optional[datetime] = None,
    ) -> List[Recommendation]:
        """
        Advisories for the given conditions, most severe first.

        Args:
            fused: Fused climate readings
            derived: Derived quantities, or None when fused is not valid
            phase: Growth phase selecting the target ranges
            now: Wall-clock time for time-of-day tips; no tips when omitted

        Returns:
            Recommendations sorted by severity; equal severities keep the
            order temperature, humidity, VPD, DLI, time tips
        """
        phase = GrowthPhase(phase)
        ranges = self.ranges[phase]
        recs: List[Recommendation] = []

        if fused.is_valid:
            recs.extend(self._temperature(fused.temperature, ranges.temperature))
            recs.extend(self._humidity(fused.humidity, ranges.humidity))
            if derived is not None:
                recs.extend(self._vpd(derived.vpd_kpa, ranges.vpd))

        # DLI is meaningless while the lights are off
        if (
            derived is not None
            and derived.dli_mol_m2_day is not None
            and fused.light_lux is not None
            and fused.light_lux > 0
        ):
            recs.extend(self._dli(derived.dli_mol_m2_day, ranges.dli))

        if now is not None:
            recs.extend(self._time_tips(now))

        recs.sort(key=lambda r: r.severity.priority)
        return recs

    # ------------------------------------------------------------------ #
    # Per-metric checks
    # ------------------------------------------------------------------ #

    @staticmethod
    def _temperature(temp: float, target: OptimalRange) -> List[Recommendation]:
        margin = RecommendationMargins.TEMPERATURE
        if temp > target.max:
            critical = temp > target.max + margin or temp > RecommendationMargins.TEMPERATURE_CRITICAL_MAX
            if critical:
                actions = (ActionRef("Maximize fans", "fan-max"), ActionRef("Dim lights", "light-dim"))
                title = "Temperature critically high"
                message = f"{temp:.1f}°C - cool the chamber immediately"
            else:
                actions = (ActionRef("Increase ventilation", "fan-increase"),)
                title = "Temperature too high"
                message = f"{temp:.1f}°C is {temp - target.max:.1f}° above the optimal range"
            return [
                Recommendation(
                    id=recommendation_id("temperature", "high"),
                    severity=Severity.CRITICAL if critical else Severity.WARNING,
                    title=title,
                    message=message,
                    metric="temperature",
                    current_value=temp,
                    target_value=target.optimal,
                    suggested_actions=actions,
                )
            ]
        if temp < target.min:
            critical = temp < target.min - margin
            return [
                Recommendation(
                    id=recommendation_id("temperature", "low"),
                    severity=Severity.CRITICAL if critical else Severity.WARNING,
                    title="Temperature critically low" if critical else "Temperature too low",
                    message=f"{temp:.1f}°C is {target.min - temp:.1f}° below the minimum",
                    metric="temperature",
                    current_value=temp,
                    target_value=target.optimal,
                    suggested_actions=(ActionRef("Turn on heater", "heater-on"),),
                )
            ]
        return []

    @staticmethod
    def _humidity(humidity: float, target: OptimalRange) -> List[Recommendation]:
        margin = RecommendationMargins.HUMIDITY
        if humidity > target.max:
            critical = humidity > target.max + margin or humidity > RecommendationMargins.HUMIDITY_CRITICAL_MAX
            if critical:
                actions = (
                    ActionRef("Dehumidifier on", "dehumidifier-on"),
                    ActionRef("Maximize exhaust", "exhaust-max"),
                )
                title = "Mold risk"
                message = f"{humidity:.0f}% RH - dehumidify immediately"
            else:
                actions = (ActionRef("Increase dehumidification", "dehumidifier-increase"),)
                title = "Humidity too high"
                message = f"{humidity:.0f}% RH - reduce by {humidity - target.optimal:.0f}%"
            return [
                Recommendation(
                    id=recommendation_id("humidity", "high"),
                    severity=Severity.CRITICAL if critical else Severity.WARNING,
                    title=title,
                    message=message,
                    metric="humidity",
                    current_value=humidity,
                    target_value=target.optimal,
                    suggested_actions=actions,
                )
            ]
        if humidity < target.min:
            critical = humidity < target.min - margin
            return [
                Recommendation(
                    id=recommendation_id("humidity", "low"),
                    severity=Severity.CRITICAL if critical else Severity.WARNING,
                    title="Humidity critically low" if critical else "Humidity too low",
                    message=f"{humidity:.0f}% RH - raise by {target.min - humidity:.0f}%",
                    metric="humidity",
                    current_value=humidity,
                    target_value=target.optimal,
                    suggested_actions=(ActionRef("Turn on humidifier", "humidifier-on"),),
                )
            ]
        return []

    @staticmethod
    def _vpd(vpd: float, target: OptimalRange) -> List[Recommendation]:
        margin = RecommendationMargins.VPD
        if vpd < target.min:
            far = vpd < target.min - margin
            return [
                Recommendation(
                    id=recommendation_id("vpd", "low"),
                    severity=Severity.WARNING if far else Severity.OPTIMIZATION,
                    title="VPD too low" if far else "VPD can be improved",
                    message=f"{vpd:.2f} kPa - transpiration could be higher",
                    metric="vpd",
                    current_value=vpd,
                    target_value=target.optimal,
                    suggested_actions=(
                        ActionRef("Raise temperature", "temp-increase"),
                        ActionRef("Lower humidity", "humidity-decrease"),
                    ),
                )
            ]
        if vpd > target.max:
            far = vpd > target.max + margin
            return [
                Recommendation(
                    id=recommendation_id("vpd", "high"),
                    severity=Severity.CRITICAL if far else Severity.WARNING,
                    title="VPD critically high" if far else "VPD too high",
                    message=f"{vpd:.2f} kPa - plants are under stress",
                    metric="vpd",
                    current_value=vpd,
                    target_value=target.optimal,
                    suggested_actions=(ActionRef("Raise humidity", "humidity-increase"),),
                )
            ]
        if abs(vpd - target.optimal) < RecommendationMargins.VPD_ON_TARGET:
            return [
                Recommendation(
                    id=recommendation_id("vpd", "optimal"),
                    severity=Severity.INFO,
                    title="VPD on target",
                    message=f"{vpd:.2f} kPa - ideal conditions",
                    metric="vpd",
                    current_value=vpd,
                    target_value=target.optimal,
                )
            ]
        return []

    @staticmethod
    def _dli(dli: float, target: OptimalRange) -> List[Recommendation]:
        margin = RecommendationMargins.DLI
        if dli < target.min:
            far = dli < target.min - margin
            return [
                Recommendation(
                    id=recommendation_id("dli", "low"),
                    severity=Severity.WARNING if far else Severity.OPTIMIZATION,
                    title="Daily light integral low",
                    message=f"{dli:.1f} mol/m²/day at the current intensity; target {target.min:.0f}-{target.max:.0f}",
                    metric="dli",
                    current_value=dli,
                    target_value=target.optimal,
                    suggested_actions=(ActionRef("Increase light intensity", "light-increase"),),
                )
            ]
        if dli > target.max:
            far = dli > target.max + margin
            return [
                Recommendation(
                    id=recommendation_id("dli", "high"),
                    severity=Severity.WARNING if far else Severity.OPTIMIZATION,
                    title="Daily light integral high",
                    message=f"{dli:.1f} mol/m²/day at the current intensity; target {target.min:.0f}-{target.max:.0f}",
                    metric="dli",
                    current_value=dli,
                    target_value=target.optimal,
                    suggested_actions=(ActionRef("Dim lights", "light-dim"),),
                )
            ]
        return []

    def _time_tips(self, now: datetime) -> List[Recommendation]:
        local = now.astimezone(self.local_tz) if now.tzinfo is not None else now
        hour = local.hour
        tips: List[Recommendation] = []
        if MORNING_HOURS[0] <= hour < MORNING_HOURS[1]:
            tips.append(
                Recommendation(
                    id=recommendation_id("routine", "morning"),
                    severity=Severity.INFO,
                    title="Morning routine",
                    message="Good time for watering and a plant check",
                    suggested_actions=(ActionRef("Start watering", "water"), ActionRef("Take photo", "snapshot")),
                )
            )
        if EVENING_HOURS[0] <= hour < EVENING_HOURS[1]:
            tips.append(
                Recommendation(
                    id=recommendation_id("routine", "evening"),
                    severity=Severity.INFO,
                    title="Evening check",
                    message="Time for the daily grow report",
                    suggested_actions=(ActionRef("Create report", "report"),),
                )
            )
        return tips


_default_generator = RecommendationGenerator()


def generate_recommendations(
    fused: FusedConditions,
    derived: Optional[DerivedQuantities],
    phase: GrowthPhase | str = GrowthPhase.VEGETATIVE,
    *,
    now: Optional[datetime] = None,
) -> List[Recommendation]:
    """Module-level shortcut using the built-in phase ranges."""
    return _default_generator.generate(fused, derived, phase, now=now)
