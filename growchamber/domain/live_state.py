"""
Live State Record
=================
The process-wide view published to UI and action executors. A record is
never mutated; every update produces a new one via ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Generic, Mapping, Optional, TypeVar

from growchamber.domain.alerts import EnvironmentalAlert
from growchamber.domain.automation import TriggeredAction
from growchamber.domain.conditions import DerivedQuantities, FusedConditions, ReservoirConditions
from growchamber.domain.recommendation import Recommendation
from growchamber.domain.snapshot import RawSnapshot
from growchamber.domain.watchdog import WatchdogStatus
from growchamber.enums.common import GrowthPhase, TelemetrySource, UpdateOrigin

T = TypeVar("T")


@dataclass(frozen=True)
class TimestampedValue(Generic[T]):
    """A value together with when it was observed and how it arrived."""

    value: T
    updated_at: datetime
    origin: UpdateOrigin = UpdateOrigin.PUSH

    def supersedes(self, other: Optional["TimestampedValue[Any]"]) -> bool:
        """Newer timestamps win; on a tie a push beats a poll."""
        if other is None:
            return True
        if self.updated_at != other.updated_at:
            return self.updated_at > other.updated_at
        return self.origin == UpdateOrigin.PUSH and other.origin == UpdateOrigin.POLL

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "updated_at": self.updated_at.isoformat(),
            "origin": self.origin.value,
        }


@dataclass(frozen=True)
class LiveState:
    """
    Combined result of one processing cycle.

    ``raw`` is None until the first controller snapshot, which is how "no
    data yet" is told apart from readings of zero.
    """

    sequence: int = 0
    updated_at: Optional[datetime] = None
    growth_phase: GrowthPhase = GrowthPhase.VEGETATIVE
    raw: Optional[RawSnapshot] = None
    fused: FusedConditions = field(default_factory=FusedConditions)
    derived: Optional[DerivedQuantities] = None
    reservoir: ReservoirConditions = field(default_factory=ReservoirConditions)
    nutrient_status: Optional[TimestampedValue[Mapping[str, Any]]] = None
    watchdog: Mapping[TelemetrySource, WatchdogStatus] = field(
        default_factory=lambda: MappingProxyType(
            {source: WatchdogStatus(source=source) for source in TelemetrySource}
        )
    )
    triggered_actions: tuple[TriggeredAction, ...] = ()
    recommendations: tuple[Recommendation, ...] = ()
    alerts: tuple[EnvironmentalAlert, ...] = ()

    @property
    def has_data(self) -> bool:
        return self.raw is not None

    @property
    def controller_status(self) -> WatchdogStatus:
        return self.watchdog.get(TelemetrySource.CONTROLLER) or WatchdogStatus()

    @classmethod
    def initial(cls, growth_phase: GrowthPhase = GrowthPhase.VEGETATIVE) -> "LiveState":
        return cls(growth_phase=growth_phase)
