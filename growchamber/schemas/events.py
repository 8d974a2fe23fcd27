"""
Event Payload Schemas
=====================

Pydantic payloads for Socket.IO emits, EventBus topics and HTTP responses.
This is the presentation boundary: values are rounded here and nowhere
earlier, so the domain keeps full precision.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from growchamber.domain.alerts import EnvironmentalAlert
from growchamber.domain.automation import TriggeredAction
from growchamber.domain.conditions import DerivedQuantities, FusedConditions, ReservoirConditions
from growchamber.domain.live_state import LiveState, TimestampedValue
from growchamber.domain.recommendation import Recommendation
from growchamber.domain.watchdog import WatchdogStatus
from growchamber.enums.common import GrowthPhase
from growchamber.utils.psychrometrics import classify_vpd
from growchamber.utils.time import to_iso

ConnectionStatus = Literal["connected", "disconnected"]


def _round(value: Optional[float], digits: int) -> Optional[float]:
    if value is None:
        return None
    return round(value, digits)


class FusedConditionsPayload(BaseModel):
    temperature: float | None = None
    humidity: float | None = None
    soil_moisture_percent: list[float | None] = Field(default_factory=list)
    soil_moisture_mean: float | None = None
    light_lux: float | None = None
    plant_heights_cm: list[float | None] = Field(default_factory=list)
    is_valid: bool = False


class DerivedPayload(BaseModel):
    vpd_kpa: float
    vpd_status: str
    dew_point_c: float
    dli_mol_m2_day: float | None = None
    heat_index_c: float | None = None


class ReservoirPayload(BaseModel):
    tank_level_percent: float | None = None
    gas_level: float | None = None
    eco2_ppm: float | None = None
    ec: float | None = None
    ph: float | None = None
    water_temp_c: float | None = None
    reservoir_level_percent: float | None = None
    total_dosed_ml: float | None = None


class WatchdogStatusPayload(BaseModel):
    """Freshness of one telemetry source as shown to dashboards."""

    source: str
    source_state: str
    condition: str
    transport_connected: bool
    is_trustworthy: bool
    last_received_at: str | None = None
    elapsed_ms: int | None = None
    checked_at: str | None = None


class ActionRefPayload(BaseModel):
    label: str
    action: str


class RecommendationPayload(BaseModel):
    id: str
    severity: str
    title: str
    message: str
    metric: str | None = None
    current_value: float | None = None
    target_value: float | None = None
    suggested_actions: list[ActionRefPayload] = Field(default_factory=list)


class TriggeredActionPayload(BaseModel):
    rule_id: str
    rule_name: str
    priority: int
    index: int
    action: dict[str, Any]
    triggered_at: str
    branch: str = "then"


class AlertPayload(BaseModel):
    key: str
    severity: str
    title: str
    message: str
    raised_at: str
    value: float | None = None


class NutrientStatusPayload(BaseModel):
    value: dict[str, Any]
    updated_at: str
    origin: str


class LiveStatePayload(BaseModel):
    """Whole live state; ``has_data`` is false until the first snapshot."""

    schema_version: int = Field(default=1)
    sequence: int
    updated_at: str | None = None
    has_data: bool
    growth_phase: GrowthPhase
    fused: FusedConditionsPayload
    derived: DerivedPayload | None = None
    reservoir: ReservoirPayload
    nutrient_status: NutrientStatusPayload | None = None
    watchdog: dict[str, WatchdogStatusPayload]
    triggered_actions: list[TriggeredActionPayload] = Field(default_factory=list)
    recommendations: list[RecommendationPayload] = Field(default_factory=list)
    alerts: list[AlertPayload] = Field(default_factory=list)


class ConnectivityStatePayload(BaseModel):
    connection_type: str = "mqtt"
    status: ConnectionStatus
    endpoint: str | None = None
    port: int | None = None
    details: dict[str, Any] | None = None
    timestamp: str | None = None


class RulesReloadedPayload(BaseModel):
    rule_count: int
    enabled_count: int
    timestamp: str | None = None


class RuleExecutedPayload(BaseModel):
    rule_id: str
    success: bool
    execution_count: int
    executed_at: str
    error: str | None = None
    result: str | None = None


# ============================================================================
# Builders
# ============================================================================

def build_fused_payload(fused: FusedConditions) -> FusedConditionsPayload:
    return FusedConditionsPayload(
        temperature=_round(fused.temperature, 1),
        humidity=_round(fused.humidity, 1),
        soil_moisture_percent=[_round(v, 1) for v in fused.soil_moisture_percent],
        soil_moisture_mean=_round(fused.soil_moisture_mean, 1),
        light_lux=_round(fused.light_lux, 1),
        plant_heights_cm=[_round(v, 1) for v in fused.plant_heights_cm],
        is_valid=fused.is_valid,
    )


def build_derived_payload(derived: DerivedQuantities, phase: GrowthPhase) -> DerivedPayload:
    return DerivedPayload(
        vpd_kpa=round(derived.vpd_kpa, 2),
        vpd_status=classify_vpd(derived.vpd_kpa, phase),
        dew_point_c=round(derived.dew_point_c, 1),
        dli_mol_m2_day=_round(derived.dli_mol_m2_day, 1),
        heat_index_c=_round(derived.heat_index_c, 1),
    )


def build_reservoir_payload(reservoir: ReservoirConditions) -> ReservoirPayload:
    return ReservoirPayload(
        tank_level_percent=_round(reservoir.tank_level_percent, 1),
        gas_level=_round(reservoir.gas_level, 1),
        eco2_ppm=_round(reservoir.eco2_ppm, 0),
        ec=_round(reservoir.ec, 2),
        ph=_round(reservoir.ph, 2),
        water_temp_c=_round(reservoir.water_temp_c, 1),
        reservoir_level_percent=_round(reservoir.reservoir_level_percent, 1),
        total_dosed_ml=_round(reservoir.total_dosed_ml, 1),
    )


def build_watchdog_payload(status: WatchdogStatus) -> WatchdogStatusPayload:
    return WatchdogStatusPayload(
        source=status.source.value,
        source_state=status.source_state.value,
        condition=status.condition,
        transport_connected=status.transport_connected,
        is_trustworthy=status.is_trustworthy,
        last_received_at=to_iso(status.last_received_at),
        elapsed_ms=int(status.elapsed_ms) if status.elapsed_ms is not None else None,
        checked_at=to_iso(status.checked_at),
    )


def build_recommendation_payload(rec: Recommendation) -> RecommendationPayload:
    digits = 2 if rec.metric == "vpd" else 1
    return RecommendationPayload(
        id=rec.id,
        severity=rec.severity.value,
        title=rec.title,
        message=rec.message,
        metric=rec.metric,
        current_value=_round(rec.current_value, digits),
        target_value=_round(rec.target_value, digits),
        suggested_actions=[ActionRefPayload(label=a.label, action=a.action) for a in rec.suggested_actions],
    )


def build_triggered_action_payload(triggered: TriggeredAction) -> TriggeredActionPayload:
    return TriggeredActionPayload(
        rule_id=triggered.rule_id,
        rule_name=triggered.rule_name,
        priority=triggered.priority,
        index=triggered.index,
        action=triggered.action.to_dict(),
        triggered_at=to_iso(triggered.triggered_at),
        branch=triggered.branch,
    )


def build_alert_payload(alert: EnvironmentalAlert) -> AlertPayload:
    return AlertPayload(
        key=alert.key,
        severity=alert.severity.value,
        title=alert.title,
        message=alert.message,
        raised_at=to_iso(alert.raised_at),
        value=_round(alert.value, 1),
    )


def build_nutrient_status_payload(cell: TimestampedValue) -> NutrientStatusPayload:
    return NutrientStatusPayload(value=dict(cell.value), updated_at=to_iso(cell.updated_at), origin=cell.origin.value)


def build_live_state_payload(state: LiveState) -> LiveStatePayload:
    derived = None
    if state.derived is not None and state.fused.is_valid:
        derived = build_derived_payload(state.derived, state.growth_phase)
    return LiveStatePayload(
        sequence=state.sequence,
        updated_at=to_iso(state.updated_at),
        has_data=state.has_data,
        growth_phase=state.growth_phase,
        fused=build_fused_payload(state.fused),
        derived=derived,
        reservoir=build_reservoir_payload(state.reservoir),
        nutrient_status=build_nutrient_status_payload(state.nutrient_status) if state.nutrient_status else None,
        watchdog={source.value: build_watchdog_payload(status) for source, status in state.watchdog.items()},
        triggered_actions=[build_triggered_action_payload(t) for t in state.triggered_actions],
        recommendations=[build_recommendation_payload(r) for r in state.recommendations],
        alerts=[build_alert_payload(a) for a in state.alerts],
    )
