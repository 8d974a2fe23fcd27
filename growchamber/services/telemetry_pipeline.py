"""
Telemetry Pipeline
==================

The only writer of the live state. Every inbound event (controller
snapshot, nutrient push, transport change, watchdog tick, rule reload, execution
report) is applied under one lock, in arrival order, as a strict
read-latest / compute / publish sequence:

    RawSnapshot -> SensorFusionProcessor -> compute_derived_quantities
                -> RuleEngine.evaluate -> RecommendationGenerator.generate
                -> EnvironmentalAlertService -> LiveStateStore.update

Triggered actions are handed to the :class:`ActionDispatcher` after the
publish; executions come back asynchronously through ``report_execution``.

Out-of-order snapshots (lower sequence, or lower device timestamp when the
firmware sends no sequence) are discarded so fused readings never move
backwards in time. A lower sequence is accepted while the source is stale,
which is what a controller reboot looks like.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

from growchamber.constants import PHASE_LIGHT_HOURS, AlertThresholds, Timeouts
from growchamber.domain.alerts import EnvironmentalAlert
from growchamber.domain.automation import (
    AutomationRule,
    ExecutionReport,
    RuleEvaluation,
    RuleTrialRecord,
    TriggeredAction,
)
from growchamber.domain.conditions import DerivedQuantities, FusedConditions, ReservoirConditions
from growchamber.domain.exceptions import ExternalServiceError, NotFoundError, RuleConfigurationError
from growchamber.domain.live_state import LiveState
from growchamber.domain.snapshot import RawSnapshot
from growchamber.domain.watchdog import WatchdogStatus
from growchamber.enums.automation import ExecutionResult
from growchamber.enums.common import GrowthPhase, SourceState, TelemetrySource, UpdateOrigin
from growchamber.enums.events import RuntimeEvent
from growchamber.hardware.sensors.processors.fusion_processor import SensorFusionProcessor
from growchamber.schemas.events import RuleExecutedPayload, RulesReloadedPayload
from growchamber.services.action_dispatcher import ActionDispatcher
from growchamber.services.alert_service import EnvironmentalAlertService
from growchamber.services.live_state_store import LiveStateStore, TimestampedCell
from growchamber.services.recommendation_service import RecommendationGenerator
from growchamber.services.rule_engine import RuleEngine
from growchamber.services.rule_sources import RuleSource
from growchamber.services.watchdog_service import StalenessWatchdog
from growchamber.utils.psychrometrics import compute_derived_quantities
from growchamber.utils.time import ensure_utc, to_iso, utc_now

logger = logging.getLogger(__name__)

_STALE_STATES = (SourceState.WARNING, SourceState.CRITICAL)


class TelemetryPipeline:
    """Serialized fusion -> evaluation -> publish pipeline."""

    def __init__(
        self,
        store: LiveStateStore,
        *,
        fusion: SensorFusionProcessor,
        watchdog: StalenessWatchdog,
        rule_engine: RuleEngine,
        recommender: RecommendationGenerator,
        alerts: EnvironmentalAlertService,
        rule_source: Optional[RuleSource] = None,
        dispatcher: Optional[ActionDispatcher] = None,
        event_bus: Any = None,
        light_hours: Optional[float] = None,
        tick_seconds: float = 5.0,
        rules_refresh_seconds: float = 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self.store = store
        self.fusion = fusion
        self.watchdog = watchdog
        self.rule_engine = rule_engine
        self.recommender = recommender
        self.alerts = alerts
        self.rule_source = rule_source
        self.dispatcher = dispatcher
        self.event_bus = event_bus
        self.light_hours = light_hours
        self.tick_seconds = tick_seconds
        self.rules_refresh_seconds = rules_refresh_seconds
        self._clock = clock

        self._lock = threading.RLock()
        self._rules: list[AutomationRule] = []
        self._last_seen: dict[TelemetrySource, tuple[Optional[int], Optional[datetime]]] = {}
        self._pending_alerts: list[EnvironmentalAlert] = []
        self._nutrient_status: TimestampedCell[Mapping[str, Any]] = TimestampedCell()
        self._last_refresh: Optional[datetime] = None

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stats = {
            "snapshots": 0,
            "out_of_order": 0,
            "ticks": 0,
            "rule_reloads": 0,
            "rule_reload_failures": 0,
            "executions": 0,
        }

        self.watchdog.add_listener(self._on_watchdog_transition)
        if self.dispatcher is not None and self.dispatcher.on_report is None:
            self.dispatcher.on_report = self.report_execution

    # ------------------------------------------------------------------ #
    # Snapshots
    # ------------------------------------------------------------------ #

    def apply_sensor_data(self, payload: Mapping[str, Any], *, received_at: Optional[datetime] = None) -> bool:
        """
        Apply one controller snapshot.

        Returns False when the snapshot was discarded as out of order.
        """
        received_at = ensure_utc(received_at) if received_at else self._clock()
        raw = RawSnapshot.from_payload(payload, source=TelemetrySource.CONTROLLER, received_at=received_at)

        with self._lock:
            if not self._accept(raw):
                return False
            self.watchdog.on_snapshot(raw.source, received_at)

            state = self.store.current()
            fused = self.fusion.fuse(raw, state.fused)
            reservoir = self.fusion.fuse_reservoir(raw, state.reservoir)
            derived = compute_derived_quantities(fused, self._hours_of_light(state.growth_phase))

            triggered, skipped = self._evaluate(fused, derived, self._trusted_reservoir(reservoir), received_at)
            recommendations = self.recommender.generate(fused, derived, state.growth_phase, now=received_at)
            new_alerts = self._drain_alerts() + self.alerts.check_snapshot(raw, reservoir)

            self._stats["snapshots"] += 1
            logger.debug(
                "Snapshot applied: temperature=%s humidity=%s valid=%s triggered=%d",
                fused.temperature,
                fused.humidity,
                fused.is_valid,
                len(triggered),
            )
            self.store.update(
                raw=raw,
                fused=fused,
                derived=derived,
                reservoir=reservoir,
                watchdog=self._watchdog_view(),
                triggered_actions=tuple(triggered),
                recommendations=tuple(recommendations),
                alerts=self._merge_alerts(state, new_alerts),
            )

        self._dispatch(triggered, skipped)
        return True

    def apply_nutrient_sensors(self, payload: Mapping[str, Any], *, received_at: Optional[datetime] = None) -> bool:
        """Apply an EC / pH / water temperature push from the nutrient controller."""
        received_at = ensure_utc(received_at) if received_at else self._clock()
        raw = RawSnapshot.from_payload(payload, source=TelemetrySource.NUTRIENTS, received_at=received_at)

        with self._lock:
            if not self._accept(raw):
                return False
            self.watchdog.on_snapshot(raw.source, received_at)

            state = self.store.current()
            reservoir = self.fusion.fuse_nutrients(raw, state.reservoir)
            fused, derived, trusted = self._rule_inputs(state, reservoir)
            triggered, skipped = self._evaluate(fused, derived, trusted, received_at)
            self.store.update(
                reservoir=reservoir,
                watchdog=self._watchdog_view(),
                triggered_actions=tuple(triggered),
                alerts=self._merge_alerts(state, self._drain_alerts()),
            )

        self._dispatch(triggered, skipped)
        return True

    def apply_nutrient_status(
        self,
        payload: Mapping[str, Any],
        *,
        origin: UpdateOrigin = UpdateOrigin.PUSH,
        updated_at: Optional[datetime] = None,
    ) -> bool:
        """
        Offer a nutrient controller status (pump state, dosing progress).

        Pushed and polled values share one cell; an older value never replaces
        a newer one. Returns True when the value was taken.
        """
        updated_at = ensure_utc(updated_at) if updated_at else self._clock()
        with self._lock:
            if not self._nutrient_status.offer(dict(payload), updated_at, origin):
                return False
            if origin == UpdateOrigin.PUSH:
                self.watchdog.on_snapshot(TelemetrySource.NUTRIENTS, updated_at)
            state = self.store.current()
            self.store.update(
                nutrient_status=self._nutrient_status.current(),
                watchdog=self._watchdog_view(),
                alerts=self._merge_alerts(state, self._drain_alerts()),
            )
        return True

    def _accept(self, raw: RawSnapshot) -> bool:
        last_sequence, last_timestamp = self._last_seen.get(raw.source, (None, None))
        regressed = False
        if raw.sequence is not None and last_sequence is not None:
            regressed = raw.sequence < last_sequence
        elif raw.device_timestamp is not None and last_timestamp is not None:
            regressed = raw.device_timestamp < last_timestamp

        if regressed:
            status = self.watchdog.status(raw.source)
            if status.source_state not in _STALE_STATES:
                self._stats["out_of_order"] += 1
                logger.warning(
                    "Discarding out-of-order %s snapshot (sequence %s after %s)",
                    raw.source,
                    raw.sequence,
                    last_sequence,
                )
                return False
            logger.info("Accepting %s sequence reset after %s silence", raw.source, status.condition)

        self._last_seen[raw.source] = (
            raw.sequence if raw.sequence is not None else last_sequence,
            raw.device_timestamp or last_timestamp,
        )
        return True

    # ------------------------------------------------------------------ #
    # Status events
    # ------------------------------------------------------------------ #

    def apply_transport_status(self, connected: bool) -> None:
        """Broker connectivity changed."""
        with self._lock:
            if not self.watchdog.set_transport_connected(bool(connected)):
                return
            state = self.store.current()
            self.store.update(
                watchdog=self._watchdog_view(),
                alerts=self._merge_alerts(state, self._drain_alerts()),
            )

    def apply_watchdog_status(self, payload: Mapping[str, Any]) -> None:
        """
        Health report from an upstream watchdog.

        Only its transport flag (``mqtt`` or ``connected``) is used; data
        freshness is always computed locally.
        """
        connected = payload.get("mqtt", payload.get("connected"))
        if isinstance(connected, bool):
            self.apply_transport_status(connected)
        else:
            logger.debug("Watchdog status without transport flag ignored: %s", dict(payload))

    def apply_alert(self, payload: Mapping[str, Any]) -> list[EnvironmentalAlert]:
        """Record an alert pushed by an upstream service (throttled like local alerts)."""
        with self._lock:
            raised = self.alerts.check_external(payload)
            if raised:
                state = self.store.current()
                self.store.update(alerts=self._merge_alerts(state, raised))
        return raised

    # ------------------------------------------------------------------ #
    # Periodic tick
    # ------------------------------------------------------------------ #

    def tick(self, now: Optional[datetime] = None) -> LiveState:
        """
        Advance the watchdog and re-evaluate rules.

        Time-windowed rules need evaluation without new data. Metrics of a
        source that is not fresh are withheld, so a stale controller or
        nutrient feed can only leave time and schedule conditions satisfiable.
        """
        now = ensure_utc(now) if now else self._clock()
        with self._lock:
            self.watchdog.tick(now)
            state = self.store.current()
            fused, derived, reservoir = self._rule_inputs(state, state.reservoir)
            triggered, skipped = self._evaluate(fused, derived, reservoir, now)
            self._stats["ticks"] += 1
            published = self.store.update(
                watchdog=self._watchdog_view(),
                triggered_actions=tuple(triggered),
                alerts=self._merge_alerts(state, self._drain_alerts()),
            )

        self._dispatch(triggered, skipped)
        return published

    def start(self) -> None:
        """Run ticks (and periodic rule refreshes) on a background thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._tick_loop, name="telemetry-tick", daemon=True)
        self._thread.start()
        logger.info("Telemetry pipeline started (tick every %.1f s)", self.tick_seconds)

    def stop(self, timeout: float = Timeouts.WORKER_JOIN_TIMEOUT) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Telemetry pipeline stopped")

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _tick_loop(self) -> None:
        while not self._stop_event.wait(self.tick_seconds):
            try:
                self.tick()
                if self._refresh_due():
                    self.refresh_rules()
            except Exception as exc:
                logger.error("Telemetry tick failed: %s", exc, exc_info=True)

    def _refresh_due(self) -> bool:
        if self.rule_source is None or self.rules_refresh_seconds <= 0:
            return False
        if self._last_refresh is None:
            return True
        return (self._clock() - self._last_refresh).total_seconds() >= self.rules_refresh_seconds

    # ------------------------------------------------------------------ #
    # Rules
    # ------------------------------------------------------------------ #

    @property
    def rules(self) -> list[AutomationRule]:
        with self._lock:
            return list(self._rules)

    def set_rules(self, raw_rules: Iterable[Any]) -> list[AutomationRule]:
        """
        Install a new rule set. Malformed rules are dropped with a warning;
        a set that exceeds the configured limits raises RuleConfigurationError
        and leaves the current rules in place.
        """
        rules = self.rule_engine.load_rules(raw_rules, strict=True)
        with self._lock:
            self._rules = rules
            self._stats["rule_reloads"] += 1
        enabled = sum(1 for r in rules if r.enabled)
        logger.info("Loaded %d automation rules (%d enabled)", len(rules), enabled)
        self._publish(
            RuntimeEvent.RULES_RELOADED,
            RulesReloadedPayload(rule_count=len(rules), enabled_count=enabled, timestamp=to_iso(self._clock())),
        )
        return rules

    def refresh_rules(self) -> bool:
        """Reload rules from the rule source, keeping the last good set on failure."""
        if self.rule_source is None:
            return False
        self._last_refresh = self._clock()
        try:
            self.set_rules(self.rule_source.list_rules())
        except ExternalServiceError as exc:
            self._stats["rule_reload_failures"] += 1
            logger.warning("Rule refresh failed, keeping %d rules: %s", len(self._rules), exc)
            return False
        except RuleConfigurationError as exc:
            self._stats["rule_reload_failures"] += 1
            logger.error("Rule set rejected, keeping %d rules: %s", len(self._rules), exc)
            return False
        return True

    def get_rule(self, rule_id: str) -> AutomationRule:
        with self._lock:
            for rule in self._rules:
                if rule.id == rule_id:
                    return rule
        raise NotFoundError(f"Automation rule {rule_id} not found", detail={"rule_id": rule_id})

    def trial_results(self, rule_id: str) -> list[RuleTrialRecord]:
        """Recorded evaluations of a loaded rule running in test mode."""
        rule = self.get_rule(rule_id)
        return self.rule_engine.trial_results(rule.id)

    def simulate(
        self,
        rule: Any,
        *,
        metrics: Optional[Mapping[str, Optional[float]]] = None,
        now: Optional[datetime] = None,
    ) -> RuleEvaluation:
        """Dry-run ``rule`` against the current live state."""
        state = self.store.current()
        return self.rule_engine.simulate(
            rule, state.fused, state.derived, reservoir=state.reservoir, metrics=metrics, now=now
        )

    def report_execution(self, report: ExecutionReport) -> Optional[AutomationRule]:
        """Apply an execution outcome to the rule's bookkeeping and forward it to the rule source."""
        with self._lock:
            for index, rule in enumerate(self._rules):
                if rule.id == report.rule_id:
                    updated = self.rule_engine.record_execution(rule, report)
                    self._rules[index] = updated
                    break
            else:
                logger.debug("Execution report for unknown rule %s ignored", report.rule_id)
                return None
            if not report.skipped:
                self._stats["executions"] += 1

        if report.skipped:
            logger.info("Rule %s recorded as skipped: %s", report.rule_id, report.error)
        elif not report.success:
            logger.warning("Rule %s execution failed: %s", report.rule_id, report.error)
        if self.rule_source is not None:
            try:
                self.rule_source.record_execution(updated)
            except ExternalServiceError as exc:
                logger.warning("Could not store execution of rule %s: %s", report.rule_id, exc)

        self._publish(
            RuntimeEvent.RULE_EXECUTED,
            RuleExecutedPayload(
                rule_id=report.rule_id,
                success=report.success,
                execution_count=updated.execution_count,
                executed_at=to_iso(report.executed_at),
                error=report.error,
                result=updated.last_result.value if updated.last_result else None,
            ),
        )
        return updated

    # ------------------------------------------------------------------ #
    # Growth phase
    # ------------------------------------------------------------------ #

    def set_growth_phase(self, phase: GrowthPhase | str) -> LiveState:
        """Switch the growth phase and recompute phase-dependent outputs."""
        phase = GrowthPhase(phase)
        with self._lock:
            state = self.store.current()
            derived = compute_derived_quantities(state.fused, self._hours_of_light(phase))
            recommendations = self.recommender.generate(state.fused, derived, phase, now=state.updated_at)
            logger.info("Growth phase set to %s", phase)
            return self.store.update(growth_phase=phase, derived=derived, recommendations=tuple(recommendations))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _hours_of_light(self, phase: GrowthPhase) -> float:
        if self.light_hours is not None:
            return self.light_hours
        return PHASE_LIGHT_HOURS[phase]

    def _is_fresh(self, source: TelemetrySource) -> bool:
        return self.watchdog.status(source).source_state == SourceState.OK

    def _trusted_reservoir(self, reservoir: ReservoirConditions) -> ReservoirConditions:
        """Reservoir readings with the fields of non-fresh sources cleared."""
        if not self._is_fresh(TelemetrySource.CONTROLLER):
            reservoir = reservoir.without(ReservoirConditions.CONTROLLER_FIELDS)
        if not self._is_fresh(TelemetrySource.NUTRIENTS):
            reservoir = reservoir.without(ReservoirConditions.NUTRIENT_FIELDS)
        return reservoir

    def _rule_inputs(self, state: LiveState, reservoir: ReservoirConditions):
        """Rule inputs as of now: each metric only while its source is fresh."""
        trusted = self._trusted_reservoir(reservoir)
        if not self._is_fresh(TelemetrySource.CONTROLLER):
            return FusedConditions.empty(), None, trusted
        return state.fused, state.derived, trusted

    def _watchdog_view(self) -> Mapping[TelemetrySource, WatchdogStatus]:
        return MappingProxyType(self.watchdog.snapshot())

    def _on_watchdog_transition(self, previous: WatchdogStatus, current: WatchdogStatus) -> None:
        # Runs inside the pipeline lock; collected alerts go out with the next publish
        self._pending_alerts.extend(self.alerts.check_watchdog(previous, current))

    def _drain_alerts(self) -> list[EnvironmentalAlert]:
        alerts, self._pending_alerts = self._pending_alerts, []
        return alerts

    @staticmethod
    def _merge_alerts(state: LiveState, new_alerts: list[EnvironmentalAlert]) -> tuple[EnvironmentalAlert, ...]:
        if not new_alerts:
            return state.alerts
        newest_first = sorted(new_alerts, key=lambda a: a.raised_at, reverse=True)
        return tuple(newest_first + list(state.alerts))[: AlertThresholds.ALERT_HISTORY_SIZE]

    def _evaluate(
        self,
        fused: FusedConditions,
        derived: Optional[DerivedQuantities],
        reservoir: ReservoirConditions,
        now: datetime,
    ) -> tuple[list[TriggeredAction], list[ExecutionReport]]:
        skipped: list[ExecutionReport] = []

        def on_skip(rule: AutomationRule, reason: str) -> None:
            if rule.last_result != ExecutionResult.SKIPPED:
                skipped.append(ExecutionReport(rule.id, success=False, executed_at=now, error=reason, skipped=True))

        triggered = self.rule_engine.evaluate(
            self._rules, fused, derived, reservoir=reservoir, now=now, on_skip=on_skip
        )
        return triggered, skipped

    def _dispatch(self, triggered: list[TriggeredAction], skipped: Iterable[ExecutionReport] = ()) -> None:
        # Runs outside the pipeline lock; skip reports reach the rule source
        for report in skipped:
            self.report_execution(report)
        if triggered and self.dispatcher is not None:
            self.dispatcher.submit(triggered)

    def _publish(self, event, payload) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(event, payload)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            stats: dict[str, Any] = dict(self._stats)
            stats["rules"] = len(self._rules)
        stats["nutrient_status_rejected"] = self._nutrient_status.rejected
        stats["fusion"] = self.fusion.get_stats()
        stats["rule_engine"] = self.rule_engine.get_stats()
        stats["alerts"] = self.alerts.get_stats()
        if self.dispatcher is not None:
            stats["dispatcher"] = self.dispatcher.get_stats()
        return stats
