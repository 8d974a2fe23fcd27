"""
Automation Rule Engine
======================

Evaluates prioritized condition -> action rules against fused and derived
state and returns the actions that *should* run. Nothing is executed here;
the action dispatcher does that and reports back through
:meth:`RuleEngine.record_execution`.

Evaluation order:
1. Keep enabled rules only.
2. Sort by priority, highest first; equal priorities keep their original order.
3. Skip rules held back by cooldown or ``max_executions``, rules whose
   ``depends_on`` names a disabled or unknown rule, and rules whose
   ``conflicts_with`` names a rule that executed within the conflict window.
4. Fold each rule's conditions left to right. The connector after a
   condition is its own ``logic_to_next`` when set, otherwise the rule's
   ``condition_logic``. Conditions that can no longer change the outcome are
   not evaluated.
5. Emit the satisfied rule's actions in order, or its ``else_actions`` when
   the conditions are not met and every metric it reads has a value.
   Rules in test mode emit nothing; their outcome is kept in a short history.

A metric that is currently ``None`` never satisfies a condition, for any
operator. Malformed rules are dropped when loading and reported once per
rule configuration; they never stop other rules from being evaluated.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import threading
from collections import deque
from dataclasses import replace
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, Iterable, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from growchamber.constants import KNOWN_METRICS, Metrics
from growchamber.domain.automation import (
    AutomationRule,
    Condition,
    ConditionResult,
    ExecutionReport,
    RuleAction,
    RuleEvaluation,
    RuleTrialRecord,
    ScheduleCondition,
    SensorCondition,
    TimeCondition,
    TriggeredAction,
)
from growchamber.domain.conditions import DerivedQuantities, FusedConditions, ReservoirConditions
from growchamber.domain.exceptions import RuleConfigurationError
from growchamber.enums.automation import ComparisonOperator, ConditionLogic, ExecutionResult, TimeOperator
from growchamber.schemas.automation import AutomationRuleSchema
from growchamber.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)

MetricContext = Mapping[str, Optional[float]]

_FLOAT_TOLERANCE = 1e-9


def _fingerprint(item: Any) -> str:
    if isinstance(item, Mapping):
        text = json.dumps(item, sort_keys=True, default=str)
    else:
        text = repr(item)
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def _summarize_validation(exc: Exception) -> str:
    if isinstance(exc, PydanticValidationError):
        parts = []
        for err in exc.errors()[:3]:
            loc = ".".join(str(p) for p in err.get("loc", ()))
            parts.append(f"{loc}: {err.get('msg')}")
        return "; ".join(parts)
    return str(exc)


def build_metric_context(
    fused: FusedConditions,
    derived: Optional[DerivedQuantities] = None,
    reservoir: Optional[ReservoirConditions] = None,
) -> dict[str, Optional[float]]:
    """
    Flatten fused, derived and reservoir readings into metric -> value.

    Derived metrics are ``None`` unless the fused record is valid.
    """
    trusted = derived if fused.is_valid else None
    context: dict[str, Optional[float]] = {
        Metrics.TEMPERATURE: fused.temperature,
        Metrics.HUMIDITY: fused.humidity,
        Metrics.LIGHT: fused.light_lux,
        Metrics.SOIL_MOISTURE: fused.soil_moisture_mean,
        Metrics.VPD: trusted.vpd_kpa if trusted else None,
        Metrics.DEW_POINT: trusted.dew_point_c if trusted else None,
        Metrics.DLI: trusted.dli_mol_m2_day if trusted else None,
        Metrics.HEAT_INDEX: trusted.heat_index_c if trusted else None,
    }
    for index in range(6):
        soil = fused.soil_moisture_percent
        heights = fused.plant_heights_cm
        context[Metrics.soil_probe(index)] = soil[index] if index < len(soil) else None
        context[Metrics.plant_height(index)] = heights[index] if index < len(heights) else None

    reservoir = reservoir or ReservoirConditions()
    context.update(
        {
            Metrics.TANK_LEVEL: reservoir.tank_level_percent,
            Metrics.GAS_LEVEL: reservoir.gas_level,
            Metrics.ECO2: reservoir.eco2_ppm,
            Metrics.EC: reservoir.ec,
            Metrics.PH: reservoir.ph,
            Metrics.WATER_TEMP: reservoir.water_temp_c,
            Metrics.RESERVOIR_LEVEL: reservoir.reservoir_level_percent,
        }
    )
    return context


def compare(value: Optional[float], condition: SensorCondition) -> bool:
    """Apply a sensor condition's operator. ``None`` is never met."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return False
    op = condition.operator
    threshold = condition.threshold
    if op == ComparisonOperator.GT:
        return value > threshold
    if op == ComparisonOperator.LT:
        return value < threshold
    if op == ComparisonOperator.GTE:
        return value >= threshold
    if op == ComparisonOperator.LTE:
        return value <= threshold
    if op == ComparisonOperator.EQ:
        return math.isclose(value, threshold, rel_tol=_FLOAT_TOLERANCE, abs_tol=_FLOAT_TOLERANCE)
    if op == ComparisonOperator.NE:
        return not math.isclose(value, threshold, rel_tol=_FLOAT_TOLERANCE, abs_tol=_FLOAT_TOLERANCE)
    if op == ComparisonOperator.BETWEEN:
        return condition.threshold_high is not None and threshold <= value <= condition.threshold_high
    return False


class RuleEngine:
    """Loads, validates and evaluates automation rules."""

    def __init__(
        self,
        *,
        max_rules: int = 200,
        max_conditions_per_rule: int = 20,
        max_actions_per_rule: int = 20,
        conflict_window_seconds: float = 60,
        trial_history_size: int = 100,
        known_metrics: Iterable[str] = KNOWN_METRICS,
        local_tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_rules = max_rules
        self.max_conditions_per_rule = max_conditions_per_rule
        self.max_actions_per_rule = max_actions_per_rule
        self.conflict_window_seconds = conflict_window_seconds
        self.trial_history_size = trial_history_size
        self.known_metrics = frozenset(known_metrics)
        self.local_tz = local_tz
        self._clock = clock
        self._lock = threading.Lock()
        # rule key -> fingerprint of the configuration already reported
        self._reported: dict[str, str] = {}
        self._trials: dict[str, deque[RuleTrialRecord]] = {}
        self._stats = {"evaluations": 0, "triggered_rules": 0, "malformed_rules": 0}

    # ------------------------------------------------------------------ #
    # Loading / validation
    # ------------------------------------------------------------------ #

    def load_rules(self, raw_rules: Iterable[Any], *, strict: bool = False) -> list[AutomationRule]:
        """
        Validate a rule set, dropping malformed rules.

        Args:
            raw_rules: Rule mappings from the rule API and/or AutomationRule objects
            strict: Raise RuleConfigurationError when the set exceeds ``max_rules``
                instead of evaluating it (used when a rule set is installed)

        Returns:
            Valid rules in their original order
        """
        items = list(raw_rules)
        if strict and len(items) > self.max_rules:
            raise RuleConfigurationError(
                f"Rule set has {len(items)} rules; at most {self.max_rules} are allowed",
                detail={"rule_count": len(items), "max_rules": self.max_rules},
            )

        rules: list[AutomationRule] = []
        seen_ids: set[str] = set()
        for position, item in enumerate(items):
            rule = self._load_rule(item, position)
            if rule is None:
                continue
            if rule.id in seen_ids:
                self._report_malformed(rule.id, _fingerprint(item), "duplicate rule id")
                continue
            seen_ids.add(rule.id)
            rules.append(rule)
        return rules

    def _load_rule(self, item: Any, position: int) -> Optional[AutomationRule]:
        if isinstance(item, AutomationRule):
            rule_key = item.id
            fingerprint = _fingerprint(item)
            rule = item
        elif isinstance(item, Mapping):
            rule_key = str(item.get("id") or item.get("_id") or f"#{position}")
            fingerprint = _fingerprint(item)
            try:
                rule = AutomationRuleSchema.model_validate(dict(item)).to_domain()
            except (PydanticValidationError, ValueError) as exc:
                self._report_malformed(rule_key, fingerprint, _summarize_validation(exc))
                return None
        else:
            raise TypeError(f"Rules must be mappings or AutomationRule objects, got {type(item).__name__}")

        problems = self.validate_rule(rule)
        if problems:
            self._report_malformed(rule_key, fingerprint, "; ".join(problems))
            return None

        with self._lock:
            self._reported.pop(rule_key, None)
        return rule

    def validate_rule(self, rule: AutomationRule) -> list[str]:
        """Problems that make a well-formed rule unusable here."""
        problems = []
        unknown = sorted({m for m in rule.sensor_metrics if m not in self.known_metrics})
        if unknown:
            problems.append(f"unknown metric(s): {', '.join(unknown)}")
        if not rule.conditions:
            problems.append("no conditions")
        if not rule.actions:
            problems.append("no actions")
        if len(rule.conditions) > self.max_conditions_per_rule:
            problems.append(f"more than {self.max_conditions_per_rule} conditions")
        if len(rule.actions) > self.max_actions_per_rule:
            problems.append(f"more than {self.max_actions_per_rule} actions")
        if len(rule.else_actions) > self.max_actions_per_rule:
            problems.append(f"more than {self.max_actions_per_rule} else actions")
        return problems

    def _report_malformed(self, rule_key: str, fingerprint: str, reason: str) -> None:
        with self._lock:
            if self._reported.get(rule_key) == fingerprint:
                return
            self._reported[rule_key] = fingerprint
            self._stats["malformed_rules"] += 1
        logger.warning("Skipping malformed automation rule %s: %s", rule_key, reason)

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    def evaluate(
        self,
        rules: Iterable[Any],
        fused: FusedConditions,
        derived: Optional[DerivedQuantities] = None,
        *,
        reservoir: Optional[ReservoirConditions] = None,
        now: Optional[datetime] = None,
        on_skip: Optional[Callable[[AutomationRule, str], None]] = None,
    ) -> list[TriggeredAction]:
        """
        Triggered actions for the current state, highest priority rule first.

        ``on_skip`` is called for each rule held back because a conflicting
        rule executed within the conflict window.
        """
        now = ensure_utc(now or self._clock())
        context = build_metric_context(fused, derived, reservoir)
        loaded = self.load_rules(rules)
        by_id = {rule.id: rule for rule in loaded}
        ordered = sorted((r for r in loaded if r.enabled), key=lambda r: -r.priority)

        triggered: list[TriggeredAction] = []
        fired = 0
        for rule in ordered:
            if self.blocked_reason(rule, now) is not None:
                continue
            missing = self._missing_dependency(rule, by_id)
            if missing is not None:
                logger.debug("Rule %s skipped: dependency %s is not active", rule.id, missing)
                continue
            conflict = self._recent_conflict(rule, by_id, now)
            if conflict is not None:
                logger.info("Rule %s skipped: conflicts with recently executed rule %s", rule.id, conflict)
                if on_skip is not None:
                    on_skip(rule, f"conflicts with {conflict}")
                continue

            met = self._fold(rule, context, now)
            branch, actions = self._branch(rule, met, context)
            if rule.test_mode:
                self._record_trial(rule, met, actions, context, now)
                continue
            if not actions:
                continue
            fired += 1
            triggered.extend(
                TriggeredAction(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    priority=rule.priority,
                    action=action,
                    index=index,
                    triggered_at=now,
                    branch=branch,
                )
                for index, action in enumerate(actions)
            )

        self._stats["evaluations"] += 1
        self._stats["triggered_rules"] += fired
        if fired:
            logger.debug("%d of %d rules triggered", fired, len(ordered))
        return triggered

    def blocked_reason(self, rule: AutomationRule, now: datetime) -> Optional[str]:
        """Why a rule may not fire right now, or None."""
        if not rule.enabled:
            return "disabled"
        if rule.max_executions and rule.execution_count >= rule.max_executions:
            return "max_executions_reached"
        if rule.cooldown_seconds and rule.last_executed is not None:
            since = ensure_utc(now) - ensure_utc(rule.last_executed)
            if since < timedelta(seconds=rule.cooldown_seconds):
                return "cooldown"
        return None

    @staticmethod
    def _missing_dependency(rule: AutomationRule, by_id: Mapping[str, AutomationRule]) -> Optional[str]:
        for dependency in rule.depends_on:
            other = by_id.get(dependency)
            if other is None or not other.enabled:
                return dependency
        return None

    def _recent_conflict(
        self, rule: AutomationRule, by_id: Mapping[str, AutomationRule], now: datetime
    ) -> Optional[str]:
        window = timedelta(seconds=self.conflict_window_seconds)
        for name in rule.conflicts_with:
            other = by_id.get(name)
            if other is None or not other.enabled or other.last_executed is None:
                continue
            if now - ensure_utc(other.last_executed) < window:
                return name
        return None

    @staticmethod
    def _branch(rule: AutomationRule, met: bool, context: MetricContext) -> tuple[str, tuple[RuleAction, ...]]:
        if met:
            return "then", rule.actions
        # Missing readings never select the else branch
        if rule.else_actions and all(context.get(metric) is not None for metric in rule.sensor_metrics):
            return "else", rule.else_actions
        return "else", ()

    def _record_trial(
        self,
        rule: AutomationRule,
        met: bool,
        actions: tuple[RuleAction, ...],
        context: MetricContext,
        now: datetime,
    ) -> None:
        record = RuleTrialRecord(
            rule_id=rule.id,
            evaluated_at=now,
            met=met,
            actions=actions,
            context={metric: context.get(metric) for metric in rule.sensor_metrics},
        )
        with self._lock:
            history = self._trials.setdefault(rule.id, deque(maxlen=self.trial_history_size))
            history.append(record)
        logger.debug("[TEST] Rule %s: conditions %s", rule.id, "met" if met else "not met")

    def trial_results(self, rule_id: str) -> list[RuleTrialRecord]:
        """Recorded evaluations of a test-mode rule, oldest first."""
        with self._lock:
            return list(self._trials.get(rule_id, ()))

    def _fold(
        self,
        rule: AutomationRule,
        context: MetricContext,
        now: datetime,
        trace: Optional[list[ConditionResult]] = None,
    ) -> bool:
        result: Optional[bool] = None
        connector = rule.condition_logic
        for index, condition in enumerate(rule.conditions):
            decided = result is not None and (
                (connector == ConditionLogic.AND and not result) or (connector == ConditionLogic.OR and result)
            )
            if decided:
                if trace is not None:
                    trace.append(ConditionResult(index, condition.describe(), met=False, evaluated=False))
            else:
                met, actual = self._condition_met(condition, context, now)
                if trace is not None:
                    trace.append(ConditionResult(index, condition.describe(), met=met, actual_value=actual))
                if result is None:
                    result = met
                elif connector == ConditionLogic.AND:
                    result = result and met
                else:
                    result = result or met
            connector = condition.logic_to_next or rule.condition_logic
        return bool(result)

    def _condition_met(
        self, condition: Condition, context: MetricContext, now: datetime
    ) -> tuple[bool, Optional[float]]:
        if isinstance(condition, SensorCondition):
            value = context.get(condition.metric)
            return compare(value, condition), value
        local_now = now.astimezone(self.local_tz) if self.local_tz else now.astimezone()
        if isinstance(condition, TimeCondition):
            return self._time_met(condition, local_now.time().replace(tzinfo=None)), None
        if isinstance(condition, ScheduleCondition):
            return condition.matches(local_now.weekday()), None
        logger.warning("Unsupported condition type %s", type(condition).__name__)
        return False, None

    @staticmethod
    def _time_met(condition: TimeCondition, current) -> bool:
        if condition.operator == TimeOperator.AFTER:
            return current >= condition.start
        if condition.operator == TimeOperator.BEFORE:
            return current < condition.start
        start, end = condition.start, condition.end
        if start <= end:
            return start <= current <= end
        # Window wraps past midnight, e.g. 22:00-06:00
        return current >= start or current <= end

    # ------------------------------------------------------------------ #
    # Dry run
    # ------------------------------------------------------------------ #

    def simulate(
        self,
        rule: Any,
        fused: Optional[FusedConditions] = None,
        derived: Optional[DerivedQuantities] = None,
        *,
        reservoir: Optional[ReservoirConditions] = None,
        metrics: Optional[Mapping[str, Optional[float]]] = None,
        now: Optional[datetime] = None,
    ) -> RuleEvaluation:
        """
        Evaluate one rule without side effects and explain the outcome.

        ``metrics`` overrides individual values from the current state.
        Relations to other rules are not considered; test mode is ignored.
        Raises RuleConfigurationError when the rule itself is malformed.
        """
        now = ensure_utc(now or self._clock())
        if isinstance(rule, Mapping):
            try:
                rule = AutomationRuleSchema.model_validate(dict(rule)).to_domain()
            except (PydanticValidationError, ValueError) as exc:
                raise RuleConfigurationError(
                    "Invalid automation rule", detail={"errors": _summarize_validation(exc)}
                ) from exc
        problems = self.validate_rule(rule)
        if problems:
            raise RuleConfigurationError("Invalid automation rule", detail={"errors": "; ".join(problems)})

        context = build_metric_context(fused or FusedConditions.empty(), derived, reservoir)
        if metrics:
            context.update(metrics)

        trace: list[ConditionResult] = []
        met = self._fold(rule, context, now, trace)
        blocked = self.blocked_reason(rule, now)
        branch, actions = self._branch(rule, met, context) if blocked is None else (None, ())
        return RuleEvaluation(
            rule_id=rule.id,
            triggered=met and blocked is None,
            conditions=tuple(trace),
            actions=actions,
            context=context,
            blocked_reason=blocked,
            branch=branch if actions else None,
        )

    # ------------------------------------------------------------------ #
    # Bookkeeping
    # ------------------------------------------------------------------ #

    @staticmethod
    def record_execution(rule: AutomationRule, report: ExecutionReport) -> AutomationRule:
        """
        Return ``rule`` annotated with an execution outcome.

        Only a successful execution advances ``execution_count`` and
        ``last_executed``; a failure or a skip just records the result.
        """
        if report.rule_id != rule.id:
            raise ValueError(f"Execution report for {report.rule_id!r} applied to rule {rule.id!r}")
        if report.success:
            return replace(
                rule,
                execution_count=rule.execution_count + 1,
                last_executed=report.executed_at,
                last_result=ExecutionResult.SUCCESS,
            )
        if report.skipped:
            return replace(rule, last_result=ExecutionResult.SKIPPED)
        return replace(rule, last_result=ExecutionResult.FAILED)

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
