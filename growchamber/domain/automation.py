"""
Automation Rule Domain Model
============================
Closed, immutable variants for rule conditions and actions.

Rules are authored and stored by an external rule-management API. This
process only reads them and annotates execution bookkeeping, always by
returning an updated copy (see ``RuleEngine.record_execution``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any, Mapping, Optional, Union

from growchamber.enums.automation import (
    ActionType,
    ComparisonOperator,
    ConditionLogic,
    ConditionType,
    DeviceCommand,
    ExecutionResult,
    TimeOperator,
)

WEEKDAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


# ============================================================================
# Conditions
# ============================================================================

@dataclass(frozen=True)
class SensorCondition:
    """Threshold comparison on a fused or derived metric."""

    metric: str
    operator: ComparisonOperator
    threshold: float
    threshold_high: Optional[float] = None
    logic_to_next: Optional[ConditionLogic] = None

    def __post_init__(self):
        if self.operator == ComparisonOperator.BETWEEN and self.threshold_high is None:
            raise ValueError(f"Condition on {self.metric!r} uses 'between' without threshold_high")

    @property
    def kind(self) -> ConditionType:
        return ConditionType.SENSOR

    def describe(self) -> str:
        if self.operator == ComparisonOperator.BETWEEN:
            return f"{self.metric} between {self.threshold} and {self.threshold_high}"
        return f"{self.metric} {self.operator.value} {self.threshold}"


@dataclass(frozen=True)
class TimeCondition:
    """
    Time-of-day window. ``between`` wraps past midnight when start > end.

    ``before`` and ``after`` both compare against ``start``.
    """

    operator: TimeOperator
    start: Optional[time] = None
    end: Optional[time] = None
    logic_to_next: Optional[ConditionLogic] = None

    def __post_init__(self):
        if self.start is None:
            raise ValueError(f"Time condition '{self.operator.value}' requires a start time")
        if self.operator == TimeOperator.BETWEEN and self.end is None:
            raise ValueError("Time condition 'between' requires an end time")

    @property
    def kind(self) -> ConditionType:
        return ConditionType.TIME

    def describe(self) -> str:
        if self.operator == TimeOperator.BETWEEN:
            return f"time between {self.start:%H:%M} and {self.end:%H:%M}"
        return f"time {self.operator.value} {self.start:%H:%M}"


@dataclass(frozen=True)
class ScheduleCondition:
    """Day-of-week gate. Days use ``datetime.weekday()`` numbering (Monday=0); no days means every day."""

    days: frozenset[int] = frozenset()
    logic_to_next: Optional[ConditionLogic] = None

    def __post_init__(self):
        invalid = [d for d in self.days if not 0 <= d <= 6]
        if invalid:
            raise ValueError(f"Invalid weekday numbers: {invalid}")

    @property
    def kind(self) -> ConditionType:
        return ConditionType.SCHEDULE

    def matches(self, weekday: int) -> bool:
        return not self.days or weekday in self.days

    def describe(self) -> str:
        if not self.days:
            return "every day"
        return "day in " + ",".join(WEEKDAY_NAMES[d] for d in sorted(self.days))


Condition = Union[SensorCondition, TimeCondition, ScheduleCondition]


# ============================================================================
# Actions
# ============================================================================

@dataclass(frozen=True)
class DeviceAction:
    """Switch or dim an actuator on the controller. ``value`` is 0-100 for PWM."""

    device: str
    command: DeviceCommand
    value: Optional[float] = None

    def __post_init__(self):
        if self.command == DeviceCommand.PWM:
            if self.value is None or not 0 <= self.value <= 100:
                raise ValueError(f"PWM action for {self.device!r} needs a value within 0-100")

    @property
    def kind(self) -> ActionType:
        return ActionType.DEVICE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind.value, "device": self.device, "command": self.command.value, "value": self.value}


@dataclass(frozen=True)
class NotificationAction:
    message: str
    level: str = "info"

    @property
    def kind(self) -> ActionType:
        return ActionType.NOTIFICATION

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind.value, "message": self.message, "level": self.level}


@dataclass(frozen=True)
class DelayAction:
    """Pause between the surrounding actions of the same rule."""

    seconds: float

    def __post_init__(self):
        if self.seconds < 0:
            raise ValueError("Delay must not be negative")

    @property
    def kind(self) -> ActionType:
        return ActionType.DELAY

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind.value, "seconds": self.seconds}


RuleAction = Union[DeviceAction, NotificationAction, DelayAction]


# ============================================================================
# Rules
# ============================================================================

@dataclass(frozen=True)
class AutomationRule:
    """
    Prioritized condition -> action mapping.

    ``else_actions`` run when the conditions are evaluated and not met.
    ``depends_on`` and ``conflicts_with`` name other rules of the same set.
    A rule in ``test_mode`` is evaluated and recorded but never executed.

    ``execution_count``, ``last_executed`` and ``last_result`` change only
    through a reported execution, never through evaluation.
    """

    id: str
    name: str
    enabled: bool = True
    priority: int = 50
    conditions: tuple[Condition, ...] = ()
    condition_logic: ConditionLogic = ConditionLogic.AND
    actions: tuple[RuleAction, ...] = ()
    else_actions: tuple[RuleAction, ...] = ()
    depends_on: tuple[str, ...] = ()
    conflicts_with: tuple[str, ...] = ()
    test_mode: bool = False
    description: str = ""
    cooldown_seconds: float = 0.0
    max_executions: Optional[int] = None
    execution_count: int = 0
    last_executed: Optional[datetime] = None
    last_result: Optional[ExecutionResult] = None
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        if not 0 <= self.priority <= 100:
            raise ValueError(f"Rule {self.id!r} priority must be between 0 and 100, got {self.priority}")
        if self.cooldown_seconds < 0:
            raise ValueError(f"Rule {self.id!r} cooldown must not be negative")
        if self.max_executions is not None and self.max_executions < 0:
            raise ValueError(f"Rule {self.id!r} max_executions must not be negative")
        if self.id in self.depends_on or self.id in self.conflicts_with:
            raise ValueError(f"Rule {self.id!r} cannot depend on or conflict with itself")

    @property
    def sensor_metrics(self) -> tuple[str, ...]:
        return tuple(c.metric for c in self.conditions if isinstance(c, SensorCondition))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "priority": self.priority,
            "condition_logic": self.condition_logic.value,
            "conditions": [c.describe() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "else_actions": [a.to_dict() for a in self.else_actions],
            "depends_on": list(self.depends_on),
            "conflicts_with": list(self.conflicts_with),
            "test_mode": self.test_mode,
            "cooldown_seconds": self.cooldown_seconds,
            "max_executions": self.max_executions,
            "execution_count": self.execution_count,
            "last_executed": self.last_executed.isoformat() if self.last_executed else None,
            "last_result": self.last_result.value if self.last_result else None,
        }


@dataclass(frozen=True)
class TriggeredAction:
    """One action emitted by an evaluated rule, in rule then action order."""

    rule_id: str
    rule_name: str
    priority: int
    action: RuleAction
    index: int
    triggered_at: datetime
    branch: str = "then"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "priority": self.priority,
            "index": self.index,
            "branch": self.branch,
            "action": self.action.to_dict(),
            "triggered_at": self.triggered_at.isoformat(),
        }


@dataclass(frozen=True)
class ExecutionReport:
    """Outcome of executing one rule's triggered actions, reported by the sink."""

    rule_id: str
    success: bool
    executed_at: datetime
    actions_sent: int = 0
    error: Optional[str] = None
    skipped: bool = False


@dataclass(frozen=True)
class RuleTrialRecord:
    """What a rule in test mode would have done in one evaluation cycle."""

    rule_id: str
    evaluated_at: datetime
    met: bool
    actions: tuple[RuleAction, ...]
    context: Mapping[str, Optional[float]] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "timestamp": self.evaluated_at.isoformat(),
            "result": "met" if self.met else "not_met",
            "actions": [a.to_dict() for a in self.actions],
            "conditions": dict(self.context),
        }


@dataclass(frozen=True)
class ConditionResult:
    index: int
    description: str
    met: bool
    evaluated: bool = True
    actual_value: Optional[float] = None


@dataclass(frozen=True)
class RuleEvaluation:
    """Dry-run result of a single rule."""

    rule_id: str
    triggered: bool
    conditions: tuple[ConditionResult, ...]
    actions: tuple[RuleAction, ...]
    context: Mapping[str, Optional[float]]
    blocked_reason: Optional[str] = None
    branch: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "triggered": self.triggered,
            "blocked_reason": self.blocked_reason,
            "branch": self.branch,
            "conditions": [
                {
                    "index": c.index,
                    "description": c.description,
                    "met": c.met,
                    "evaluated": c.evaluated,
                    "actual_value": c.actual_value,
                }
                for c in self.conditions
            ],
            "actions": [a.to_dict() for a in self.actions],
            "context": dict(self.context),
        }
