"""
Automation Rule Schemas
=======================

Pydantic models validating automation rules as delivered by the rule
configuration API. Validation happens when a rule set is loaded, so an
unknown operator, action kind or malformed time window is caught before any
evaluation cycle sees the rule.

Both snake_case and the API's camelCase field names are accepted. Schedule
days follow the API's numbering (0=Sunday) and become ``datetime.weekday()``
numbers in the domain model.
"""

from datetime import datetime, time
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from growchamber.constants import canonical_metric
from growchamber.domain.automation import (
    WEEKDAY_NAMES,
    AutomationRule,
    DelayAction,
    DeviceAction,
    NotificationAction,
    ScheduleCondition,
    SensorCondition,
    TimeCondition,
)
from growchamber.enums.automation import (
    ComparisonOperator,
    ConditionLogic,
    DeviceCommand,
    ExecutionResult,
    TimeOperator,
)

MAX_DELAY_SECONDS = 3600


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def _guess_condition_type(condition: dict) -> str:
    """Type of a condition that does not name one; sensor thresholds unless it looks like a window."""
    if any(key in condition for key in ("startTime", "timeStart", "timeMode", "start")):
        return "time"
    if "days" in condition or "days_of_week" in condition:
        return "schedule"
    return "sensor"


# ============================================================================
# Conditions
# ============================================================================

class SensorConditionSchema(BaseModel):
    """Threshold comparison on a fused or derived metric."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["sensor"] = "sensor"
    metric: str = Field(..., min_length=1, validation_alias=AliasChoices("metric", "sensor"))
    operator: ComparisonOperator
    threshold: float = Field(..., validation_alias=AliasChoices("threshold", "value"))
    threshold_high: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("threshold_high", "thresholdHigh", "value2")
    )
    logic_to_next: Optional[ConditionLogic] = Field(
        default=None, validation_alias=AliasChoices("logic_to_next", "logicOperatorToNext", "logicOperator")
    )

    @field_validator("logic_to_next", mode="before")
    @classmethod
    def normalize_logic(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode="after")
    def validate_between(self):
        if self.operator == ComparisonOperator.BETWEEN:
            if self.threshold_high is None:
                raise ValueError("'between' requires threshold_high")
            if self.threshold_high < self.threshold:
                raise ValueError("threshold_high must be >= threshold")
        return self

    def to_domain(self) -> SensorCondition:
        return SensorCondition(
            metric=canonical_metric(self.metric),
            operator=self.operator,
            threshold=self.threshold,
            threshold_high=self.threshold_high,
            logic_to_next=self.logic_to_next,
        )


class TimeConditionSchema(BaseModel):
    """
    Time-of-day window (HH:MM, local controller time).

    The rule API names the mode ``timeMode`` and the bounds ``startTime`` /
    ``endTime`` (older rules: ``timeStart`` / ``timeEnd``). Without a mode
    the condition is a ``between`` window.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["time"]
    operator: TimeOperator = Field(
        default=TimeOperator.BETWEEN, validation_alias=AliasChoices("operator", "timeMode", "time_mode")
    )
    start: Optional[str] = Field(
        default=None,
        pattern=r"^\d{2}:\d{2}$",
        validation_alias=AliasChoices("start", "startTime", "timeStart", "value"),
    )
    end: Optional[str] = Field(
        default=None,
        pattern=r"^\d{2}:\d{2}$",
        validation_alias=AliasChoices("end", "endTime", "timeEnd", "value2"),
    )
    logic_to_next: Optional[ConditionLogic] = Field(
        default=None, validation_alias=AliasChoices("logic_to_next", "logicOperatorToNext", "logicOperator")
    )

    @field_validator("operator", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        if v is None:
            return TimeOperator.BETWEEN
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("logic_to_next", mode="before")
    @classmethod
    def normalize_logic(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("start", "end")
    @classmethod
    def validate_clock(cls, v):
        if v is not None:
            hours, minutes = (int(part) for part in v.split(":"))
            if hours > 23 or minutes > 59:
                raise ValueError(f"Invalid time of day: {v}")
        return v

    @model_validator(mode="after")
    def validate_window(self):
        if self.start is None:
            raise ValueError(f"'{self.operator.value}' requires start")
        if self.operator == TimeOperator.BETWEEN and self.end is None:
            raise ValueError("'between' requires end")
        return self

    def to_domain(self) -> TimeCondition:
        return TimeCondition(
            operator=self.operator,
            start=_parse_hhmm(self.start),
            end=_parse_hhmm(self.end) if self.end else None,
            logic_to_next=self.logic_to_next,
        )


class ScheduleConditionSchema(BaseModel):
    """
    Days of week as the rule API numbers them: 0=Sunday ... 6=Saturday.

    Three-letter names are accepted as well. No days means every day.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["schedule"]
    days: List[int] = Field(default_factory=list, validation_alias=AliasChoices("days", "days_of_week", "value"))
    logic_to_next: Optional[ConditionLogic] = Field(
        default=None, validation_alias=AliasChoices("logic_to_next", "logicOperatorToNext", "logicOperator")
    )

    @field_validator("logic_to_next", mode="before")
    @classmethod
    def normalize_logic(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("days", mode="before")
    @classmethod
    def to_weekdays(cls, v):
        """Convert API day numbers and names to ``datetime.weekday()`` numbering."""
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            return v
        days = []
        for day in v:
            if isinstance(day, str) and day[:3].lower() in WEEKDAY_NAMES:
                days.append(WEEKDAY_NAMES.index(day[:3].lower()))
                continue
            if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
                raise ValueError("Days must be 0-6 (Sunday-Saturday) or weekday names")
            days.append((day - 1) % 7)
        return days

    @field_validator("days")
    @classmethod
    def dedupe_days(cls, v):
        return sorted(set(v))

    def to_domain(self) -> ScheduleCondition:
        return ScheduleCondition(days=frozenset(self.days), logic_to_next=self.logic_to_next)


ConditionSchema = Annotated[
    Union[SensorConditionSchema, TimeConditionSchema, ScheduleConditionSchema],
    Field(discriminator="type"),
]


# ============================================================================
# Actions
# ============================================================================

class DeviceActionSchema(BaseModel):
    """Actuator command routed to the device-control sink."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["device", "mqtt"]
    device: str = Field(..., min_length=1, validation_alias=AliasChoices("device", "target", "relay"))
    command: DeviceCommand = Field(..., validation_alias=AliasChoices("command", "action", "state"))
    value: Optional[float] = Field(default=None, ge=0, le=100)

    @field_validator("command", mode="before")
    @classmethod
    def normalize_command(cls, v):
        if isinstance(v, str):
            command = v.upper()
            return DeviceCommand.PWM.value if command == "SET_PWM" else command
        return v

    @model_validator(mode="after")
    def validate_pwm(self):
        if self.command == DeviceCommand.PWM and self.value is None:
            raise ValueError("PWM command requires a value (0-100)")
        return self

    def to_domain(self) -> DeviceAction:
        return DeviceAction(device=self.device, command=self.command, value=self.value)


class NotificationActionSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["notification"]
    message: str = Field(..., min_length=1, max_length=500)
    level: Literal["info", "warning", "critical"] = "info"

    def to_domain(self) -> NotificationAction:
        return NotificationAction(message=self.message, level=self.level)


class DelayActionSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["delay"]
    seconds: float = Field(..., ge=0, le=MAX_DELAY_SECONDS, validation_alias=AliasChoices("seconds", "duration", "delay"))

    def to_domain(self) -> DelayAction:
        return DelayAction(seconds=self.seconds)


ActionSchema = Annotated[
    Union[DeviceActionSchema, NotificationActionSchema, DelayActionSchema],
    Field(discriminator="type"),
]


# ============================================================================
# Rules
# ============================================================================

class AutomationRuleSchema(BaseModel):
    """One automation rule as served by the rule configuration API."""
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        json_schema_extra={
            "example": {
                "id": "vent-on-heat",
                "name": "Vent when hot",
                "enabled": True,
                "priority": 80,
                "conditionLogic": "AND",
                "conditions": [{"type": "sensor", "metric": "temperature", "operator": ">", "threshold": 28}],
                "actions": [{"type": "device", "device": "fan", "command": "PWM", "value": 100}],
                "cooldown": 300,
            }
        },
    )

    id: str = Field(..., min_length=1, validation_alias=AliasChoices("id", "_id", "rule_id"))
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    enabled: bool = True
    priority: int = Field(default=50, ge=0, le=100)
    condition_logic: ConditionLogic = Field(
        default=ConditionLogic.AND, validation_alias=AliasChoices("condition_logic", "conditionLogic")
    )
    conditions: List[ConditionSchema] = Field(..., min_length=1)
    actions: List[ActionSchema] = Field(..., min_length=1)
    else_actions: List[ActionSchema] = Field(
        default_factory=list, validation_alias=AliasChoices("else_actions", "elseActions")
    )
    depends_on: List[str] = Field(default_factory=list, validation_alias=AliasChoices("depends_on", "dependsOn"))
    conflicts_with: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("conflicts_with", "conflictsWith")
    )
    test_mode: bool = Field(default=False, validation_alias=AliasChoices("test_mode", "testMode"))
    cooldown_seconds: float = Field(default=0, ge=0, validation_alias=AliasChoices("cooldown_seconds", "cooldown"))
    max_executions: Optional[int] = Field(
        default=None, ge=0, validation_alias=AliasChoices("max_executions", "maxExecutions")
    )
    execution_count: int = Field(default=0, ge=0, validation_alias=AliasChoices("execution_count", "executionCount"))
    last_executed: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("last_executed", "lastExecuted")
    )
    last_result: Optional[ExecutionResult] = Field(
        default=None, validation_alias=AliasChoices("last_result", "lastResult")
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("condition_logic", mode="before")
    @classmethod
    def normalize_logic(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("conditions", mode="before")
    @classmethod
    def default_condition_type(cls, v):
        if isinstance(v, list):
            return [{**c, "type": _guess_condition_type(c)} if isinstance(c, dict) and "type" not in c else c for c in v]
        return v

    @field_validator("depends_on", "conflicts_with", mode="before")
    @classmethod
    def rule_references(cls, v: Any):
        # References arrive as ids or as populated rule documents
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            return v
        refs = []
        for ref in v:
            if isinstance(ref, dict):
                ref = ref.get("id", ref.get("_id"))
            refs.append(str(ref) if isinstance(ref, int) and not isinstance(ref, bool) else ref)
        return refs

    @field_validator("else_actions", mode="before")
    @classmethod
    def no_else_actions(cls, v):
        return [] if v is None else v

    @field_validator("last_result", mode="before")
    @classmethod
    def drop_unknown_result(cls, v):
        if isinstance(v, str) and v.lower() not in {r.value for r in ExecutionResult}:
            return None
        return v.lower() if isinstance(v, str) else v

    @field_validator("max_executions", mode="before")
    @classmethod
    def zero_means_unlimited(cls, v):
        return None if v == 0 else v

    def to_domain(self) -> AutomationRule:
        return AutomationRule(
            id=self.id,
            name=self.name,
            description=self.description,
            enabled=self.enabled,
            priority=self.priority,
            condition_logic=self.condition_logic,
            conditions=tuple(c.to_domain() for c in self.conditions),
            actions=tuple(a.to_domain() for a in self.actions),
            else_actions=tuple(a.to_domain() for a in self.else_actions),
            depends_on=tuple(self.depends_on),
            conflicts_with=tuple(self.conflicts_with),
            test_mode=self.test_mode,
            cooldown_seconds=self.cooldown_seconds,
            max_executions=self.max_executions,
            execution_count=self.execution_count,
            last_executed=self.last_executed,
            last_result=self.last_result,
        )


class RuleSimulationRequest(BaseModel):
    """Body of the dry-run endpoint: a rule plus optional overriding readings."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rule: AutomationRuleSchema
    metrics: dict[str, Optional[float]] = Field(default_factory=dict)
    at: Optional[datetime] = None
