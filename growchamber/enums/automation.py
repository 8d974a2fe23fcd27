"""
Automation Enumerations
=======================

Closed sets of condition kinds, comparison operators and action kinds used
by the rule engine. Rule configurations naming anything outside these sets
are rejected when the rule set is loaded.
"""

from enum import Enum


class ConditionType(str, Enum):
    SENSOR = "sensor"
    TIME = "time"
    SCHEDULE = "schedule"

    def __str__(self) -> str:
        return self.value


class ComparisonOperator(str, Enum):
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "=="
    NE = "!="
    BETWEEN = "between"

    def __str__(self) -> str:
        return self.value


class ConditionLogic(str, Enum):
    AND = "AND"
    OR = "OR"

    def __str__(self) -> str:
        return self.value


class TimeOperator(str, Enum):
    BETWEEN = "between"
    BEFORE = "before"
    AFTER = "after"

    def __str__(self) -> str:
        return self.value


class ActionType(str, Enum):
    DEVICE = "device"
    NOTIFICATION = "notification"
    DELAY = "delay"

    def __str__(self) -> str:
        return self.value


class DeviceCommand(str, Enum):
    ON = "ON"
    OFF = "OFF"
    TOGGLE = "TOGGLE"
    PWM = "PWM"

    def __str__(self) -> str:
        return self.value


class ExecutionResult(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value
