"""
Domain Layer
============

Immutable value objects for the grow chamber decision layer:
raw snapshots, fused conditions, watchdog status, automation rules,
recommendations, alerts and the live state record.
"""

from growchamber.domain.alerts import EnvironmentalAlert
from growchamber.domain.automation import (
    AutomationRule,
    Condition,
    DelayAction,
    DeviceAction,
    ExecutionReport,
    NotificationAction,
    RuleAction,
    RuleEvaluation,
    RuleTrialRecord,
    ScheduleCondition,
    SensorCondition,
    TimeCondition,
    TriggeredAction,
)
from growchamber.domain.conditions import DerivedQuantities, FusedConditions, ReservoirConditions
from growchamber.domain.live_state import LiveState, TimestampedValue
from growchamber.domain.recommendation import ActionRef, OptimalRange, PhaseRanges, Recommendation
from growchamber.domain.snapshot import RawSnapshot
from growchamber.domain.watchdog import WatchdogStatus

__all__ = [
    "ActionRef",
    "AutomationRule",
    "Condition",
    "DelayAction",
    "DerivedQuantities",
    "DeviceAction",
    "EnvironmentalAlert",
    "ExecutionReport",
    "FusedConditions",
    "LiveState",
    "NotificationAction",
    "OptimalRange",
    "PhaseRanges",
    "RawSnapshot",
    "Recommendation",
    "ReservoirConditions",
    "RuleAction",
    "RuleEvaluation",
    "RuleTrialRecord",
    "ScheduleCondition",
    "SensorCondition",
    "TimeCondition",
    "TimestampedValue",
    "TriggeredAction",
    "WatchdogStatus",
]
