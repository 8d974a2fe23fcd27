"""
Enums Module
============

Enumeration types for the grow chamber decision layer.
Enums ensure type safety and consistency across the codebase.
"""

from growchamber.enums.automation import (
    ActionType,
    ComparisonOperator,
    ConditionLogic,
    ConditionType,
    DeviceCommand,
    ExecutionResult,
    TimeOperator,
)
from growchamber.enums.common import (
    GrowthPhase,
    RecommendationSeverity,
    SourceState,
    TelemetrySource,
    UpdateOrigin,
)
from growchamber.enums.events import (
    DeviceEvent,
    EventType,
    RuntimeEvent,
    TelemetryEvent,
    WebSocketEvent,
)

__all__ = [
    "ActionType",
    "ComparisonOperator",
    "ConditionLogic",
    "ConditionType",
    "DeviceCommand",
    "DeviceEvent",
    "EventType",
    "ExecutionResult",
    "GrowthPhase",
    "RecommendationSeverity",
    "RuntimeEvent",
    "SourceState",
    "TelemetryEvent",
    "TelemetrySource",
    "TimeOperator",
    "UpdateOrigin",
    "WebSocketEvent",
]
