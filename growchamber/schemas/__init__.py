"""
Schemas Module
==============

Pydantic models for rule validation, request bodies and event payloads.
"""

from growchamber.schemas.automation import (
    AutomationRuleSchema,
    RuleSimulationRequest,
)
from growchamber.schemas.events import (
    AlertPayload,
    ConnectivityStatePayload,
    LiveStatePayload,
    RecommendationPayload,
    RuleExecutedPayload,
    RulesReloadedPayload,
    TriggeredActionPayload,
    WatchdogStatusPayload,
    build_live_state_payload,
)

__all__ = [
    "AutomationRuleSchema",
    "RuleSimulationRequest",
    "AlertPayload",
    "ConnectivityStatePayload",
    "LiveStatePayload",
    "RecommendationPayload",
    "RuleExecutedPayload",
    "RulesReloadedPayload",
    "TriggeredActionPayload",
    "WatchdogStatusPayload",
    "build_live_state_payload",
]
