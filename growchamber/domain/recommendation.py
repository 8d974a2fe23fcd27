"""
Recommendation Value Objects
============================
Operator-facing advisories. Identity is the stable ``id`` derived from
(metric, direction), so the same ongoing condition keeps the same id across
fusion cycles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from growchamber.enums.common import RecommendationSeverity


def recommendation_id(metric: str, direction: str) -> str:
    return f"{metric}-{direction}"


@dataclass(frozen=True)
class ActionRef:
    """A suggested operator action, e.g. ("Increase exhaust", "fan-increase")."""

    label: str
    action: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "action": self.action}


@dataclass(frozen=True)
class Recommendation:
    id: str
    severity: RecommendationSeverity
    title: str
    message: str
    metric: Optional[str] = None
    current_value: Optional[float] = None
    target_value: Optional[float] = None
    suggested_actions: tuple[ActionRef, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "metric": self.metric,
            "current_value": self.current_value,
            "target_value": self.target_value,
            "suggested_actions": [a.to_dict() for a in self.suggested_actions],
        }


@dataclass(frozen=True)
class OptimalRange:
    """Acceptable band with its optimum for one metric."""

    min: float
    max: float
    optimal: float

    def __post_init__(self):
        if self.min > self.max:
            raise ValueError(f"Range minimum {self.min} exceeds maximum {self.max}")
        if not (self.min <= self.optimal <= self.max):
            raise ValueError(f"Optimum {self.optimal} outside [{self.min}, {self.max}]")


@dataclass(frozen=True)
class PhaseRanges:
    temperature: OptimalRange
    humidity: OptimalRange
    vpd: OptimalRange
    dli: OptimalRange
