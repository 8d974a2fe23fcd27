"""
Environmental Alert Value Object
================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from growchamber.enums.common import RecommendationSeverity


@dataclass(frozen=True)
class EnvironmentalAlert:
    """A throttled operator alert raised from telemetry or watchdog state."""

    key: str
    severity: RecommendationSeverity
    title: str
    message: str
    raised_at: datetime
    value: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "raised_at": self.raised_at.isoformat(),
            "value": self.value,
        }
