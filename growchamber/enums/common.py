"""
Common Enumerations
====================

Application-wide enums for data-source health, advisories and growth phases.
"""

from enum import Enum


class SourceState(str, Enum):
    """
    Freshness of an upstream telemetry source.
    Used by: watchdog_service, live state, alert_service
    """
    UNKNOWN = "unknown"
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SOURCE_STATE_RANK[self]

    def __str__(self) -> str:
        return self.value


_SOURCE_STATE_RANK = {
    SourceState.UNKNOWN: 0,
    SourceState.OK: 1,
    SourceState.WARNING: 2,
    SourceState.CRITICAL: 3,
}


class TelemetrySource(str, Enum):
    """Upstream feeds tracked by the staleness watchdog."""
    CONTROLLER = "controller"
    NUTRIENTS = "nutrients"

    def __str__(self) -> str:
        return self.value


class RecommendationSeverity(str, Enum):
    """
    Advisory severities, most urgent first.
    Used by: recommendation_service, alert_service
    """
    CRITICAL = "critical"
    WARNING = "warning"
    OPTIMIZATION = "optimization"
    INFO = "info"

    @property
    def priority(self) -> int:
        """Sort key: lower is more urgent."""
        return _SEVERITY_PRIORITY[self]

    def __str__(self) -> str:
        return self.value


_SEVERITY_PRIORITY = {
    RecommendationSeverity.CRITICAL: 1,
    RecommendationSeverity.WARNING: 2,
    RecommendationSeverity.OPTIMIZATION: 3,
    RecommendationSeverity.INFO: 4,
}


class GrowthPhase(str, Enum):
    """Plant growth phases with distinct climate targets."""
    SEEDLING = "seedling"
    VEGETATIVE = "vegetative"
    FLOWERING = "flowering"
    LATE_FLOWERING = "late_flowering"

    def __str__(self) -> str:
        return self.value


class UpdateOrigin(str, Enum):
    """How a timestamped value reached the live state."""
    PUSH = "push"
    POLL = "poll"

    def __str__(self) -> str:
        return self.value
