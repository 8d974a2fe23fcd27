"""
Watchdog Status Value Object
============================
Immutable snapshot of one upstream source's freshness plus transport state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from growchamber.enums.common import SourceState, TelemetrySource


@dataclass(frozen=True)
class WatchdogStatus:
    """
    Freshness of a telemetry source.

    ``source_state`` is UNKNOWN only before the first snapshot. Transport
    connectivity is tracked separately: a disconnected transport is reported
    as ``transport_down`` even when no data was ever received.
    """

    source: TelemetrySource = TelemetrySource.CONTROLLER
    source_state: SourceState = SourceState.UNKNOWN
    transport_connected: bool = False
    last_received_at: Optional[datetime] = None
    elapsed_ms: Optional[float] = None
    checked_at: Optional[datetime] = None

    @property
    def is_trustworthy(self) -> bool:
        """Fresh data over a live transport."""
        return self.source_state == SourceState.OK and self.transport_connected

    @property
    def condition(self) -> str:
        if not self.transport_connected:
            return "transport_down"
        if self.source_state == SourceState.UNKNOWN:
            return "awaiting_data"
        if self.source_state == SourceState.OK:
            return "fresh"
        if self.source_state == SourceState.WARNING:
            return "stale"
        return "lost"

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "source_state": self.source_state.value,
            "transport_connected": self.transport_connected,
            "last_received_at": self.last_received_at.isoformat() if self.last_received_at else None,
            "elapsed_ms": self.elapsed_ms,
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
            "condition": self.condition,
            "is_trustworthy": self.is_trustworthy,
        }
