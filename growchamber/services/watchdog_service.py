"""
Staleness Watchdog
==================

Per-source freshness state machine:

    UNKNOWN --snapshot--> OK --elapsed > warning--> WARNING --elapsed > critical--> CRITICAL
                           ^                                                          |
                           +---------------------- snapshot --------------------------+

Severity only escalates between snapshots; only a fresh snapshot brings a
source back to OK. Transport connectivity is tracked independently of data
freshness.

The watchdog never touches fused readings. It is a pure state machine:
the telemetry pipeline drives it from snapshot arrivals and its periodic
tick so that every state change happens on the pipeline's serialized path.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from growchamber.domain.watchdog import WatchdogStatus
from growchamber.enums.common import SourceState, TelemetrySource
from growchamber.utils.time import elapsed_ms, utc_now

logger = logging.getLogger(__name__)

DEFAULT_WARNING_SECONDS = 30.0
DEFAULT_CRITICAL_SECONDS = 300.0

TransitionListener = Callable[[WatchdogStatus, WatchdogStatus], None]


class StalenessWatchdog:
    """Tracks freshness of each telemetry source and the broker connection."""

    def __init__(
        self,
        *,
        warning_after_seconds: float = DEFAULT_WARNING_SECONDS,
        critical_after_seconds: float = DEFAULT_CRITICAL_SECONDS,
        sources: Iterable[TelemetrySource] = tuple(TelemetrySource),
        clock: Callable[[], datetime] = utc_now,
    ):
        if warning_after_seconds <= 0 or critical_after_seconds <= 0:
            raise ValueError("Watchdog thresholds must be positive")
        if warning_after_seconds >= critical_after_seconds:
            raise ValueError("warning_after_seconds must be lower than critical_after_seconds")

        self.warning_after_ms = warning_after_seconds * 1000.0
        self.critical_after_ms = critical_after_seconds * 1000.0
        self._clock = clock
        self._lock = threading.Lock()
        self._transport_connected = False
        self._statuses: dict[TelemetrySource, WatchdogStatus] = {
            source: WatchdogStatus(source=source) for source in sources
        }
        self._listeners: list[TransitionListener] = []

    # ------------------------------------------------------------------ #
    # Inputs
    # ------------------------------------------------------------------ #

    def on_snapshot(
        self,
        source: TelemetrySource = TelemetrySource.CONTROLLER,
        received_at: Optional[datetime] = None,
    ) -> WatchdogStatus:
        """Record a snapshot arrival: the source becomes OK."""
        now = received_at or self._clock()
        with self._lock:
            previous = self._get(source)
            current = replace(
                previous,
                source_state=SourceState.OK,
                transport_connected=self._transport_connected,
                last_received_at=now,
                elapsed_ms=0.0,
                checked_at=now,
            )
            self._statuses[source] = current
        self._notify(previous, current)
        return current

    def set_transport_connected(self, connected: bool) -> list[WatchdogStatus]:
        """Update broker connectivity for every source; returns changed statuses."""
        changed: list[tuple[WatchdogStatus, WatchdogStatus]] = []
        with self._lock:
            if self._transport_connected == connected:
                return []
            self._transport_connected = connected
            for source, previous in list(self._statuses.items()):
                current = replace(previous, transport_connected=connected)
                self._statuses[source] = current
                changed.append((previous, current))

        if connected:
            logger.info("Telemetry transport connected")
        else:
            logger.warning("Telemetry transport disconnected")
        for previous, current in changed:
            self._notify(previous, current)
        return [current for _, current in changed]

    def tick(self, now: Optional[datetime] = None) -> list[WatchdogStatus]:
        """Recompute elapsed time and severity; returns statuses whose state changed."""
        now = now or self._clock()
        transitions: list[tuple[WatchdogStatus, WatchdogStatus]] = []
        with self._lock:
            for source, previous in list(self._statuses.items()):
                if previous.last_received_at is None:
                    current = replace(previous, checked_at=now)
                else:
                    elapsed = max(0.0, elapsed_ms(previous.last_received_at, now))
                    state = self.classify(elapsed)
                    # Never regress without a fresh snapshot
                    if state.rank < previous.source_state.rank:
                        state = previous.source_state
                    current = replace(previous, source_state=state, elapsed_ms=elapsed, checked_at=now)
                self._statuses[source] = current
                if current.source_state != previous.source_state:
                    transitions.append((previous, current))

        for previous, current in transitions:
            self._notify(previous, current)
        return [current for _, current in transitions]

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def classify(self, elapsed: float) -> SourceState:
        """Severity for a given elapsed time in milliseconds."""
        if elapsed > self.critical_after_ms:
            return SourceState.CRITICAL
        if elapsed > self.warning_after_ms:
            return SourceState.WARNING
        return SourceState.OK

    def status(self, source: TelemetrySource = TelemetrySource.CONTROLLER) -> WatchdogStatus:
        with self._lock:
            return self._get(source)

    def snapshot(self) -> dict[TelemetrySource, WatchdogStatus]:
        with self._lock:
            return dict(self._statuses)

    @property
    def transport_connected(self) -> bool:
        return self._transport_connected

    # ------------------------------------------------------------------ #
    # Listeners
    # ------------------------------------------------------------------ #

    def add_listener(self, listener: TransitionListener) -> Callable[[], None]:
        """Call ``listener(previous, current)`` on every state or transport change."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return

        return remove

    def _get(self, source: TelemetrySource) -> WatchdogStatus:
        status = self._statuses.get(source)
        if status is None:
            status = WatchdogStatus(source=source, transport_connected=self._transport_connected)
            self._statuses[source] = status
        return status

    def _notify(self, previous: WatchdogStatus, current: WatchdogStatus) -> None:
        if previous.source_state != current.source_state:
            self._log_transition(previous, current)
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception as exc:
                logger.error("Watchdog listener failed for %s: %s", current.source, exc, exc_info=True)

    @staticmethod
    def _log_transition(previous: WatchdogStatus, current: WatchdogStatus) -> None:
        state = current.source_state
        if state == SourceState.CRITICAL:
            logger.error(
                "Source %s lost: no data for %.0f s", current.source, (current.elapsed_ms or 0) / 1000.0
            )
        elif state == SourceState.WARNING:
            logger.warning(
                "Source %s stale: no data for %.0f s", current.source, (current.elapsed_ms or 0) / 1000.0
            )
        elif previous.source_state in (SourceState.WARNING, SourceState.CRITICAL):
            logger.info("Source %s recovered", current.source)
        else:
            logger.info("Source %s reporting", current.source)
