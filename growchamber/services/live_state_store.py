"""
Live State Store
================

The single mutable shared structure of the decision layer. It holds one
immutable :class:`LiveState` record and replaces it whole on every publish,
so readers always see a consistent snapshot and never a half-updated one.

Only the telemetry pipeline writes. UI emitters, HTTP routes and action
executors read ``current()`` or subscribe for ``(previous, current)``
notifications, which run synchronously on the writer's thread after the
swap and outside the store lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Generic, Optional, TypeVar

from growchamber.domain.live_state import LiveState, TimestampedValue
from growchamber.enums.common import GrowthPhase, UpdateOrigin
from growchamber.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

StateListener = Callable[[LiveState, LiveState], None]


class LiveStateStore:
    """Replace-on-write holder of the current :class:`LiveState`."""

    def __init__(
        self,
        initial: Optional[LiveState] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._state = initial or LiveState.initial()
        self._clock = clock
        self._lock = threading.Lock()
        self._listeners: list[StateListener] = []

    def current(self) -> LiveState:
        """Latest published record. Safe to hold; it is never mutated."""
        return self._state

    def publish(self, state: LiveState) -> LiveState:
        """
        Install ``state`` as the new record.

        The sequence is advanced and ``updated_at`` stamped here, so callers
        build the record and the store owns its identity.
        """
        with self._lock:
            previous = self._state
            current = replace(state, sequence=previous.sequence + 1, updated_at=self._clock())
            self._state = current
        self._notify(previous, current)
        return current

    def update(self, **changes: Any) -> LiveState:
        """Publish a copy of the current record with ``changes`` applied."""
        with self._lock:
            previous = self._state
            current = replace(previous, **changes, sequence=previous.sequence + 1, updated_at=self._clock())
            self._state = current
        self._notify(previous, current)
        return current

    def reset(self, growth_phase: GrowthPhase = GrowthPhase.VEGETATIVE) -> LiveState:
        """Return to the "no data yet" record, e.g. on shutdown."""
        with self._lock:
            previous = self._state
            self._state = LiveState.initial(growth_phase)
        self._notify(previous, self._state)
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener(previous, current)`` after every publish; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    return

        return unsubscribe

    def _notify(self, previous: LiveState, current: LiveState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(previous, current)
            except Exception as exc:
                logger.error("Live state subscriber %r failed: %s", listener, exc, exc_info=True)


class TimestampedCell(Generic[T]):
    """
    "Current value with last-updated timestamp" fed by push events and polls.

    A value is accepted only if it is newer than the held one; on equal
    timestamps a push wins over a poll. This keeps a slow poll from
    overwriting fresher pushed data.
    """

    def __init__(self) -> None:
        self._value: Optional[TimestampedValue[T]] = None
        self._lock = threading.Lock()
        self._rejected = 0

    def offer(self, value: T, updated_at: datetime, origin: UpdateOrigin = UpdateOrigin.PUSH) -> bool:
        """Offer a value; returns True if it replaced the current one."""
        candidate = TimestampedValue(value=value, updated_at=ensure_utc(updated_at), origin=UpdateOrigin(origin))
        with self._lock:
            if not candidate.supersedes(self._value):
                self._rejected += 1
                logger.debug(
                    "Ignoring %s value from %s; holding %s",
                    candidate.origin,
                    candidate.updated_at.isoformat(),
                    self._value.updated_at.isoformat() if self._value else None,
                )
                return False
            self._value = candidate
            return True

    def current(self) -> Optional[TimestampedValue[T]]:
        return self._value

    @property
    def rejected(self) -> int:
        return self._rejected
