"""
Action Dispatcher
=================

Executes the actions the rule engine triggered, off the telemetry path.

Each satisfied rule becomes one batch that a background worker runs in
order: ``delay`` actions pause the batch, ``device`` actions go to an
:class:`ActionSink`, ``notification`` actions go to the notification hook.
Every batch ends in exactly one :class:`ExecutionReport`, delivered to the
``on_report`` callback; failures are reported, never raised.

A rule whose previous batch is still queued or running is not queued again,
so a long ``delay`` cannot stack duplicate commands.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from datetime import datetime
from queue import Empty, Full, Queue
from typing import Callable, Iterable, Optional, Protocol

from growchamber.constants import Timeouts
from growchamber.domain.automation import (
    DelayAction,
    DeviceAction,
    ExecutionReport,
    NotificationAction,
    TriggeredAction,
)
from growchamber.domain.exceptions import DeviceError
from growchamber.enums.automation import DeviceCommand
from growchamber.utils.time import utc_now

logger = logging.getLogger(__name__)

# Devices driven by the controller's PWM channels
FAN_DEVICES = frozenset({"fan", "fan_exhaust"})
LIGHT_DEVICES = frozenset({"light", "grow_light"})


class ActionSink(Protocol):
    """Device-control collaborator. Raises DeviceError when a command cannot be delivered."""

    def send(self, action: DeviceAction, *, rule_id: str) -> None:
        ...


def build_device_command(action: DeviceAction) -> dict:
    """
    Controller command for a device action.

    ON/OFF switch a relay; PWM on a fan or light maps 0-100 % to the 8-bit
    duty cycle; anything else is passed through unchanged.
    """
    if action.command in (DeviceCommand.ON, DeviceCommand.OFF):
        return {"action": "set_relay", "relay": action.device, "state": action.command == DeviceCommand.ON}
    if action.command == DeviceCommand.PWM and action.value is not None:
        duty = round(action.value / 100 * 255)
        if action.device in FAN_DEVICES:
            return {"action": "set_fan_pwm", "value": duty}
        if action.device in LIGHT_DEVICES:
            return {"action": "set_light_pwm", "value": duty}
    return {"action": action.command.value, "device": action.device, "value": action.value}


class MqttCommandSink:
    """Publishes device actions as JSON commands on ``{prefix}/command``."""

    def __init__(self, mqtt_client, topic_prefix: str):
        self.mqtt_client = mqtt_client
        self.topic = f"{topic_prefix}/command"

    def send(self, action: DeviceAction, *, rule_id: str) -> None:
        command = build_device_command(action)
        if not self.mqtt_client.publish(self.topic, json.dumps(command)):
            raise DeviceError(
                f"Command for {action.device} could not be published",
                detail={"rule_id": rule_id, "command": command},
            )
        logger.info("[%s] MQTT command: %s", rule_id, command)


class LoggingSink:
    """Sink used when command dispatch is disabled: records what would be sent."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []

    def send(self, action: DeviceAction, *, rule_id: str) -> None:
        command = build_device_command(action)
        self.sent.append((rule_id, command))
        logger.info("[%s] Dispatch disabled, not sending: %s", rule_id, command)


class ActionDispatcher:
    """Background executor for triggered rule actions."""

    def __init__(
        self,
        sink: ActionSink,
        *,
        on_report: Optional[Callable[[ExecutionReport], None]] = None,
        on_notification: Optional[Callable[[NotificationAction, str], None]] = None,
        queue_size: int = 256,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sink = sink
        self.on_report = on_report
        self.on_notification = on_notification
        self._clock = clock
        self._queue: Queue[tuple[str, tuple[TriggeredAction, ...]]] = Queue(maxsize=queue_size)
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stats = {"batches_queued": 0, "batches_skipped": 0, "batches_dropped": 0, "succeeded": 0, "failed": 0}

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker_loop, name="action-dispatcher", daemon=True)
        self._thread.start()
        logger.info("Action dispatcher started")

    def stop(self, timeout: float = Timeouts.WORKER_JOIN_TIMEOUT) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Action dispatcher stopped")

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    # ------------------------------------------------------------------ #
    # Submission
    # ------------------------------------------------------------------ #

    def submit(self, triggered: Iterable[TriggeredAction]) -> int:
        """Queue triggered actions grouped per rule. Returns the number of batches queued."""
        batches: OrderedDict[str, list[TriggeredAction]] = OrderedDict()
        for item in triggered:
            batches.setdefault(item.rule_id, []).append(item)

        queued = 0
        for rule_id, actions in batches.items():
            with self._lock:
                if rule_id in self._in_flight:
                    self._stats["batches_skipped"] += 1
                    logger.debug("Rule %s still executing; skipping new batch", rule_id)
                    continue
                self._in_flight.add(rule_id)
            try:
                self._queue.put_nowait((rule_id, tuple(sorted(actions, key=lambda a: a.index))))
            except Full:
                with self._lock:
                    self._in_flight.discard(rule_id)
                    self._stats["batches_dropped"] += 1
                logger.warning("Action queue full; dropped batch for rule %s", rule_id)
                continue
            self._stats["batches_queued"] += 1
            queued += 1
        return queued

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                rule_id, actions = self._queue.get(timeout=0.5)
            except Empty:
                continue
            try:
                report = self.run_batch(rule_id, actions)
            except Exception as exc:
                logger.error("Unexpected error executing rule %s: %s", rule_id, exc, exc_info=True)
                report = ExecutionReport(rule_id=rule_id, success=False, executed_at=self._clock(), error=str(exc))
            finally:
                with self._lock:
                    self._in_flight.discard(rule_id)
                self._queue.task_done()
            self._deliver(report)

    def run_batch(self, rule_id: str, actions: Iterable[TriggeredAction]) -> ExecutionReport:
        """Execute one rule's actions in order and report the outcome."""
        sent = 0
        for triggered in actions:
            action = triggered.action
            if isinstance(action, DelayAction):
                if self._stop_event.wait(action.seconds):
                    return self._finish(rule_id, False, sent, "cancelled during shutdown")
            elif isinstance(action, DeviceAction):
                try:
                    self.sink.send(action, rule_id=rule_id)
                except DeviceError as exc:
                    logger.warning("Rule %s: action %d failed: %s", rule_id, triggered.index, exc)
                    return self._finish(rule_id, False, sent, str(exc))
                sent += 1
            elif isinstance(action, NotificationAction):
                if self.on_notification is not None:
                    self.on_notification(action, rule_id)
                else:
                    logger.info("[%s] Notification: %s", rule_id, action.message)
                sent += 1
        return self._finish(rule_id, True, sent, None)

    def _finish(self, rule_id: str, success: bool, sent: int, error: Optional[str]) -> ExecutionReport:
        self._stats["succeeded" if success else "failed"] += 1
        return ExecutionReport(
            rule_id=rule_id, success=success, executed_at=self._clock(), actions_sent=sent, error=error
        )

    def _deliver(self, report: ExecutionReport) -> None:
        if self.on_report is None:
            return
        try:
            self.on_report(report)
        except Exception as exc:
            logger.error("Execution report handler failed for rule %s: %s", report.rule_id, exc, exc_info=True)

    def get_stats(self) -> dict[str, int]:
        stats = dict(self._stats)
        stats["queue_depth"] = self._queue.qsize()
        stats["in_flight"] = len(self._in_flight)
        return stats
