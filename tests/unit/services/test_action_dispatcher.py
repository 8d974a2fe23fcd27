import json
import threading
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from growchamber.domain.automation import DelayAction, DeviceAction, NotificationAction, TriggeredAction
from growchamber.domain.exceptions import DeviceError
from growchamber.enums.automation import DeviceCommand
from growchamber.services.action_dispatcher import (
    ActionDispatcher,
    LoggingSink,
    MqttCommandSink,
    build_device_command,
)


TRIGGERED_AT = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def triggered(rule_id, *actions):
    return [
        TriggeredAction(rule_id=rule_id, rule_name=rule_id, priority=50, action=action, index=index, triggered_at=TRIGGERED_AT)
        for index, action in enumerate(actions)
    ]


class TestDeviceCommands:
    def test_relay_on_off(self):
        assert build_device_command(DeviceAction("pump", DeviceCommand.ON)) == {
            "action": "set_relay",
            "relay": "pump",
            "state": True,
        }
        assert build_device_command(DeviceAction("pump", DeviceCommand.OFF))["state"] is False

    def test_fan_and_light_pwm_use_8_bit_duty(self):
        assert build_device_command(DeviceAction("fan", DeviceCommand.PWM, 100)) == {"action": "set_fan_pwm", "value": 255}
        assert build_device_command(DeviceAction("light", DeviceCommand.PWM, 50)) == {"action": "set_light_pwm", "value": 128}

    def test_other_pwm_devices_pass_through(self):
        assert build_device_command(DeviceAction("heater", DeviceCommand.PWM, 40)) == {
            "action": "PWM",
            "device": "heater",
            "value": 40,
        }

    def test_mqtt_sink_publishes_json(self):
        client = Mock()
        client.publish.return_value = True
        MqttCommandSink(client, "grow_drexl_v2").send(DeviceAction("fan", DeviceCommand.ON), rule_id="r1")

        topic, body = client.publish.call_args.args
        assert topic == "grow_drexl_v2/command"
        assert json.loads(body) == {"action": "set_relay", "relay": "fan", "state": True}

    def test_mqtt_sink_raises_when_not_published(self):
        client = Mock()
        client.publish.return_value = False
        with pytest.raises(DeviceError):
            MqttCommandSink(client, "grow_drexl_v2").send(DeviceAction("fan", DeviceCommand.ON), rule_id="r1")


class TestRunBatch:
    def test_actions_run_in_order(self, clock):
        sink = LoggingSink()
        notes = []
        dispatcher = ActionDispatcher(sink, on_notification=lambda action, rule_id: notes.append((rule_id, action.message)), clock=clock)

        report = dispatcher.run_batch(
            "r1",
            triggered(
                "r1",
                DeviceAction("fan", DeviceCommand.ON),
                DelayAction(0),
                DeviceAction("light", DeviceCommand.OFF),
                NotificationAction("Vented"),
            ),
        )

        assert report.success
        assert report.actions_sent == 3
        assert report.executed_at == clock.now
        assert [command["relay"] for _, command in sink.sent] == ["fan", "light"]
        assert notes == [("r1", "Vented")]

    def test_sink_failure_stops_batch(self, clock):
        sink = Mock()
        sink.send.side_effect = [None, DeviceError("relay offline")]
        dispatcher = ActionDispatcher(sink, clock=clock)

        report = dispatcher.run_batch(
            "r1",
            triggered(
                "r1",
                DeviceAction("fan", DeviceCommand.ON),
                DeviceAction("pump", DeviceCommand.ON),
                DeviceAction("light", DeviceCommand.ON),
            ),
        )

        assert not report.success
        assert report.actions_sent == 1
        assert report.error == "relay offline"
        assert sink.send.call_count == 2
        assert dispatcher.get_stats()["failed"] == 1

    def test_delay_is_cancelled_on_shutdown(self, clock):
        dispatcher = ActionDispatcher(LoggingSink(), clock=clock)
        dispatcher.stop()
        report = dispatcher.run_batch("r1", triggered("r1", DelayAction(600), DeviceAction("fan", DeviceCommand.ON)))
        assert not report.success
        assert report.error == "cancelled during shutdown"
        assert report.actions_sent == 0


class TestSubmission:
    def test_batches_are_grouped_per_rule(self):
        dispatcher = ActionDispatcher(LoggingSink())
        queued = dispatcher.submit(
            triggered("a", DeviceAction("fan", DeviceCommand.ON))
            + triggered("b", DeviceAction("pump", DeviceCommand.ON), DeviceAction("light", DeviceCommand.ON))
        )
        assert queued == 2
        stats = dispatcher.get_stats()
        assert stats["queue_depth"] == 2
        assert stats["in_flight"] == 2

    def test_rule_in_flight_is_not_queued_twice(self):
        dispatcher = ActionDispatcher(LoggingSink())
        dispatcher.submit(triggered("a", DeviceAction("fan", DeviceCommand.ON)))
        assert dispatcher.submit(triggered("a", DeviceAction("fan", DeviceCommand.ON))) == 0
        assert dispatcher.get_stats()["batches_skipped"] == 1

    def test_full_queue_drops_batch(self):
        dispatcher = ActionDispatcher(LoggingSink(), queue_size=1)
        dispatcher.submit(triggered("a", DeviceAction("fan", DeviceCommand.ON)))
        assert dispatcher.submit(triggered("b", DeviceAction("fan", DeviceCommand.ON))) == 0
        stats = dispatcher.get_stats()
        assert stats["batches_dropped"] == 1
        assert stats["in_flight"] == 1

    def test_worker_reports_each_batch(self):
        reports = []
        done = threading.Event()

        def on_report(report):
            reports.append(report)
            if len(reports) == 2:
                done.set()

        sink = LoggingSink()
        dispatcher = ActionDispatcher(sink, on_report=on_report)
        dispatcher.start()
        try:
            dispatcher.submit(
                triggered("a", DeviceAction("fan", DeviceCommand.ON))
                + triggered("b", DeviceAction("pump", DeviceCommand.ON))
            )
            assert done.wait(5.0)
        finally:
            dispatcher.stop()

        assert [r.rule_id for r in reports] == ["a", "b"]
        assert all(r.success for r in reports)
        assert dispatcher.get_stats()["in_flight"] == 0
        assert not dispatcher.is_running
