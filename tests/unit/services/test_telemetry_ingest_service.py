from unittest.mock import Mock

import pytest

from growchamber.enums.events import TelemetryEvent
from growchamber.services.telemetry_ingest_service import TelemetryIngestService


class DummyMessage:
    def __init__(self, topic: str, payload: bytes):
        self.topic = topic
        self.payload = payload


class RecordingMqtt:
    def __init__(self):
        self.subscriptions = {}

    def subscribe(self, topic, callback):
        self.subscriptions[topic] = callback


@pytest.fixture()
def mqtt():
    return RecordingMqtt()


@pytest.fixture()
def fake_pipeline():
    return Mock()


@pytest.fixture()
def ingest(mqtt, fake_pipeline):
    return TelemetryIngestService(mqtt, fake_pipeline, topic_prefix="grow_drexl_v2", nutrient_prefix="grow/esp32/nutrients")


def test_subscribes_to_every_topic(ingest, mqtt):
    assert set(mqtt.subscriptions) == {
        "grow_drexl_v2/data",
        "grow_drexl_v2/watchdog",
        "grow_drexl_v2/alert",
        "grow/esp32/nutrients/sensors",
        "grow/esp32/nutrients/status",
    }


@pytest.mark.parametrize(
    "topic, handler",
    [
        ("grow_drexl_v2/data", "apply_sensor_data"),
        ("grow/esp32/nutrients/sensors", "apply_nutrient_sensors"),
        ("grow/esp32/nutrients/status", "apply_nutrient_status"),
        ("grow_drexl_v2/watchdog", "apply_watchdog_status"),
        ("grow_drexl_v2/alert", "apply_alert"),
    ],
)
def test_messages_are_routed_to_pipeline(ingest, fake_pipeline, topic, handler):
    ingest._on_message(None, None, DummyMessage(topic, b'{"value": 1}'))
    getattr(fake_pipeline, handler).assert_called_once_with({"value": 1})


def test_invalid_json_is_counted_and_dropped(ingest, fake_pipeline):
    ingest._on_message(None, None, DummyMessage("grow_drexl_v2/data", b"{not json"))
    ingest._on_message(None, None, DummyMessage("grow_drexl_v2/data", b"\xff\xfe"))
    ingest._on_message(None, None, DummyMessage("grow_drexl_v2/data", b"[1, 2]"))

    fake_pipeline.apply_sensor_data.assert_not_called()
    stats = ingest.get_stats()
    assert stats["invalid"] == 3
    assert stats["received"] == 3


def test_unknown_topic_is_counted(ingest, fake_pipeline):
    ingest._on_message(None, None, DummyMessage("grow_drexl_v2/unknown", b"{}"))
    assert ingest.get_stats()["unknown_topic"] == 1
    fake_pipeline.apply_sensor_data.assert_not_called()


def test_handler_errors_never_reach_mqtt_loop(ingest, fake_pipeline):
    fake_pipeline.apply_sensor_data.side_effect = RuntimeError("boom")
    ingest._on_message(None, None, DummyMessage("grow_drexl_v2/data", b'{"temp": 22}'))
    assert ingest.get_stats()["failed"] == 1


def test_handle_event_accepts_event_names(ingest, fake_pipeline):
    fake_pipeline.apply_nutrient_sensors.return_value = True
    assert ingest.handle_event("nutrientSensors", {"ec": 1.2}) is True
    assert ingest.get_stats()[TelemetryEvent.NUTRIENT_SENSORS.value] == 1

    with pytest.raises(ValueError):
        ingest.handle_event("bogusEvent", {})


def test_subscribe_failure_is_counted(fake_pipeline):
    broken = Mock()
    broken.subscribe.side_effect = OSError("broker gone")
    service = TelemetryIngestService(broken, fake_pipeline)
    assert service.get_stats()["subscribe_errors"] == 5
