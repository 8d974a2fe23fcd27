from types import SimpleNamespace
from unittest.mock import Mock, patch

from growchamber.enums.events import DeviceEvent
from growchamber.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper


class DummyMessage:
    def __init__(self, topic: str, payload: bytes):
        self.topic = topic
        self.payload = payload


class DummyClient:
    def __init__(self, connect_error: Exception | None = None):
        self.on_message = None
        self.on_connect = None
        self.on_disconnect = None
        self.subscriptions = []
        self.published = []
        self.connect_error = connect_error
        self.async_connects = 0
        self.loop_started = False

    def connect(self, *_args, **_kwargs):
        if self.connect_error is not None:
            raise self.connect_error
        return 0

    def connect_async(self, *_args, **_kwargs):
        self.async_connects += 1

    def loop_start(self):
        self.loop_started = True

    def disconnect(self):
        return None

    def loop_stop(self):
        self.loop_started = False

    def subscribe(self, topic):
        self.subscriptions.append(topic)
        return (0, len(self.subscriptions))

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, payload))
        return SimpleNamespace(rc=0, topic=topic, payload=payload)


def build_wrapper(dummy_client=None, **kwargs):
    dummy_client = dummy_client or DummyClient()
    wrapper = MQTTClientWrapper(
        broker="test", port=1883, client=dummy_client, event_bus=Mock(), **kwargs
    )
    return wrapper, dummy_client


def test_wrapper_fans_out_callbacks_without_overwrite():
    wrapper, _ = build_wrapper()
    events = []

    def data_cb(_client, _userdata, msg):
        events.append(("data", msg.topic, msg.payload))

    def nutrient_cb(_client, _userdata, msg):
        events.append(("nutrients", msg.topic))

    wrapper.subscribe("grow_drexl_v2/+", data_cb)
    wrapper.subscribe("grow/esp32/nutrients/#", nutrient_cb)

    wrapper._dispatch_message(wrapper.client, None, DummyMessage("grow_drexl_v2/data", b'{"temp":1}'))
    wrapper._dispatch_message(wrapper.client, None, DummyMessage("grow/esp32/nutrients/sensors", b'{"ec":1.2}'))

    assert ("data", "grow_drexl_v2/data", b'{"temp":1}') in events
    assert ("nutrients", "grow/esp32/nutrients/sensors") in events
    assert len(events) == 2


def test_failing_callback_does_not_block_other_subscribers():
    wrapper, _ = build_wrapper()
    seen = []

    def broken(_client, _userdata, _msg):
        raise ValueError("bad handler")

    wrapper.subscribe("grow_drexl_v2/data", broken)
    wrapper.subscribe("grow_drexl_v2/data", lambda _c, _u, msg: seen.append(msg.topic))
    wrapper._dispatch_message(wrapper.client, None, DummyMessage("grow_drexl_v2/data", b"{}"))

    assert seen == ["grow_drexl_v2/data"]


def test_subscriptions_are_reissued_on_every_connect():
    wrapper, client = build_wrapper()
    wrapper.subscribe("grow_drexl_v2/data", lambda *_: None)
    wrapper.subscribe("grow_drexl_v2/alert", lambda *_: None)
    assert client.subscriptions == []

    wrapper._handle_connect(client, None, {}, 0)
    wrapper._handle_disconnect(client, None, 1)
    wrapper._handle_connect(client, None, {}, 0)

    assert client.subscriptions == ["grow_drexl_v2/data", "grow_drexl_v2/alert"] * 2
    assert wrapper.health_status.disconnects == 1
    assert wrapper.health_status.active_subscriptions == 2


def test_connectivity_changes_reach_callback_and_event_bus():
    changes = []
    wrapper, client = build_wrapper(on_connectivity=changes.append)

    wrapper._handle_connect(client, None, {}, 0)
    wrapper._handle_connect(client, None, {}, 0)
    wrapper._handle_disconnect(client, None, 7)

    assert changes == [True, False]
    published = [call.args for call in wrapper.event_bus.publish.call_args_list]
    assert [args[0] for args in published] == [DeviceEvent.CONNECTIVITY_CHANGED] * 2
    assert published[0][1].status == "connected"
    assert published[1][1].status == "disconnected"


def test_refused_connection_is_reported_as_disconnected():
    changes = []
    wrapper, client = build_wrapper(on_connectivity=changes.append)
    wrapper._handle_connect(client, None, {}, 0)
    wrapper._handle_connect(client, None, {}, 5)

    assert changes == [True, False]
    assert wrapper.health_status.last_error == "connect rc=5"


def test_failed_initial_connect_keeps_retrying_in_background():
    client = DummyClient(connect_error=OSError("connection refused"))
    wrapper, _ = build_wrapper(client)

    assert client.async_connects == 1
    assert client.loop_started
    assert not wrapper.connected
    assert wrapper.health_status.last_error == "connection refused"


def test_publish_requires_connection():
    wrapper, client = build_wrapper()
    assert not wrapper.publish("grow_drexl_v2/cmd", "{}")
    assert wrapper.health_status.failed_publishes == 1

    wrapper._handle_connect(client, None, {}, 0)
    assert wrapper.publish("grow_drexl_v2/cmd", '{"relay":"fan"}')
    assert client.published == [("grow_drexl_v2/cmd", '{"relay":"fan"}')]
    assert wrapper.health_status.successful_publishes == 1


def test_create_client_is_used_when_no_client_given():
    dummy = DummyClient()
    with patch(
        "growchamber.hardware.mqtt.mqtt_broker_wrapper.create_mqtt_client",
        return_value=dummy,
    ) as factory:
        wrapper = MQTTClientWrapper(broker="test", port=1883, client_id="gc", event_bus=Mock(), auto_connect=False)
    factory.assert_called_once_with(client_id="gc")
    assert wrapper.client is dummy
    assert dummy.on_message == wrapper._dispatch_message
