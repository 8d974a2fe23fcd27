from growchamber.enums.events import WebSocketEvent
from growchamber.utils.emitters import SOCKETIO_NAMESPACE_LIVE, EmitterService


class FakeSocketIO:
    def __init__(self) -> None:
        self.emits: list[dict] = []

    def emit(self, event, payload, room=None, namespace="/"):
        self.emits.append(
            {
                "event": event,
                "payload": payload,
                "room": room,
                "namespace": namespace,
            }
        )


class BrokenSocketIO:
    def emit(self, *_args, **_kwargs):
        raise ConnectionError("client gone")


def events(sio):
    return [e["event"] for e in sio.emits]


def test_first_snapshot_emits_state_watchdog_and_recommendations(pipeline, controller_payload):
    sio = FakeSocketIO()
    EmitterService(sio).attach(pipeline.store)

    pipeline.apply_sensor_data(controller_payload)

    assert events(sio) == [
        WebSocketEvent.LIVE_STATE.value,
        WebSocketEvent.WATCHDOG_STATUS.value,
        WebSocketEvent.RECOMMENDATIONS.value,
    ]
    assert all(e["namespace"] == SOCKETIO_NAMESPACE_LIVE for e in sio.emits)
    assert all(e["room"] is None for e in sio.emits)

    state = sio.emits[0]["payload"]
    assert state["has_data"] is True
    assert state["fused"]["temperature"] == 30.0
    assert state["derived"]["vpd_kpa"] == 1.06
    assert state["derived"]["vpd_status"] == "optimal"
    assert state["watchdog"]["controller"]["condition"] == "fresh"

    watchdog = sio.emits[1]["payload"]
    assert watchdog["controller"]["source_state"] == "ok"


def test_unchanged_outputs_only_emit_live_state(pipeline, controller_payload, clock):
    pipeline.apply_sensor_data(controller_payload)
    sio = FakeSocketIO()
    EmitterService(sio).attach(pipeline.store)

    clock.advance(5)
    pipeline.apply_sensor_data(controller_payload)

    assert events(sio) == [WebSocketEvent.LIVE_STATE.value]


def test_triggered_actions_and_new_alerts_are_emitted(pipeline, controller_payload, rule_factory):
    sio = FakeSocketIO()
    EmitterService(sio).attach(pipeline.store)
    pipeline.set_rules([rule_factory("vent-on-heat")])

    pipeline.apply_sensor_data({**controller_payload, "tankLevel": 5})

    triggered = next(e for e in sio.emits if e["event"] == WebSocketEvent.TRIGGERED_ACTIONS.value)
    assert triggered["payload"][0]["rule_id"] == "vent-on-heat"
    assert triggered["payload"][0]["action"] == {"type": "device", "device": "fan", "command": "ON", "value": None}

    alerts = [e for e in sio.emits if e["event"] == WebSocketEvent.ALERT.value]
    assert [a["payload"]["key"] for a in alerts] == ["tank_low"]


def test_detach_stops_emits(pipeline, controller_payload):
    sio = FakeSocketIO()
    emitter = EmitterService(sio)
    emitter.attach(pipeline.store)
    emitter.detach()

    pipeline.apply_sensor_data(controller_payload)
    assert sio.emits == []


def test_emit_failures_do_not_reach_the_pipeline(pipeline, controller_payload):
    EmitterService(BrokenSocketIO()).attach(pipeline.store)
    assert pipeline.apply_sensor_data(controller_payload)
    assert pipeline.store.current().has_data
