from __future__ import annotations

import pytest

from growchamber import create_app, socketio
from growchamber.utils.emitters import SOCKETIO_NAMESPACE_LIVE


@pytest.fixture()
def app(monkeypatch):
    monkeypatch.setenv("GROWCHAMBER_SECRET_KEY", "test-secret")
    monkeypatch.delenv("GROWCHAMBER_RULES_URL", raising=False)
    app = create_app({"enable_mqtt": False, "log_file_path": ""})
    app.config["TESTING"] = True
    yield app
    app.config["CONTAINER"].shutdown()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def container(app):
    return app.config["CONTAINER"]


def test_ping(client):
    response = client.get("/api/v1/health/ping")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["ok"] is True
    assert payload["error"] is None
    assert payload["data"]["status"] == "ok"


def test_system_health_before_data_is_degraded(client):
    data = client.get("/api/v1/health/system").get_json()["data"]
    assert data["status"] == "degraded"
    assert data["watchdog"]["controller"]["condition"] == "awaiting_data"
    assert data["mqtt"] is None
    assert data["ingest"] is None
    assert "snapshots" in data["pipeline"]


def test_system_health_with_fresh_data(client, container, controller_payload):
    container.pipeline.apply_sensor_data(controller_payload)
    assert client.get("/api/v1/health/system").get_json()["data"]["status"] == "healthy"


def test_state_without_data(client):
    data = client.get("/api/v1/live/state").get_json()["data"]
    assert data["has_data"] is False
    assert data["derived"] is None
    assert data["fused"]["temperature"] is None
    assert data["growth_phase"] == "vegetative"


def test_state_after_snapshot(client, container, controller_payload):
    container.pipeline.apply_sensor_data(controller_payload)

    data = client.get("/api/v1/live/state").get_json()["data"]
    assert data["has_data"] is True
    assert data["fused"]["temperature"] == 30.0
    assert data["fused"]["humidity"] == 75.0
    assert data["derived"]["vpd_kpa"] == 1.06

    recs = client.get("/api/v1/live/recommendations").get_json()["data"]
    assert recs[0]["severity"] in ("critical", "warning")
    assert {r["id"] for r in recs} >= {"temperature-high", "humidity-high"}

    watchdog = client.get("/api/v1/live/watchdog").get_json()["data"]
    assert watchdog["controller"]["source_state"] == "ok"


def test_set_growth_phase(client):
    response = client.put("/api/v1/live/phase", json={"phase": "Flowering"})
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["data"]["growth_phase"] == "flowering"
    assert payload["message"] == "Growth phase set to flowering"


def test_invalid_growth_phase(client):
    response = client.put("/api/v1/live/phase", json={"phase": "fruiting"})
    assert response.status_code == 400
    payload = response.get_json()
    assert payload["ok"] is False
    assert payload["message"] == "Unknown growth phase"
    assert "vegetative" in payload["details"]["allowed"]


def test_phase_requires_json_body(client):
    response = client.put("/api/v1/live/phase", data="flowering", content_type="text/plain")
    assert response.status_code == 400
    assert response.get_json()["message"] == "Request body must be a JSON object"


def test_reload_rules_from_body(client, container, rule_factory):
    response = client.post(
        "/api/v1/automation/reload",
        json={"rules": [rule_factory("low"), rule_factory("high", priority=90), {"id": "broken"}]},
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data == {"count": 2, "enabled": 2, "rules": ["low", "high"]}
    assert len(container.rule_source.list_rules()) == 3

    listed = client.get("/api/v1/automation/rules").get_json()["data"]
    assert listed["count"] == 2
    assert [r["id"] for r in listed["rules"]] == ["high", "low"]

    rule = client.get("/api/v1/automation/rules/high").get_json()["data"]
    assert rule["priority"] == 90
    assert rule["conditions"] == ["temperature > 28.0"]


def test_reload_from_rule_source(client, container, rule_factory):
    container.rule_source.replace([rule_factory("a")])
    data = client.post("/api/v1/automation/reload").get_json()["data"]
    assert data["rules"] == ["a"]


def test_rule_test_results(client, container, rule_factory):
    client.post("/api/v1/automation/reload", json={"rules": [rule_factory("trial", testMode=True)]})
    container.pipeline.tick()

    data = client.get("/api/v1/automation/rules/trial/test-results").get_json()["data"]
    assert data["count"] == 1
    assert data["results"][0]["result"] == "not_met"
    assert client.get("/api/v1/automation/rules/ghost/test-results").status_code == 404


def test_reload_rejects_non_list(client):
    response = client.post("/api/v1/automation/reload", json={"rules": {"id": "x"}})
    assert response.status_code == 400


def test_unknown_rule_is_404(client):
    response = client.get("/api/v1/automation/rules/missing")
    assert response.status_code == 404
    payload = response.get_json()
    assert payload["ok"] is False
    assert payload["details"] == {"rule_id": "missing"}


def test_simulate_rule_with_overrides(client, container, controller_payload, rule_factory):
    container.pipeline.apply_sensor_data(controller_payload)

    response = client.post(
        "/api/v1/automation/simulate",
        json={"rule": rule_factory(), "metrics": {"temp": 20}},
    )
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["triggered"] is False
    assert data["context"]["temperature"] == 20
    assert data["conditions"][0]["met"] is False
    assert data["actions"] == []


def test_simulate_rejects_invalid_rule(client, rule_factory):
    response = client.post(
        "/api/v1/automation/simulate",
        json={"rule": rule_factory(priority=500)},
    )
    assert response.status_code == 400
    payload = response.get_json()
    assert payload["message"] == "Invalid automation rule"
    assert payload["details"]["errors"][0]["loc"].startswith("rule")


def test_simulate_rejects_unknown_metric(client, rule_factory):
    response = client.post(
        "/api/v1/automation/simulate",
        json={"rule": rule_factory(conditions=[{"metric": "co2_ratio", "operator": ">", "threshold": 1}])},
    )
    assert response.status_code == 400
    assert "unknown metric" in response.get_json()["details"]["errors"]


def test_unknown_api_route_returns_json_404(client):
    response = client.get("/api/v1/nothing-here")
    assert response.status_code == 404
    assert response.get_json()["ok"] is False


def test_live_namespace_sends_state_on_connect(app):
    sio_client = socketio.test_client(app, namespace=SOCKETIO_NAMESPACE_LIVE)
    try:
        assert sio_client.is_connected(SOCKETIO_NAMESPACE_LIVE)
        received = sio_client.get_received(SOCKETIO_NAMESPACE_LIVE)
        names = [message["name"] for message in received]
        assert "live_state" in names
        assert "watchdog_status" in names

        sio_client.emit("request_state", namespace=SOCKETIO_NAMESPACE_LIVE)
        again = sio_client.get_received(SOCKETIO_NAMESPACE_LIVE)
        assert [m["name"] for m in again] == ["live_state"]
    finally:
        sio_client.disconnect(namespace=SOCKETIO_NAMESPACE_LIVE)


def test_live_handlers_survive_a_second_app(app):
    second = create_app({"enable_mqtt": False, "log_file_path": ""})
    second.config["TESTING"] = True
    sio_client = socketio.test_client(second, namespace=SOCKETIO_NAMESPACE_LIVE)
    try:
        assert sio_client.is_connected(SOCKETIO_NAMESPACE_LIVE)
        names = [m["name"] for m in sio_client.get_received(SOCKETIO_NAMESPACE_LIVE)]
        assert "live_state" in names
    finally:
        sio_client.disconnect(namespace=SOCKETIO_NAMESPACE_LIVE)
        second.config["CONTAINER"].shutdown()
