from unittest.mock import Mock, patch

import pytest

from growchamber.config import AppConfig
from growchamber.domain.exceptions import ConfigurationError
from growchamber.enums.common import GrowthPhase
from growchamber.services.action_dispatcher import LoggingSink, MqttCommandSink
from growchamber.services.container import ServiceContainer
from growchamber.services.rule_sources import HttpRuleSource, StaticRuleSource


def make_config(**overrides):
    values = dict(enable_mqtt=False, log_file_path="", rules_url="")
    values.update(overrides)
    return AppConfig(**values)


def test_build_without_mqtt_marks_transport_up():
    container = ServiceContainer.build(make_config(default_growth_phase="flowering"))

    assert container.mqtt_client is None
    assert container.ingest_service is None
    assert container.emitter is None
    assert isinstance(container.rule_source, StaticRuleSource)
    assert isinstance(container.dispatcher.sink, LoggingSink)
    assert container.watchdog.transport_connected
    assert container.store.current().growth_phase == GrowthPhase.FLOWERING
    assert not container.pipeline.is_running


def test_rules_url_selects_http_source():
    container = ServiceContainer.build(make_config(rules_url="http://rules.local/api/rules"))
    assert isinstance(container.rule_source, HttpRuleSource)
    assert container.rule_source.url == "http://rules.local/api/rules"


def test_config_limits_reach_services():
    container = ServiceContainer.build(
        make_config(max_rules=3, watchdog_warning_seconds=10, watchdog_critical_seconds=20)
    )
    assert container.rule_engine.max_rules == 3
    assert container.watchdog.warning_after_ms == 10_000
    assert container.watchdog.critical_after_ms == 20_000


def test_runtime_wires_mqtt_ingest_and_command_sink():
    wrapper = Mock()
    with patch("growchamber.services.container.MQTTClientWrapper", return_value=wrapper) as factory:
        container = ServiceContainer.build(make_config(enable_mqtt=True, rules_refresh_seconds=0), start_runtime=True)
    try:
        assert factory.call_args.kwargs["on_connectivity"] == container.pipeline.apply_transport_status
        wrapper.connect.assert_called_once()
        assert wrapper.subscribe.call_count == 5
        assert isinstance(container.dispatcher.sink, MqttCommandSink)
        assert container.dispatcher.is_running
        assert container.pipeline.is_running
    finally:
        container.shutdown()

    wrapper.disconnect.assert_called_once()
    assert not container.pipeline.is_running
    container.shutdown()
    wrapper.disconnect.assert_called_once()


@pytest.mark.parametrize(
    "overrides",
    [
        {"watchdog_warning_seconds": 300, "watchdog_critical_seconds": 30},
        {"watchdog_tick_seconds": 0},
        {"soil_wet_value": 4095, "soil_dry_value": 1200},
        {"light_hours": 25},
    ],
)
def test_invalid_configuration_is_rejected(overrides):
    with pytest.raises(ConfigurationError):
        make_config(**overrides)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GROWCHAMBER_MQTT_PORT", "8883")
    monkeypatch.setenv("GROWCHAMBER_ENABLE_MQTT", "off")
    monkeypatch.setenv("GROWCHAMBER_LIGHT_HOURS", "16")
    config = AppConfig()
    assert config.mqtt_broker_port == 8883
    assert config.enable_mqtt is False
    assert config.light_hours == 16.0


def test_non_numeric_environment_value(monkeypatch):
    monkeypatch.setenv("GROWCHAMBER_MQTT_PORT", "eighteen")
    with pytest.raises(ValueError):
        AppConfig()
