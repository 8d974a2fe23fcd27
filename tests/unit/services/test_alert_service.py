from datetime import timedelta

import pytest

from growchamber.domain.conditions import ReservoirConditions
from growchamber.domain.snapshot import RawSnapshot
from growchamber.domain.watchdog import WatchdogStatus
from growchamber.enums.common import RecommendationSeverity, SourceState, TelemetrySource
from growchamber.services.alert_service import EnvironmentalAlertService


@pytest.fixture()
def alerts(clock):
    return EnvironmentalAlertService(cooldown_seconds=300, clock=clock)


def snapshot(clock, **payload):
    return RawSnapshot.from_payload(payload, received_at=clock.now)


def keys(raised):
    return [a.key for a in raised]


class TestSnapshotAlerts:
    def test_normal_readings_raise_nothing(self, alerts, clock, controller_payload):
        assert alerts.check_snapshot(snapshot(clock, **controller_payload)) == []

    def test_low_tank(self, alerts, clock):
        raised = alerts.check_snapshot(snapshot(clock, tankLevel=7))
        assert keys(raised) == ["tank_low"]
        assert raised[0].severity == RecommendationSeverity.WARNING
        assert raised[0].value == 7
        assert raised[0].raised_at == clock.now

    def test_empty_tank_reading_is_a_missing_sensor(self, alerts, clock):
        assert alerts.check_snapshot(snapshot(clock, tankLevel=0)) == []

    def test_fused_reservoir_takes_precedence(self, alerts, clock):
        raised = alerts.check_snapshot(
            snapshot(clock, tankLevel=80), ReservoirConditions(tank_level_percent=4, eco2_ppm=2500)
        )
        assert keys(raised) == ["tank_low", "eco2_high"]

    def test_mold_risk_uses_highest_probe(self, alerts, clock):
        raised = alerts.check_snapshot(snapshot(clock, humidity_bottom=70, humidity_middle=0, humidity_top=88))
        assert keys(raised) == ["humidity_high"]
        assert raised[0].value == 88

    def test_eco2_high_is_critical(self, alerts, clock):
        raised = alerts.check_snapshot(snapshot(clock, eco2=2400))
        assert keys(raised) == ["eco2_high"]
        assert raised[0].severity == RecommendationSeverity.CRITICAL

    def test_frost_ignores_zero_and_disconnected_probes(self, alerts, clock):
        raised = alerts.check_snapshot(snapshot(clock, temp_bottom=0, temp_middle=-127, temp_top=3.5))
        assert keys(raised) == ["temp_frost"]
        assert raised[0].value == 3.5

    def test_all_probes_zero_means_sensor_bus_fault(self, alerts, clock):
        raised = alerts.check_snapshot(snapshot(clock, temp=0, temp_bottom=0, temp_middle=0, temp_top=0))
        assert keys(raised) == ["sensors_offline"]
        assert raised[0].severity == RecommendationSeverity.CRITICAL

    def test_combined_reading_without_probes_is_not_a_fault(self, alerts, clock):
        assert alerts.check_snapshot(snapshot(clock, temp=23.5, humidity=55)) == []


class TestCooldown:
    def test_same_key_is_suppressed_within_cooldown(self, alerts, clock):
        assert keys(alerts.check_snapshot(snapshot(clock, tankLevel=5))) == ["tank_low"]
        clock.advance(120)
        assert alerts.check_snapshot(snapshot(clock, tankLevel=5)) == []
        assert alerts.get_stats() == {"raised": 1, "suppressed": 1}

    def test_alert_repeats_after_cooldown(self, alerts, clock):
        alerts.check_snapshot(snapshot(clock, tankLevel=5))
        clock.advance(301)
        assert keys(alerts.check_snapshot(snapshot(clock, tankLevel=5))) == ["tank_low"]

    def test_keys_are_throttled_independently(self, alerts, clock):
        alerts.check_snapshot(snapshot(clock, tankLevel=5))
        assert keys(alerts.check_snapshot(snapshot(clock, tankLevel=5, eco2=2500))) == ["eco2_high"]

    def test_reset_clears_a_single_key(self, alerts, clock):
        alerts.check_snapshot(snapshot(clock, tankLevel=5, eco2=2500))
        alerts.reset("tank_low")
        assert keys(alerts.check_snapshot(snapshot(clock, tankLevel=5, eco2=2500))) == ["tank_low"]

    def test_zero_cooldown_never_suppresses(self, clock):
        service = EnvironmentalAlertService(cooldown_seconds=0, clock=clock)
        service.check_snapshot(snapshot(clock, tankLevel=5))
        assert keys(service.check_snapshot(snapshot(clock, tankLevel=5))) == ["tank_low"]


class TestWatchdogAlerts:
    def test_controller_going_critical(self, alerts, clock):
        previous = WatchdogStatus(source_state=SourceState.WARNING, transport_connected=True)
        current = WatchdogStatus(source_state=SourceState.CRITICAL, transport_connected=True, elapsed_ms=301_000)
        raised = alerts.check_watchdog(previous, current)
        assert keys(raised) == ["controller_critical"]
        assert raised[0].value == pytest.approx(301)

    def test_staying_critical_does_not_realert(self, alerts, clock):
        status = WatchdogStatus(source_state=SourceState.CRITICAL, transport_connected=True, elapsed_ms=400_000)
        assert alerts.check_watchdog(status, status) == []

    def test_nutrient_source_going_critical_is_ignored(self, alerts):
        previous = WatchdogStatus(source=TelemetrySource.NUTRIENTS, source_state=SourceState.OK, transport_connected=True)
        current = WatchdogStatus(
            source=TelemetrySource.NUTRIENTS, source_state=SourceState.CRITICAL, transport_connected=True
        )
        assert alerts.check_watchdog(previous, current) == []

    def test_transport_lost(self, alerts):
        previous = WatchdogStatus(source_state=SourceState.OK, transport_connected=True)
        current = WatchdogStatus(source_state=SourceState.OK, transport_connected=False)
        assert keys(alerts.check_watchdog(previous, current)) == ["transport_lost"]


class TestExternalAlerts:
    def test_external_payload_is_normalized(self, alerts, clock):
        raised = alerts.check_external({"type": "pump_dry", "level": "CRITICAL", "message": "Pump ran dry", "value": "3"})
        assert len(raised) == 1
        alert = raised[0]
        assert alert.key == "pump_dry"
        assert alert.severity == RecommendationSeverity.CRITICAL
        assert alert.title == "Pump ran dry"
        assert alert.value == 3.0

    def test_unknown_severity_defaults_to_warning(self, alerts):
        raised = alerts.check_external({"key": "x", "severity": "bogus"})
        assert raised[0].severity == RecommendationSeverity.WARNING

    def test_external_alerts_are_throttled(self, alerts, clock):
        alerts.check_external({"key": "pump_dry", "message": "dry"})
        clock.advance(10)
        assert alerts.check_external({"key": "pump_dry", "message": "dry"}) == []

    def test_to_dict(self, alerts, clock):
        alert = alerts.check_external({"key": "door", "message": "Door open"})[0]
        assert alert.to_dict() == {
            "key": "door",
            "severity": "warning",
            "title": "Door open",
            "message": "Door open",
            "raised_at": clock.now.isoformat(),
            "value": None,
        }
