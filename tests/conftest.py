"""
Shared test fixtures for the growchamber test suite.

Provides:
- A controllable clock for time-dependent services
- A fully wired TelemetryPipeline (no MQTT, no threads)
- Sample controller payloads and rule configurations

Usage:
    def test_example(pipeline, controller_payload):
        pipeline.apply_sensor_data(controller_payload)
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from growchamber.hardware.sensors.processors.fusion_processor import SensorFusionProcessor
from growchamber.services.alert_service import EnvironmentalAlertService
from growchamber.services.live_state_store import LiveStateStore
from growchamber.services.recommendation_service import RecommendationGenerator
from growchamber.services.rule_engine import RuleEngine
from growchamber.services.rule_sources import StaticRuleSource
from growchamber.services.telemetry_pipeline import TelemetryPipeline
from growchamber.services.watchdog_service import StalenessWatchdog

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("growchamber").setLevel(logging.WARNING)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    # 2026-03-02 is a Monday
    return FakeClock()


@pytest.fixture()
def rule_engine(clock) -> RuleEngine:
    return RuleEngine(local_tz=timezone.utc, clock=clock)


@pytest.fixture()
def pipeline(clock, rule_engine) -> TelemetryPipeline:
    """Pipeline over an in-memory store with a static rule source."""
    store = LiveStateStore(clock=clock)
    watchdog = StalenessWatchdog(clock=clock)
    pipe = TelemetryPipeline(
        store,
        fusion=SensorFusionProcessor(),
        watchdog=watchdog,
        rule_engine=rule_engine,
        recommender=RecommendationGenerator(local_tz=timezone.utc),
        alerts=EnvironmentalAlertService(cooldown_seconds=300, clock=clock),
        rule_source=StaticRuleSource(),
        clock=clock,
    )
    pipe.apply_transport_status(True)
    return pipe


@pytest.fixture()
def controller_payload() -> dict[str, Any]:
    return {
        "temp_bottom": 30,
        "temp_middle": 29,
        "temp_top": 31,
        "humidity_bottom": 75,
        "humidity_middle": 74,
        "humidity_top": 76,
        "soil": [2600, 0, 55, 0, 0, 0],
        "lux": 20000,
        "tankLevel": 64,
    }


def make_rule(rule_id: str = "vent-on-heat", **overrides: Any) -> dict[str, Any]:
    """Rule configuration as served by the rule API."""
    rule: dict[str, Any] = {
        "id": rule_id,
        "name": rule_id.replace("-", " ").title(),
        "enabled": True,
        "priority": 50,
        "conditionLogic": "AND",
        "conditions": [{"type": "sensor", "metric": "temperature", "operator": ">", "threshold": 28}],
        "actions": [{"type": "device", "device": "fan", "command": "ON"}],
    }
    rule.update(overrides)
    return rule


@pytest.fixture()
def rule_factory():
    """Build rule configurations: ``rule_factory("id", priority=80)``."""
    return make_rule


