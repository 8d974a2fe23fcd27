"""
Service Container
=================

Builds and owns the decision-layer services for one process:

    MQTT -> TelemetryIngestService -> TelemetryPipeline -> LiveStateStore -> EmitterService
                                            |
                                            +-> ActionDispatcher -> MqttCommandSink

``build(config, start_runtime=False)`` wires everything without touching
the network, which is what the app factory does in tests. With
``start_runtime=True`` the MQTT connection, rule refresh and background
threads are started as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from growchamber.config import AppConfig
from growchamber.enums.common import GrowthPhase
from growchamber.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
from growchamber.hardware.sensors.processors.calibration_processor import SoilCalibrationProcessor
from growchamber.hardware.sensors.processors.fusion_processor import SensorFusionProcessor
from growchamber.services.action_dispatcher import ActionDispatcher, LoggingSink, MqttCommandSink
from growchamber.services.alert_service import EnvironmentalAlertService
from growchamber.services.live_state_store import LiveStateStore
from growchamber.services.recommendation_service import RecommendationGenerator
from growchamber.services.rule_engine import RuleEngine
from growchamber.services.rule_sources import HttpRuleSource, RuleSource, StaticRuleSource
from growchamber.services.telemetry_ingest_service import TelemetryIngestService
from growchamber.services.telemetry_pipeline import TelemetryPipeline
from growchamber.services.watchdog_service import StalenessWatchdog
from growchamber.utils.emitters import EmitterService
from growchamber.utils.event_bus import EventBus

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage core backend services."""

    config: AppConfig
    event_bus: EventBus
    store: LiveStateStore
    watchdog: StalenessWatchdog
    rule_engine: RuleEngine
    rule_source: RuleSource
    pipeline: TelemetryPipeline
    dispatcher: ActionDispatcher
    emitter: Optional[EmitterService] = None
    mqtt_client: Optional[MQTTClientWrapper] = None
    ingest_service: Optional[TelemetryIngestService] = None
    _shutdown_complete: bool = False

    @classmethod
    def build(cls, config: AppConfig, *, start_runtime: bool = False, socketio=None) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            start_runtime: Connect to the broker and start background threads
            socketio: Flask-SocketIO server for live emits (None disables them)
        """
        logger.info("Building ServiceContainer...")
        event_bus = EventBus()
        phase = GrowthPhase(config.default_growth_phase)
        store = LiveStateStore()
        store.reset(phase)

        watchdog = StalenessWatchdog(
            warning_after_seconds=config.watchdog_warning_seconds,
            critical_after_seconds=config.watchdog_critical_seconds,
        )
        rule_engine = RuleEngine(
            max_rules=config.max_rules,
            max_conditions_per_rule=config.max_conditions_per_rule,
            max_actions_per_rule=config.max_actions_per_rule,
        )
        rule_source: RuleSource
        if config.rules_url:
            rule_source = HttpRuleSource(
                config.rules_url,
                timeout=config.http_timeout_seconds,
                cache_seconds=min(30, config.rules_refresh_seconds),
            )
        else:
            rule_source = StaticRuleSource()

        fusion = SensorFusionProcessor(
            SoilCalibrationProcessor.uniform(dry=config.soil_dry_value, wet=config.soil_wet_value)
        )
        dispatcher = ActionDispatcher(LoggingSink())
        pipeline = TelemetryPipeline(
            store,
            fusion=fusion,
            watchdog=watchdog,
            rule_engine=rule_engine,
            recommender=RecommendationGenerator(),
            alerts=EnvironmentalAlertService(cooldown_seconds=config.alert_cooldown_seconds),
            rule_source=rule_source,
            dispatcher=dispatcher,
            event_bus=event_bus,
            light_hours=config.light_hours,
            tick_seconds=config.watchdog_tick_seconds,
            rules_refresh_seconds=config.rules_refresh_seconds,
        )

        emitter = None
        if socketio is not None:
            emitter = EmitterService(socketio)
            emitter.attach(store)

        container = cls(
            config=config,
            event_bus=event_bus,
            store=store,
            watchdog=watchdog,
            rule_engine=rule_engine,
            rule_source=rule_source,
            pipeline=pipeline,
            dispatcher=dispatcher,
            emitter=emitter,
        )

        if not config.enable_mqtt:
            logger.info("MQTT disabled, skipping MQTT components")
            pipeline.apply_transport_status(True)
        elif start_runtime:
            container._build_mqtt()

        if start_runtime:
            container.start()

        logger.info("ServiceContainer built successfully.")
        return container

    def _build_mqtt(self) -> None:
        config = self.config
        self.mqtt_client = MQTTClientWrapper(
            broker=config.mqtt_broker_host,
            port=config.mqtt_broker_port,
            client_id=config.mqtt_client_id,
            on_connectivity=self.pipeline.apply_transport_status,
            event_bus=self.event_bus,
            auto_connect=False,
        )
        self.ingest_service = TelemetryIngestService(
            self.mqtt_client,
            self.pipeline,
            topic_prefix=config.mqtt_topic_prefix,
            nutrient_prefix=config.mqtt_nutrient_prefix,
        )
        if config.enable_action_dispatch:
            self.dispatcher.sink = MqttCommandSink(self.mqtt_client, config.mqtt_topic_prefix)
        self.mqtt_client.connect()
        logger.info("MQTT components initialized")

    def start(self) -> None:
        """Load rules and start the dispatcher and tick threads."""
        self.pipeline.refresh_rules()
        self.dispatcher.start()
        self.pipeline.start()

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        if self._shutdown_complete:
            return
        self.pipeline.stop()
        self.dispatcher.stop()
        if self.mqtt_client is not None:
            try:
                self.mqtt_client.disconnect()
                logger.info("MQTT client disconnected")
            except Exception as e:
                logger.warning("Failed to disconnect MQTT client: %s", e)
        if self.emitter is not None:
            self.emitter.detach()
        self._shutdown_complete = True
        logger.info("ServiceContainer shut down")
