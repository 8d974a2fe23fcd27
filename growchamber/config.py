"""
Configuration for the Grow Chamber Decision Layer
=================================================
Runtime settings for telemetry ingestion, staleness watchdog, automation
rules and advisories. Everything is overridable through ``GROWCHAMBER_*``
environment variables.
Setups the logging configuration as well.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from growchamber.domain.exceptions import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_ENV", "development"))
    secret_key: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_SECRET_KEY", "GrowChamberDevSecretKey"))
    DEBUG: bool = field(default_factory=lambda: _env_bool("GROWCHAMBER_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_LOG_LEVEL", "INFO"))
    log_file_path: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_LOG_FILE", "logs/growchamber.log"))

    # MQTT transport
    enable_mqtt: bool = field(default_factory=lambda: _env_bool("GROWCHAMBER_ENABLE_MQTT", True))
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("GROWCHAMBER_MQTT_PORT", 1883))
    mqtt_client_id: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_MQTT_CLIENT_ID", "growchamber-core"))
    mqtt_topic_prefix: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_MQTT_PREFIX", "grow_drexl_v2"))
    mqtt_nutrient_prefix: str = field(
        default_factory=lambda: os.getenv("GROWCHAMBER_MQTT_NUTRIENT_PREFIX", "grow/esp32/nutrients")
    )
    socketio_cors_origins: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_SOCKETIO_CORS", "*"))

    eventbus_queue_size: int = field(default_factory=lambda: _env_int("GROWCHAMBER_EVENTBUS_QUEUE_SIZE", 1024))
    eventbus_worker_count: int = field(default_factory=lambda: _env_int("GROWCHAMBER_EVENTBUS_WORKER_COUNT", 2))

    # Staleness watchdog
    watchdog_tick_seconds: float = field(default_factory=lambda: _env_float("GROWCHAMBER_WATCHDOG_TICK", 5.0))
    watchdog_warning_seconds: float = field(default_factory=lambda: _env_float("GROWCHAMBER_WATCHDOG_WARNING", 30.0))
    watchdog_critical_seconds: float = field(
        default_factory=lambda: _env_float("GROWCHAMBER_WATCHDOG_CRITICAL", 300.0)
    )
    alert_cooldown_seconds: int = field(default_factory=lambda: _env_int("GROWCHAMBER_ALERT_COOLDOWN", 600))

    # Fusion / derivations
    default_growth_phase: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_GROWTH_PHASE", "vegetative"))
    # Unset: photoperiod follows the growth phase (18 h vegetative, 12 h flowering)
    light_hours: float | None = field(
        default_factory=lambda: _env_float("GROWCHAMBER_LIGHT_HOURS", 0.0) or None
    )
    soil_dry_value: int = field(default_factory=lambda: _env_int("GROWCHAMBER_SOIL_DRY", 4095))
    soil_wet_value: int = field(default_factory=lambda: _env_int("GROWCHAMBER_SOIL_WET", 1200))

    # Automation rules
    max_rules: int = field(default_factory=lambda: _env_int("GROWCHAMBER_MAX_RULES", 200))
    max_conditions_per_rule: int = field(default_factory=lambda: _env_int("GROWCHAMBER_MAX_CONDITIONS", 20))
    max_actions_per_rule: int = field(default_factory=lambda: _env_int("GROWCHAMBER_MAX_ACTIONS", 20))
    rules_url: str = field(default_factory=lambda: os.getenv("GROWCHAMBER_RULES_URL", ""))
    rules_refresh_seconds: int = field(default_factory=lambda: _env_int("GROWCHAMBER_RULES_REFRESH", 60))
    http_timeout_seconds: int = field(default_factory=lambda: _env_int("GROWCHAMBER_HTTP_TIMEOUT", 10))
    enable_action_dispatch: bool = field(default_factory=lambda: _env_bool("GROWCHAMBER_ENABLE_DISPATCH", True))

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.watchdog_tick_seconds <= 0:
            raise ConfigurationError("Watchdog tick interval must be positive")
        if self.watchdog_warning_seconds <= 0 or self.watchdog_critical_seconds <= 0:
            raise ConfigurationError("Watchdog thresholds must be positive")
        if self.watchdog_warning_seconds >= self.watchdog_critical_seconds:
            raise ConfigurationError(
                "Watchdog warning threshold must be lower than the critical threshold",
                detail={
                    "warning_seconds": self.watchdog_warning_seconds,
                    "critical_seconds": self.watchdog_critical_seconds,
                },
            )
        if self.soil_wet_value >= self.soil_dry_value:
            raise ConfigurationError("Soil calibration wet value must be below the dry value")
        if self.light_hours is not None and not 0 < self.light_hours <= 24:
            raise ConfigurationError("Light hours must be within (0, 24]")

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "SECRET_KEY": self.secret_key,
            "MQTT_BROKER_HOST": self.mqtt_broker_host,
            "MQTT_BROKER_PORT": self.mqtt_broker_port,
            "SOCKETIO_CORS_ALLOWED_ORIGINS": self.socketio_cors_origins,
            "DEBUG": self.DEBUG,
        }


def setup_logging(debug: bool = False, *, log_file: str = "logs/growchamber.log") -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "growchamber_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "growchamber_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "growchamber_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file and log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "growchamber_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"growchamber_console", "growchamber_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("GROWCHAMBER_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    # Socket.IO / Engine.IO polling logs are noisy at INFO
    if _env_bool("GROWCHAMBER_SILENCE_SOCKETIO", True):
        logging.getLogger("socketio").setLevel(logging.WARNING)
        logging.getLogger("engineio").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    return AppConfig()
