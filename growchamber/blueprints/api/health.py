"""
Health API Blueprint
====================

Routes:
- GET /api/v1/health/ping - Basic liveness check
- GET /api/v1/health/system - Pipeline, transport and event bus statistics
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from growchamber.blueprints.api._common import get_container as _container
from growchamber.blueprints.api._common import success as _success
from growchamber.utils.http import safe_route
from growchamber.utils.time import iso_now

logger = logging.getLogger("health_api")

health_api = Blueprint("health_api", __name__)


@health_api.get("/ping")
@safe_route("Failed to handle ping request")
def ping() -> Response:
    """
    Basic liveness check for monitoring tools.

    Returns:
        {"status": "ok", "timestamp": "..."}
    """
    return _success({"status": "ok", "timestamp": iso_now()})


@health_api.get("/system")
@safe_route("Failed to get system health")
def get_system_health() -> Response:
    """
    Returns:
        {
            "status": "healthy|degraded|critical",
            "watchdog": {...},
            "pipeline": {...},
            "mqtt": {...} | null,
            "event_bus": {...},
            "timestamp": "..."
        }
    """
    container = _container()
    state = container.store.current()
    controller = state.controller_status

    if controller.is_trustworthy:
        status = "healthy"
    elif controller.condition in ("lost", "transport_down"):
        status = "critical"
    else:
        status = "degraded"

    mqtt_client = container.mqtt_client
    return _success(
        {
            "status": status,
            "watchdog": {source.value: s.to_dict() for source, s in state.watchdog.items()},
            "pipeline": container.pipeline.get_stats(),
            "ingest": container.ingest_service.get_stats() if container.ingest_service else None,
            "mqtt": mqtt_client.health_status.to_dict() if mqtt_client else None,
            "event_bus": container.event_bus.get_metrics(),
            "timestamp": iso_now(),
        }
    )
