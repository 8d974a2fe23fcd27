"""
Live State API
==============

Read-only views of the current live state plus the growth phase switch.

Routes:
- GET /api/v1/live/state - Whole live state record
- GET /api/v1/live/watchdog - Freshness of every telemetry source
- GET /api/v1/live/recommendations - Current advisories, most urgent first
- GET /api/v1/live/actions - Actions triggered by the last evaluation
- GET /api/v1/live/alerts - Recent alerts, newest first
- PUT /api/v1/live/phase - Switch the growth phase
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from growchamber.blueprints.api._common import get_pipeline as _pipeline
from growchamber.blueprints.api._common import get_store as _store
from growchamber.blueprints.api._common import require_json as _require_json
from growchamber.blueprints.api._common import success as _success
from growchamber.domain.exceptions import ValidationError
from growchamber.enums.common import GrowthPhase
from growchamber.schemas.events import (
    build_alert_payload,
    build_live_state_payload,
    build_recommendation_payload,
    build_triggered_action_payload,
    build_watchdog_payload,
)
from growchamber.utils.http import safe_route

logger = logging.getLogger("live_api")

live_api = Blueprint("live_api", __name__)


@live_api.get("/state")
@safe_route("Failed to get live state")
def get_live_state() -> Response:
    state = _store().current()
    return _success(build_live_state_payload(state).model_dump(mode="json"))


@live_api.get("/watchdog")
@safe_route("Failed to get watchdog status")
def get_watchdog() -> Response:
    state = _store().current()
    return _success({source.value: build_watchdog_payload(status).model_dump() for source, status in state.watchdog.items()})


@live_api.get("/recommendations")
@safe_route("Failed to get recommendations")
def get_recommendations() -> Response:
    state = _store().current()
    return _success([build_recommendation_payload(r).model_dump() for r in state.recommendations])


@live_api.get("/actions")
@safe_route("Failed to get triggered actions")
def get_triggered_actions() -> Response:
    state = _store().current()
    return _success([build_triggered_action_payload(t).model_dump() for t in state.triggered_actions])


@live_api.get("/alerts")
@safe_route("Failed to get alerts")
def get_alerts() -> Response:
    state = _store().current()
    return _success([build_alert_payload(a).model_dump() for a in state.alerts])


@live_api.put("/phase")
@safe_route("Failed to set growth phase")
def set_growth_phase() -> Response:
    """
    Body: {"phase": "seedling|vegetative|flowering|late_flowering"}
    """
    body = _require_json()
    try:
        phase = GrowthPhase(str(body.get("phase", "")).lower())
    except ValueError:
        raise ValidationError(
            "Unknown growth phase", detail={"allowed": [p.value for p in GrowthPhase]}
        ) from None
    state = _pipeline().set_growth_phase(phase)
    return _success(build_live_state_payload(state).model_dump(mode="json"), message=f"Growth phase set to {phase.value}")
