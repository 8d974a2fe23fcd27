"""
Automation API
==============

Rules are authored elsewhere; these endpoints inspect the loaded rule set,
dry-run a rule and force a reload.

Routes:
- GET  /api/v1/automation/rules - Loaded rules, highest priority first
- GET  /api/v1/automation/rules/<rule_id> - One loaded rule
- GET  /api/v1/automation/rules/<rule_id>/test-results - Recorded evaluations of a test-mode rule
- POST /api/v1/automation/simulate - Dry-run a rule against the live state
- POST /api/v1/automation/reload - Reload rules (from the body or the rule source)
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response
from pydantic import ValidationError as PydanticValidationError

from growchamber.blueprints.api._common import get_container as _container
from growchamber.blueprints.api._common import get_json as _json
from growchamber.blueprints.api._common import require_json as _require_json
from growchamber.blueprints.api._common import success as _success
from growchamber.constants import canonical_metric
from growchamber.domain.exceptions import ValidationError
from growchamber.schemas.automation import RuleSimulationRequest
from growchamber.services.rule_sources import StaticRuleSource
from growchamber.utils.http import safe_route

logger = logging.getLogger("automation_api")

automation_api = Blueprint("automation_api", __name__)


@automation_api.get("/rules")
@safe_route("Failed to list automation rules")
def list_rules() -> Response:
    rules = sorted(_container().pipeline.rules, key=lambda r: -r.priority)
    return _success({"count": len(rules), "rules": [r.to_dict() for r in rules]})


@automation_api.get("/rules/<rule_id>")
@safe_route("Failed to get automation rule")
def get_rule(rule_id: str) -> Response:
    return _success(_container().pipeline.get_rule(rule_id).to_dict())


@automation_api.get("/rules/<rule_id>/test-results")
@safe_route("Failed to get automation rule test results")
def get_rule_test_results(rule_id: str) -> Response:
    records = _container().pipeline.trial_results(rule_id)
    return _success({"rule_id": rule_id, "count": len(records), "results": [r.to_dict() for r in records]})


@automation_api.post("/simulate")
@safe_route("Failed to simulate automation rule")
def simulate_rule() -> Response:
    """
    Body: {"rule": {...}, "metrics": {"temperature": 29.5}, "at": "2026-01-01T23:30:00+01:00"}

    ``metrics`` override the live readings; ``at`` overrides the clock.
    Nothing is executed and no bookkeeping changes.
    """
    body = _require_json()
    try:
        sim = RuleSimulationRequest.model_validate(body)
    except PydanticValidationError as exc:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]} for err in exc.errors()[:10]
        ]
        raise ValidationError("Invalid automation rule", detail={"errors": errors}) from None

    metrics = {canonical_metric(name): value for name, value in sim.metrics.items()}
    evaluation = _container().pipeline.simulate(sim.rule.to_domain(), metrics=metrics, now=sim.at)
    return _success(evaluation.to_dict())


@automation_api.post("/reload")
@safe_route("Failed to reload automation rules")
def reload_rules() -> Response:
    """
    Body (optional): {"rules": [...]}

    With ``rules`` the given set is installed; otherwise the rule source is
    queried again. Malformed rules are skipped and reported in the log.
    """
    container = _container()
    body = _json()
    if "rules" in body:
        raw_rules = body["rules"]
        if not isinstance(raw_rules, list):
            raise ValidationError("'rules' must be a list")
        rules = container.pipeline.set_rules(raw_rules)
        if isinstance(container.rule_source, StaticRuleSource):
            container.rule_source.replace(raw_rules)
    else:
        invalidate = getattr(container.rule_source, "invalidate", None)
        if invalidate is not None:
            invalidate()
        rules = container.pipeline.set_rules(container.rule_source.list_rules())

    logger.info("Automation rules reloaded via API: %d loaded", len(rules))
    return _success(
        {"count": len(rules), "enabled": sum(1 for r in rules if r.enabled), "rules": [r.id for r in rules]},
        message="Rules reloaded",
    )
