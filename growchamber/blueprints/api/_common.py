"""
Blueprint Common Utilities
==========================

Shared helper functions for all API blueprints.

Usage:
    from growchamber.blueprints.api._common import (
        get_container, get_pipeline, get_json, require_json, success,
    )
"""
from __future__ import annotations

from typing import Any

from flask import current_app, request

from growchamber.domain.exceptions import ValidationError
from growchamber.utils.http import success_response

# ============================================================================
# CONTAINER ACCESS
# ============================================================================


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_pipeline():
    return get_container().pipeline


def get_store():
    return get_container().store


# ============================================================================
# REQUEST HELPERS
# ============================================================================


def get_json() -> dict:
    """
    Get JSON request body with silent failure.

    Returns:
        dict: Parsed JSON body or empty dict if not available
    """
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def require_json() -> dict[str, Any]:
    """JSON object body, or a 400 when the body is missing or not an object."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


# ============================================================================
# RESPONSE HELPERS
# ============================================================================


def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """
    Standard success response wrapper.

    Returns:
        Flask Response with format: {"ok": true, "data": ..., "error": null}
    """
    return success_response(data, status, message=message)
