"""Centralized exception hierarchy for the grow chamber decision layer.

All domain and service exceptions inherit from :class:`GrowChamberError` so
that callers can catch a single base class when they need a broad safety net,
yet still match on specific subclasses where narrower handling is appropriate.

Blueprint-level error handling (see ``growchamber/utils/http.safe_route``)
maps these to the correct HTTP status codes automatically.

Expected domain conditions (missing sensor, stale feed, disabled or malformed
rule during evaluation) are *not* exceptions; they surface as ``None`` values,
watchdog severities and skipped rules.

Hierarchy
---------
::

    GrowChamberError (base: 500)
    ├── ValidationError          (400: bad input from caller)
    ├── NotFoundError            (404: entity does not exist)
    ├── ServiceError             (500: business-logic failure)
    │   └── ExternalServiceError (502: rule API / network)
    ├── DeviceError              (503: command could not reach the controller)
    └── ConfigurationError       (500: missing / invalid config)
        └── RuleConfigurationError (400: rule set rejected at load time)
"""

from __future__ import annotations


class GrowChamberError(Exception):
    """Base exception for all grow chamber application errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side, **not** leaked to
        the HTTP client unless the exception class opts in).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(GrowChamberError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class NotFoundError(GrowChamberError):
    """Requested entity does not exist (HTTP 404)."""

    http_status: int = 404


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(GrowChamberError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500


class ExternalServiceError(ServiceError):
    """Rule configuration API or other network dependency failure (HTTP 502)."""

    http_status: int = 502


class DeviceError(GrowChamberError):
    """A control command could not be delivered to the controller (HTTP 503)."""

    http_status: int = 503


class ConfigurationError(GrowChamberError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500


class RuleConfigurationError(ConfigurationError):
    """Automation rule set rejected while loading it (HTTP 400)."""

    http_status: int = 400
