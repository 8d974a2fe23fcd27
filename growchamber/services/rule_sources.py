"""
Rule configuration sources.

Rules are owned by an external rule-management API; this process only reads
them and writes back execution bookkeeping. ``StaticRuleSource`` serves an
in-memory list (default, tests and the reload endpoint); ``HttpRuleSource``
talks to the rule API with ``requests``.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Mapping, Optional, Protocol

import requests

from growchamber.constants import Timeouts
from growchamber.domain.automation import AutomationRule
from growchamber.domain.exceptions import ExternalServiceError
from growchamber.utils.cache import TTLCache

logger = logging.getLogger(__name__)

_RULES_CACHE_KEY = "rules"


class RuleSource(Protocol):
    def list_rules(self) -> list[Any]:
        ...

    def record_execution(self, rule: AutomationRule) -> None:
        ...


class StaticRuleSource:
    """In-memory rule list. Rules may be raw mappings or AutomationRule objects."""

    def __init__(self, rules: Optional[Iterable[Any]] = None):
        self._rules: list[Any] = list(rules or [])
        self._lock = threading.Lock()

    def list_rules(self) -> list[Any]:
        with self._lock:
            return list(self._rules)

    def replace(self, rules: Iterable[Any]) -> None:
        with self._lock:
            self._rules = list(rules)

    def record_execution(self, rule: AutomationRule) -> None:
        with self._lock:
            for index, existing in enumerate(self._rules):
                existing_id = existing.id if isinstance(existing, AutomationRule) else _raw_id(existing)
                if existing_id == rule.id:
                    self._rules[index] = rule
                    return


def _raw_id(raw: Any) -> Optional[str]:
    if not isinstance(raw, Mapping):
        return None
    value = raw.get("id", raw.get("_id", raw.get("rule_id")))
    return str(value) if value is not None else None


class HttpRuleSource:
    """
    Rule API client.

    ``GET {url}`` returns the rule list, either bare or wrapped as
    ``{"data": [...]}``; ``PUT {url}/{id}`` stores execution bookkeeping.
    Transport and HTTP errors raise ExternalServiceError so the caller can
    keep its last good rule set.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = Timeouts.HTTP_REQUEST_TIMEOUT,
        cache_seconds: float = 30,
        session: Optional[requests.Session] = None,
    ):
        if not url:
            raise ValueError("HttpRuleSource requires a URL")
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._cache = TTLCache(enabled=cache_seconds > 0, ttl_seconds=cache_seconds, maxsize=1)

    def list_rules(self) -> list[Any]:
        return self._cache.get(_RULES_CACHE_KEY, self._fetch_rules)

    def invalidate(self) -> None:
        self._cache.invalidate(_RULES_CACHE_KEY)

    def _fetch_rules(self) -> list[Any]:
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as exc:
            raise ExternalServiceError(
                f"Rule API request failed: {exc}", detail={"url": self.url}
            ) from exc
        except ValueError as exc:
            raise ExternalServiceError("Rule API returned invalid JSON", detail={"url": self.url}) from exc

        rules = body.get("data") if isinstance(body, Mapping) else body
        if not isinstance(rules, list):
            raise ExternalServiceError(
                "Rule API response has no rule list", detail={"url": self.url, "type": type(body).__name__}
            )
        logger.debug("Fetched %d rules from %s", len(rules), self.url)
        return rules

    def record_execution(self, rule: AutomationRule) -> None:
        body = {
            "executionCount": rule.execution_count,
            "lastExecuted": rule.last_executed.isoformat() if rule.last_executed else None,
            "lastResult": rule.last_result.value if rule.last_result else None,
        }
        target = f"{self.url}/{rule.id}"
        try:
            response = self.session.put(target, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise ExternalServiceError(
                f"Could not store execution of rule {rule.id}: {exc}", detail={"url": target}
            ) from exc
        self.invalidate()
