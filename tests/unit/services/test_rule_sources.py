from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
import requests

from growchamber.domain.automation import AutomationRule, DeviceAction, SensorCondition
from growchamber.domain.exceptions import ExternalServiceError
from growchamber.enums.automation import ComparisonOperator, DeviceCommand, ExecutionResult
from growchamber.services.rule_sources import HttpRuleSource, StaticRuleSource

RULES_URL = "http://rules.local/api/automation/rules/"


def response(body=None, status=200, json_error=None):
    resp = Mock()
    resp.status_code = status
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = body
    return resp


def executed_rule(**overrides):
    values = dict(
        id="vent-on-heat",
        name="Vent",
        conditions=(SensorCondition("temperature", ComparisonOperator.GT, 28),),
        actions=(DeviceAction("fan", DeviceCommand.ON),),
        execution_count=3,
        last_executed=datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc),
        last_result=ExecutionResult.SUCCESS,
    )
    values.update(overrides)
    return AutomationRule(**values)


class TestHttpRuleSource:
    def test_bare_list_body(self, rule_factory):
        session = Mock()
        session.get.return_value = response([rule_factory()])
        source = HttpRuleSource(RULES_URL, session=session, timeout=3)

        assert source.list_rules() == [rule_factory()]
        session.get.assert_called_once_with("http://rules.local/api/automation/rules", timeout=3)

    def test_data_envelope_body(self, rule_factory):
        session = Mock()
        session.get.return_value = response({"success": True, "data": [rule_factory("a"), rule_factory("b")]})
        assert [r["id"] for r in HttpRuleSource(RULES_URL, session=session).list_rules()] == ["a", "b"]

    def test_rules_are_cached_until_invalidated(self, rule_factory):
        session = Mock()
        session.get.return_value = response([rule_factory()])
        source = HttpRuleSource(RULES_URL, session=session, cache_seconds=30)

        source.list_rules()
        source.list_rules()
        assert session.get.call_count == 1
        source.invalidate()
        source.list_rules()
        assert session.get.call_count == 2

    @pytest.mark.parametrize(
        "resp",
        [
            response(status=503),
            response(json_error=ValueError("no json")),
            response({"data": {"id": "not-a-list"}}),
        ],
    )
    def test_bad_responses_raise_external_service_error(self, resp):
        session = Mock()
        session.get.return_value = resp
        with pytest.raises(ExternalServiceError):
            HttpRuleSource(RULES_URL, session=session, cache_seconds=0).list_rules()

    def test_connection_error_raises_external_service_error(self):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(ExternalServiceError) as excinfo:
            HttpRuleSource(RULES_URL, session=session).list_rules()
        assert excinfo.value.http_status == 502

    def test_record_execution_puts_bookkeeping(self):
        session = Mock()
        session.put.return_value = response({})
        source = HttpRuleSource(RULES_URL, session=session, timeout=3)

        source.record_execution(executed_rule())

        session.put.assert_called_once_with(
            "http://rules.local/api/automation/rules/vent-on-heat",
            json={"executionCount": 3, "lastExecuted": "2026-03-02T12:00:00+00:00", "lastResult": "success"},
            timeout=3,
        )

    def test_record_execution_failure_raises(self):
        session = Mock()
        session.put.return_value = response(status=500)
        with pytest.raises(ExternalServiceError):
            HttpRuleSource(RULES_URL, session=session).record_execution(executed_rule())

    def test_url_is_required(self):
        with pytest.raises(ValueError):
            HttpRuleSource("")


class TestStaticRuleSource:
    def test_replace_and_list(self, rule_factory):
        source = StaticRuleSource([rule_factory("a")])
        source.replace([rule_factory("b")])
        assert [r["id"] for r in source.list_rules()] == ["b"]

    def test_record_execution_replaces_matching_rule(self, rule_factory):
        source = StaticRuleSource([rule_factory("vent-on-heat"), rule_factory("other")])
        rule = executed_rule()
        source.record_execution(rule)
        rules = source.list_rules()
        assert rules[0] is rule
        assert rules[1]["id"] == "other"
