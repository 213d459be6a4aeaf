"""Tests for hook validation, registration and capture rules."""

import re

import pytest

from request_capture.core.exceptions import HookValidationError
from request_capture.hooks.hook import Hook
from request_capture.schemas.records import CapturedRequest, CapturedResponse


def _request(url="https://api.example.com/users", method="GET", headers=None):
  return CapturedRequest(url=url, method=method, headers=headers or {})


def _response(url="https://api.example.com/users", status=200, headers=None):
  return CapturedResponse(url=url, status=status, headers=headers or {})


class TestRegistration:

  def test_register_valid_hook(self, registry, api_hook):
    assert registry.register_hook(api_hook) is True
    assert registry.hook_count == 1
    assert registry.pattern_count == 1
    assert len(registry) == 1

  def test_reregistering_a_hook_drops_its_old_patterns(self, registry):
    registry.register_hook({"name": "api", "url_patterns": ["https://old.example.com/*"], "capture_rules": {}})
    registry.register_hook({
      "name": "api",
      "url_patterns": ["https://new.example.com/*"],
      "capture_rules": {"methods": ["POST"]},
    })

    assert registry.find_matching_hooks("https://old.example.com/x") == []
    [hook] = registry.find_matching_hooks("https://new.example.com/x")
    assert hook.rules.methods == ["POST"]
    assert registry.pattern_count == 1
    assert registry.hook_count == 1

  @pytest.mark.parametrize("config", [
    {"name": "no-patterns", "url_patterns": [], "capture_rules": {}},
    {"name": "no-rules", "url_patterns": ["https://x.com/*"]},
    {"name": "", "url_patterns": ["https://x.com/*"], "capture_rules": {}},
    {"name": "bad-pattern", "url_patterns": [123], "capture_rules": {}},
    {"url_patterns": ["https://x.com/*"], "capture_rules": {}},
    "not a mapping",
  ])
  def test_invalid_hooks_are_rejected(self, registry, config):
    assert registry.register_hook(config) is False
    assert registry.hook_count == 0

  def test_hook_validation_error_carries_details(self):
    with pytest.raises(HookValidationError) as exc_info:
      Hook.from_config({"name": "broken", "url_patterns": []})

    assert exc_info.value.error_code == "HOOK_VALIDATION_ERROR"
    assert exc_info.value.details["errors"]

  def test_camel_case_config_is_accepted(self, registry):
    def capture(request, session_id):
      return {"endpoint": request.url}

    config = {
      "name": "ported",
      "urlPatterns": ["https://api.example.com/*"],
      "captureRules": {"statusCodes": [201], "captureResponseBody": False},
      "customRequestCapture": capture,
    }

    assert registry.register_hook(config)
    hook = registry.find_matching_hooks("https://api.example.com/items")[0]
    assert hook.rules.status_codes == [201]
    assert hook.captures_response_body is False
    assert hook.config.on_request is capture

  def test_methods_are_upper_cased(self, registry):
    registry.register_hook({
      "name": "lower",
      "url_patterns": ["https://api.example.com/*"],
      "capture_rules": {"methods": ["get", "post"]},
    })
    hook = registry.hooks()[0]
    assert hook.rules.methods == ["GET", "POST"]

  def test_clear_removes_everything(self, registry, api_hook):
    registry.register_hook(api_hook)
    registry.clear()
    assert registry.hook_count == 0
    assert registry.find_matching_hooks("https://api.example.com/users") == []


class TestMatching:

  def test_matches_are_deduplicated_by_hook_name(self, registry):
    registry.register_hook({
      "name": "multi",
      "url_patterns": ["https://api.example.com/*", "https://api.example.com/v1", re.compile("example")],
      "capture_rules": {},
    })

    matches = registry.find_matching_hooks("https://api.example.com/v1/users")
    assert [hook.name for hook in matches] == ["multi"]

  def test_multiple_hooks_match_in_registration_order(self, registry):
    registry.register_hook({"name": "first", "url_patterns": ["https://*.example.com/*"], "capture_rules": {}})
    registry.register_hook({"name": "second", "url_patterns": ["https://api.example.com/*"], "capture_rules": {}})

    matches = registry.find_matching_hooks("https://api.example.com/users")
    assert [hook.name for hook in matches] == ["first", "second"]

  def test_same_pattern_last_write_wins(self, registry):
    pattern = "https://api.example.com/*"
    registry.register_hook({"name": "old", "url_patterns": [pattern], "capture_rules": {}})
    registry.register_hook({"name": "new", "url_patterns": [pattern], "capture_rules": {}})

    assert [hook.name for hook in registry.find_matching_hooks("https://api.example.com/x")] == ["new"]
    assert registry.pattern_count == 1

  def test_no_match(self, registry, api_hook):
    registry.register_hook(api_hook)
    assert registry.find_matching_hooks("https://cdn.example.com/app.js") == []

  def test_summary_groups_patterns_by_hook(self, registry):
    registry.register_hook({
      "name": "grouped",
      "description": "two patterns",
      "enabled": False,
      "url_patterns": ["https://a.example.com/*", re.compile("b\\.example")],
      "capture_rules": {},
    })

    [summary] = registry.summary()
    assert summary.name == "grouped"
    assert summary.enabled is False
    assert summary.patterns == ["https://a.example.com/*", "/b\\.example/"]


class TestCaptureRules:
  """Method/status scenario: GET 200 captured, POST and 404 rejected."""

  @pytest.fixture
  def hook(self, registry, api_hook):
    registry.register_hook(api_hook)
    return registry.find_matching_hooks("https://api.example.com/users")[0]

  def test_get_request_is_captured(self, registry, hook):
    assert registry.should_capture_request(_request(method="GET"), hook)

  def test_post_request_is_rejected(self, registry, hook):
    assert not registry.should_capture_request(_request(method="POST"), hook)

  def test_200_response_is_captured(self, registry, hook):
    assert registry.should_capture_response(_response(status=200), hook)

  def test_404_response_is_rejected(self, registry, hook):
    assert not registry.should_capture_response(_response(status=404), hook)

  def test_empty_lists_capture_everything(self):
    hook = Hook.from_config({
      "name": "all",
      "url_patterns": ["https://*"],
      "capture_rules": {"methods": [], "status_codes": []},
    })
    assert hook.filter_request(_request(method="DELETE"))
    assert hook.filter_response(_response(status=500))

  def test_request_and_response_url_patterns(self):
    hook = Hook.from_config({
      "name": "scoped",
      "url_patterns": ["https://api.example.com/*"],
      "capture_rules": {
        "request_url_patterns": ["https://api.example.com/v2/*"],
        "response_url_patterns": [re.compile(r"/v2/orders")],
      },
    })
    assert hook.filter_request(_request(url="https://api.example.com/v2/orders"))
    assert not hook.filter_request(_request(url="https://api.example.com/v1/orders"))
    assert hook.filter_response(_response(url="https://api.example.com/v2/orders/7"))
    assert not hook.filter_response(_response(url="https://api.example.com/v2/users"))

  def test_required_headers_match_case_insensitively_by_substring(self):
    hook = Hook.from_config({
      "name": "json-only",
      "url_patterns": ["https://api.example.com/*"],
      "capture_rules": {
        "request_headers": {"Authorization": ""},
        "response_headers": {"Content-Type": "json"},
      },
    })
    assert hook.filter_request(_request(headers={"authorization": "Bearer abc"}))
    assert not hook.filter_request(_request(headers={}))
    assert hook.filter_response(_response(headers={"content-type": "application/json; charset=utf-8"}))
    assert not hook.filter_response(_response(headers={"content-type": "text/html"}))

  def test_capture_responses_false_blocks_all_responses(self):
    hook = Hook.from_config({
      "name": "requests-only",
      "url_patterns": ["https://api.example.com/*"],
      "capture_rules": {"capture_responses": False},
    })
    assert hook.filter_request(_request())
    assert not hook.filter_response(_response())
