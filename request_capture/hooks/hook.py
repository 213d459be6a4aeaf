"""Capability-typed capture hook.

A Hook wraps a validated HookConfig and exposes the operations the monitors
need: URL matching, request/response filtering and the optional callbacks
whose results end up in a record's ``custom`` field.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from request_capture.core.exceptions import HookValidationError
from request_capture.hooks.patterns import any_url_matches
from request_capture.schemas.hooks import CaptureRules, HookConfig
from request_capture.schemas.records import CapturedRequest, CapturedResponse

logger = logging.getLogger(__name__)


def _headers_satisfy(headers: Mapping[str, str], required: Optional[Mapping[str, str]]) -> bool:
  """Check required headers: present (case-insensitive) and containing the expected value."""
  if not required:
    return True
  for header_name, expected_value in required.items():
    header_value = headers.get(header_name.lower())
    if not header_value:
      return False
    if expected_value and expected_value not in header_value:
      return False
  return True


class Hook:
  """Named URL pattern set with capture rules and optional callbacks."""

  def __init__(self, config: HookConfig):
    """Initialize hook from a validated configuration.

    Args:
      config: Validated hook configuration
    """
    self.config = config

  @classmethod
  def from_config(cls, config: Union["Hook", HookConfig, Mapping[str, Any]]) -> "Hook":
    """Build a Hook from a dict, HookConfig or existing Hook.

    Raises:
      HookValidationError: If the configuration is malformed
    """
    if isinstance(config, Hook):
      return config
    if isinstance(config, HookConfig):
      return cls(config)
    if not isinstance(config, Mapping):
      raise HookValidationError(
        f"Hook configuration must be a mapping, got {type(config).__name__}"
      )
    try:
      return cls(HookConfig.model_validate(dict(config)))
    except ValidationError as exc:
      raise HookValidationError(
        f"Invalid hook configuration {config.get('name')!r}",
        details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
      ) from exc

  @property
  def name(self) -> str:
    return self.config.name

  @property
  def description(self) -> str:
    return self.config.description

  @property
  def enabled(self) -> bool:
    return self.config.enabled

  @property
  def url_patterns(self) -> List[Any]:
    return self.config.url_patterns

  @property
  def rules(self) -> CaptureRules:
    return self.config.capture_rules

  @property
  def captures_response_body(self) -> bool:
    return self.rules.capture_response_body is not False

  @property
  def has_page_callback(self) -> bool:
    return self.config.on_page is not None

  def match(self, url: str) -> bool:
    """Return True when any of the hook's URL patterns matches."""
    return any_url_matches(url, self.url_patterns)

  def filter_request(self, request: CapturedRequest) -> bool:
    """Apply method, URL and header rules to a request."""
    rules = self.rules

    if rules.methods and request.method.upper() not in rules.methods:
      return False

    if rules.request_url_patterns is not None:
      if not any_url_matches(request.url, rules.request_url_patterns):
        return False

    return _headers_satisfy(request.headers, rules.request_headers)

  def filter_response(self, response: CapturedResponse) -> bool:
    """Apply status, URL and header rules to a response."""
    rules = self.rules

    if rules.capture_responses is False:
      return False

    if rules.status_codes and response.status not in rules.status_codes:
      return False

    if rules.response_url_patterns is not None:
      if not any_url_matches(response.url, rules.response_url_patterns):
        return False

    return _headers_satisfy(response.headers, rules.response_headers)

  async def on_request(self, request: CapturedRequest, session_id: str) -> Optional[Any]:
    """Run the on_request callback, if any."""
    return await self._invoke(self.config.on_request, request, session_id)

  async def on_response(self, response: CapturedResponse, session_id: str) -> Optional[Any]:
    """Run the on_response callback, if any."""
    return await self._invoke(self.config.on_response, response, session_id)

  async def on_page(self, page: Any, session_id: str) -> Optional[Any]:
    """Run the on_page callback, if any."""
    return await self._invoke(self.config.on_page, page, session_id)

  async def _invoke(self, callback: Optional[Callable[..., Any]], subject: Any, session_id: str) -> Optional[Any]:
    if callback is None:
      return None
    result = callback(subject, session_id)
    if inspect.isawaitable(result):
      result = await result
    return result or None

  def summary(self) -> Dict[str, Any]:
    """Return name, description and enabled flag for status output."""
    return {
      "name": self.name,
      "description": self.description,
      "enabled": self.enabled,
    }

  def __repr__(self) -> str:
    return f"Hook(name={self.name!r}, patterns={len(self.url_patterns)}, enabled={self.enabled})"
