"""Hook configuration schemas.

Hook definition modules expose a plain dict (or a HookConfig) describing which
URLs a hook watches and which requests/responses it keeps. Keys may be written
in snake_case or camelCase, so a config ported from a JavaScript hook file
validates unchanged.

Key Schemas:
- CaptureRules: method/status/URL/header filters and body capture switches
- HookConfig: named URL pattern set, rules and optional callbacks
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _validate_patterns(value: Optional[List[Any]]) -> Optional[List[Any]]:
  """Ensure every URL pattern is a string or a compiled regular expression."""
  if value is None:
    return None
  for pattern in value:
    if not isinstance(pattern, (str, re.Pattern)):
      raise ValueError(f"URL pattern must be a string or compiled regex, got {type(pattern).__name__}")
    if isinstance(pattern, str) and not pattern:
      raise ValueError("URL pattern must not be empty")
  return value


class CaptureRules(BaseModel):
  """Filters applied to traffic that already matched a hook's URL patterns."""

  methods: Optional[List[str]] = Field(None, description="HTTP method whitelist (empty = all)")
  status_codes: Optional[List[int]] = Field(None, description="Status whitelist (empty = all)")
  request_url_patterns: Optional[List[Any]] = Field(None, description="At least one must match the request URL")
  response_url_patterns: Optional[List[Any]] = Field(None, description="At least one must match the response URL")
  request_headers: Optional[Dict[str, str]] = Field(None, description="Required request headers (substring match)")
  response_headers: Optional[Dict[str, str]] = Field(None, description="Required response headers (substring match)")
  capture_response_body: bool = Field(True, description="Read and store response bodies")
  capture_responses: bool = Field(True, description="Record responses at all")

  model_config = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
  )

  @field_validator("methods", mode="after")
  @classmethod
  def upper_case_methods(cls, value: Optional[List[str]]) -> Optional[List[str]]:
    """Compare methods case-insensitively by storing them upper-cased."""
    if value is None:
      return None
    return [method.upper() for method in value]

  @field_validator("request_url_patterns", "response_url_patterns", mode="after")
  @classmethod
  def check_patterns(cls, value: Optional[List[Any]]) -> Optional[List[Any]]:
    """Validate rule-level URL patterns."""
    return _validate_patterns(value)


class HookConfig(BaseModel):
  """Named capture hook definition.

  Callbacks may be plain functions or coroutines. ``on_request`` and
  ``on_response`` receive a CapturedRequest/CapturedResponse and the session id
  and may return a dict merged into the record's ``custom`` field. ``on_page``
  receives the Playwright page and the session id.
  """

  name: str = Field(..., min_length=1, description="Unique hook name")
  description: str = Field("", description="Human readable description")
  enabled: bool = Field(True, description="Disabled hooks are registered but never capture")
  url_patterns: List[Any] = Field(..., min_length=1, description="Wildcard strings or compiled regexes")
  capture_rules: CaptureRules = Field(..., description="Request/response filters")

  on_request: Optional[Callable[..., Any]] = Field(
    None,
    validation_alias=AliasChoices("on_request", "onRequest", "customRequestCapture", "custom_request_capture"),
  )
  on_response: Optional[Callable[..., Any]] = Field(
    None,
    validation_alias=AliasChoices("on_response", "onResponse", "customResponseCapture", "custom_response_capture"),
  )
  on_page: Optional[Callable[..., Any]] = Field(
    None,
    validation_alias=AliasChoices("on_page", "onPage", "customPageCapture", "custom_page_capture"),
  )

  model_config = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    json_schema_extra={
      "examples": [
        {
          "name": "api",
          "urlPatterns": ["https://api.example.com/*"],
          "captureRules": {"methods": ["GET"], "statusCodes": [200]},
        }
      ]
    },
  )

  @field_validator("url_patterns", mode="after")
  @classmethod
  def check_url_patterns(cls, value: List[Any]) -> List[Any]:
    """Validate hook-level URL patterns."""
    return _validate_patterns(value)
