"""Capture record schemas.

This module defines the data that flows out of the monitors:

Key Schemas:
- CapturedRequest/CapturedResponse: transport-neutral views handed to hook
  filters and callbacks (built from Playwright objects or CDP event params)
- CaptureRecord: one immutable observation stored in the ring buffer and
  written to JSONL
- ExportResult: metadata about a finished export
- CaptureStatus: engine status snapshot returned by the service
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RecordType = Literal["request", "response", "websocket", "page"]
RecordSource = Literal["page", "extension", "service_worker", "script", "global"]


@dataclass
class CapturedRequest:
  """Request view passed to hook filters and on_request callbacks."""

  url: str
  method: str
  headers: Dict[str, str] = field(default_factory=dict)
  post_data: Optional[str] = None
  resource_type: Optional[str] = None
  is_navigation: bool = False


@dataclass
class CapturedResponse:
  """Response view passed to hook filters and on_response callbacks.

  ``request`` is None for responses observed through the target multiplexer,
  where the originating request is not tracked. ``body`` is only populated
  once it has been read.
  """

  url: str
  status: int
  status_text: str = ""
  headers: Dict[str, str] = field(default_factory=dict)
  request: Optional[CapturedRequest] = None
  body: Optional[str] = None


class CaptureRecord(BaseModel):
  """One captured request, response, websocket or page observation.

  Records are frozen once built. Serialized keys are camelCase and unset
  fields are omitted, so a request record never carries response fields.
  """

  timestamp: str = Field(..., description="ISO-8601 UTC timestamp")
  type: RecordType = Field(..., description="Observation kind")
  source: Optional[RecordSource] = Field(None, description="Execution context the traffic came from")
  request_id: Optional[str] = Field(None, description="Pairs a response with its request")
  hook_name: str = Field(..., description="Hook that matched")
  session_id: str = Field(..., description="Capture session id")
  url: str = Field(..., description="Request/response/page URL")

  # Request fields
  method: Optional[str] = None
  headers: Optional[Dict[str, Any]] = None
  post_data: Optional[str] = None
  resource_type: Optional[str] = None
  is_navigation_request: Optional[bool] = None
  frame: Optional[Dict[str, Optional[str]]] = None
  initiator: Optional[Dict[str, Any]] = None

  # Response fields
  status: Optional[int] = None
  status_text: Optional[str] = None
  mime_type: Optional[str] = None
  request: Optional[Dict[str, Any]] = None
  body: Optional[str] = None
  body_size: Optional[int] = None
  body_truncated: Optional[bool] = None
  body_preview: Optional[str] = None
  body_error: Optional[str] = None

  # Page / websocket fields
  title: Optional[str] = None
  is_extension_web_socket: Optional[bool] = None

  custom: Optional[Any] = Field(None, description="Data returned by hook callbacks")

  model_config = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
  )

  def to_dict(self) -> Dict[str, Any]:
    """Convert to the JSON-serializable camelCase dictionary that is persisted."""
    return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class ExportResult:
  """Result of exporting a session buffer."""

  file_path: str
  format: str
  count: int
  size: int


class HookSummary(BaseModel):
  """Registry view of one hook."""

  name: str
  description: str = ""
  enabled: bool = True
  patterns: List[str] = Field(default_factory=list)


class SessionStats(BaseModel):
  """Captured record count for one session."""

  session_id: str
  captured_count: int


class CaptureStatus(BaseModel):
  """Status snapshot of the capture engine."""

  total_hooks: int
  total_patterns: int
  active_sessions: int
  total_captured: int
  output_format: str
  output_directory: str
  hooks: List[HookSummary] = Field(default_factory=list)
  session_stats: List[SessionStats] = Field(default_factory=list)
