"""Utility functions for the capture engine."""

import base64
import re
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

ISOFORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_PROFILE_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")


def utc_now() -> datetime:
  """Return timezone-aware UTC timestamp."""
  return datetime.now(timezone.utc)


def isoformat_utc(value: Optional[datetime] = None) -> str:
  """Format a datetime as a millisecond-precision ISO-8601 UTC string.

  Args:
    value: Timestamp to format; defaults to now

  Returns:
    String such as ``2024-05-01T12:30:00.123Z``

  Examples:
    >>> isoformat_utc(datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc))
    '2024-05-01T12:30:00.000Z'
  """
  value = value or utc_now()
  return value.astimezone(timezone.utc).strftime(ISOFORMAT)[:-4] + "Z"


def isoformat_from_epoch(seconds: Optional[float]) -> str:
  """Format epoch seconds (CDP wallTime) as ISO-8601, falling back to now."""
  if seconds is None:
    return isoformat_utc()
  try:
    return isoformat_utc(datetime.fromtimestamp(float(seconds), tz=timezone.utc))
  except (TypeError, ValueError, OverflowError, OSError):
    return isoformat_utc()


def filename_timestamp(value: Optional[datetime] = None) -> str:
  """Return an ISO timestamp safe for filenames (``:`` and ``.`` replaced)."""
  return isoformat_utc(value).replace(":", "-").replace(".", "-")


def sanitize_profile_name(profile_name: Optional[str]) -> str:
  """Clean a profile name for filename use.

  Args:
    profile_name: Opaque profile name from the profile collaborator

  Returns:
    Lower-cased name restricted to letters, digits, ``-`` and ``_``

  Examples:
    >>> sanitize_profile_name("My Profile #1")
    'my-profile--1'
  """
  if not profile_name:
    return "unknown"
  return _PROFILE_UNSAFE_CHARS.sub("-", profile_name).lower()


def lower_keys(headers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
  """Return a copy of a header mapping with lower-cased names."""
  if not headers:
    return {}
  return {str(name).lower(): str(value) for name, value in headers.items()}


def decode_body(body: Optional[str], base64_encoded: bool = False) -> Optional[str]:
  """Decode a Network.getResponseBody payload to text."""
  if body is None:
    return None
  if base64_encoded:
    return base64.b64decode(body).decode("utf-8", errors="replace")
  return body


def body_fields(body: Optional[str], max_chars: int, preview_chars: int) -> Dict[str, Any]:
  """Apply the body size policy to a response body.

  Bodies up to ``max_chars`` are kept verbatim; longer bodies are replaced by
  their size and a preview. Empty bodies produce no fields.

  Args:
    body: Decoded response body text
    max_chars: Largest body stored verbatim
    preview_chars: Length of the preview for truncated bodies

  Returns:
    Dict with either ``body`` or ``body_size``/``body_truncated``/``body_preview``
  """
  if not body:
    return {}
  if len(body) <= max_chars:
    return {"body": body}
  return {
    "body_size": len(body),
    "body_truncated": True,
    "body_preview": body[:preview_chars],
  }
