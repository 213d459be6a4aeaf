"""Custom exceptions for the request capture engine.

This module defines a hierarchy of custom exceptions with error codes and
user-friendly messages for consistent error handling across the engine.
"""

from typing import Any, Dict, Optional


class CaptureError(Exception):
  """Base exception for all capture engine errors.

  All custom exceptions should inherit from this class to ensure
  consistent error handling and reporting.

  Attributes:
    message: User-friendly error message
    error_code: Machine-readable error code
    details: Additional error details (optional)
  """

  def __init__(
    self,
    message: str,
    error_code: str = "CAPTURE_ERROR",
    details: Optional[Dict[str, Any]] = None,
  ):
    """Initialize base capture exception with common error fields."""
    self.message = message
    self.error_code = error_code
    self.details = details or {}
    super().__init__(self.message)

  def to_dict(self) -> Dict[str, Any]:
    """Convert exception to a JSON-serializable dictionary."""
    payload = {
      "error": {
        "message": self.message,
        "code": self.error_code,
      }
    }
    if self.details:
      payload["error"]["details"] = self.details
    return payload


# ============================================================================
# Configuration errors
# ============================================================================

class HookValidationError(CaptureError):
  """Hook configuration is malformed.

  Raised by hook construction; the registry and loader catch it, log it and
  skip the offending hook.
  """

  def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
    """Build validation error with optional detail payload."""
    super().__init__(
      message=message,
      error_code="HOOK_VALIDATION_ERROR",
      details=details,
    )


class SessionStateError(CaptureError):
  """Session is not in a state that allows the requested operation.

  Sessions move one way through UNINITIALIZED -> MONITORING -> STOPPED, so a
  session id cannot be reused for a second monitoring run.
  """

  def __init__(self, session_id: str, state: str, operation: str):
    """Build state error including session metadata."""
    super().__init__(
      message=f"Cannot {operation} session {session_id} in state {state}",
      error_code="SESSION_STATE_ERROR",
      details={"session_id": session_id, "state": state, "operation": operation},
    )


# ============================================================================
# Target multiplexer errors
# ============================================================================

class MultiplexerUnavailableError(CaptureError):
  """Browser-level DevTools session could not be created."""

  def __init__(self, message: str = "Browser-level CDP session is not available"):
    """Build unavailable error with a user-friendly message."""
    super().__init__(
      message=message,
      error_code="MULTIPLEXER_UNAVAILABLE",
    )


class TargetRPCError(CaptureError):
  """A command forwarded to a sub-target failed.

  Used for protocol error replies and transport failures while forwarding.
  """

  def __init__(
    self,
    method: str,
    message: str,
    target_session_id: Optional[str] = None,
    error_code: str = "TARGET_RPC_ERROR",
  ):
    """Build RPC error including method and sub-session metadata."""
    self.method = method
    self.target_session_id = target_session_id
    super().__init__(
      message=message,
      error_code=error_code,
      details={"method": method, "target_session_id": target_session_id},
    )


class TargetRPCTimeoutError(TargetRPCError):
  """A command forwarded to a sub-target was not answered in time."""

  def __init__(self, method: str, target_session_id: str, timeout: float):
    """Build timeout error naming the method that timed out."""
    super().__init__(
      method=method,
      message=f"CDP RPC timeout for {method} after {timeout:g}s",
      target_session_id=target_session_id,
      error_code="TARGET_RPC_TIMEOUT",
    )
    self.details["timeout_seconds"] = timeout


class TargetDetachedError(TargetRPCError):
  """The sub-target detached while a command was outstanding."""

  def __init__(self, method: str, target_session_id: str):
    """Build detached error naming the abandoned method."""
    super().__init__(
      method=method,
      message=f"Target session {target_session_id} detached before {method} completed",
      target_session_id=target_session_id,
      error_code="TARGET_DETACHED",
    )


# ============================================================================
# Export errors
# ============================================================================

class UnsupportedExportFormatError(CaptureError):
  """Requested export format is not one of json, jsonl or csv."""

  def __init__(self, export_format: str):
    """Build format error naming the rejected format."""
    super().__init__(
      message=f"Unsupported export format: {export_format}",
      error_code="UNSUPPORTED_EXPORT_FORMAT",
      details={"format": export_format},
    )


class CaptureExportError(CaptureError):
  """Writing an export file failed.

  The original OSError is chained as ``__cause__``.
  """

  def __init__(self, file_path: str, reason: str):
    """Build export error including the target path."""
    super().__init__(
      message=f"Failed to export captured requests to {file_path}: {reason}",
      error_code="CAPTURE_EXPORT_ERROR",
      details={"file_path": file_path},
    )
