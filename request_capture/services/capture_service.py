"""Capture session orchestration.

RequestCaptureService owns the hook registry and the capture store, and runs
one PageMonitor plus (when the browser allows it) one TargetMultiplexer per
capture session. Sessions move one way through
UNINITIALIZED -> MONITORING -> STOPPED; monitoring again needs a new id.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from request_capture.config import settings
from request_capture.core.exceptions import MultiplexerUnavailableError, SessionStateError
from request_capture.core.utils import utc_now
from request_capture.hooks.hook import Hook
from request_capture.hooks.loader import load_hooks
from request_capture.hooks.registry import HookRegistry
from request_capture.monitors.page_monitor import PageMonitor
from request_capture.monitors.target_multiplexer import TargetMultiplexer
from request_capture.schemas.hooks import HookConfig
from request_capture.schemas.records import CaptureRecord, CaptureStatus, ExportResult, SessionStats
from request_capture.storage.capture_store import CaptureStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
  """Lifecycle state of a capture session."""

  UNINITIALIZED = "uninitialized"
  MONITORING = "monitoring"
  STOPPED = "stopped"


@dataclass
class CaptureSession:
  """In-memory state for one monitored browser context."""

  session_id: str
  profile_alias: str
  context: Any
  state: SessionState = SessionState.UNINITIALIZED
  page_monitor: Optional[PageMonitor] = None
  multiplexer: Optional[TargetMultiplexer] = None
  started_at: datetime = field(default_factory=utc_now)
  stopped_at: Optional[datetime] = None


class RequestCaptureService:
  """Coordinates hooks, monitors and storage for capture sessions."""

  def __init__(
    self,
    registry: Optional[HookRegistry] = None,
    store: Optional[CaptureStore] = None,
    hooks_dir: Optional[Union[str, Path]] = None,
    enable_multiplexer: bool = True,
  ):
    """Create the service.

    Args:
      registry: Hook registry; a fresh one is created when omitted
      store: Capture store; built from settings when omitted
      hooks_dir: Default directory for load_hooks/reload_hooks
      enable_multiplexer: Attempt browser-level capture for new sessions
    """
    self.registry = registry if registry is not None else HookRegistry()
    self.store = store if store is not None else CaptureStore()
    self.hooks_dir = Path(hooks_dir or settings.CAPTURE_HOOKS_DIR)
    self.enable_multiplexer = enable_multiplexer
    self.sessions: Dict[str, CaptureSession] = {}
    self._request_counter = itertools.count()

    logger.info("Request capture initialized with output format: %s", self.store.output_format)

  # ------------------------------------------------------------------
  # Hooks
  # ------------------------------------------------------------------

  def load_hooks(self, directory: Optional[Union[str, Path]] = None) -> int:
    """Load hook modules from a directory (defaults to the configured one)."""
    return load_hooks(Path(directory) if directory else self.hooks_dir, self.registry)

  def reload_hooks(self, directory: Optional[Union[str, Path]] = None) -> int:
    """Drop all hooks and load them again."""
    logger.info("Reloading capture hooks")
    self.registry.clear()
    return self.load_hooks(directory)

  def register_hook(self, config: Union[Hook, HookConfig, Mapping[str, Any]]) -> bool:
    """Register a single hook configuration."""
    return self.registry.register_hook(config)

  # ------------------------------------------------------------------
  # Session lifecycle
  # ------------------------------------------------------------------

  def session_state(self, session_id: str) -> SessionState:
    session = self.sessions.get(session_id)
    return session.state if session else SessionState.UNINITIALIZED

  async def start_monitoring(
    self,
    session_id: str,
    context: Any,
    profile_name: Optional[str] = None,
  ) -> bool:
    """Start capturing traffic from a browser context.

    Args:
      session_id: New, never used capture session id
      context: Playwright BrowserContext
      profile_name: Profile name used in output filenames

    Returns:
      True if monitoring started, False if no hooks are loaded

    Raises:
      SessionStateError: If the session id was already used
    """
    state = self.session_state(session_id)
    if state is not SessionState.UNINITIALIZED:
      raise SessionStateError(session_id, state.value, "start monitoring")

    if self.registry.hook_count == 0:
      logger.warning("No capture hooks loaded, skipping monitoring for session: %s", session_id)
      return False

    alias = self.store.set_profile(session_id, profile_name)
    self.store.open_session(session_id)
    session = CaptureSession(session_id=session_id, profile_alias=alias, context=context)
    self.sessions[session_id] = session

    extra = {"capture_session": session_id}
    logger.info(
      "Starting request capture monitoring (%d URL patterns)",
      self.registry.pattern_count,
      extra=extra,
    )
    if self.store.streaming_enabled:
      logger.info(
        "Per-hook files: %s",
        self.store.hook_log_path(session_id, "<hook>"),
        extra=extra,
      )

    session.page_monitor = PageMonitor(
      session_id,
      context,
      self.registry,
      self.store,
      request_counter=self._request_counter,
    )
    session.page_monitor.attach()
    session.state = SessionState.MONITORING

    if self.enable_multiplexer:
      multiplexer = TargetMultiplexer(session_id, context, self.registry, self.store)
      # visible to stop_monitoring while start() is still awaiting targets
      session.multiplexer = multiplexer
      try:
        await multiplexer.start()
      except MultiplexerUnavailableError as exc:
        logger.warning(
          "Could not set up extension/service-worker monitoring, continuing with page capture only: %s",
          exc.message,
          extra=extra,
        )
        session.multiplexer = None
        await multiplexer.stop()
      except Exception as exc:
        logger.warning(
          "Extension/service-worker monitoring failed to start, continuing with page capture only: %s",
          exc,
          extra=extra,
        )
        session.multiplexer = None
        await multiplexer.stop()
      else:
        if session.state is not SessionState.MONITORING:
          logger.info("Session stopped during startup, releasing CDP session", extra=extra)
          session.multiplexer = None
          await multiplexer.stop()

    return True

  async def stop_monitoring(self, session_id: str) -> None:
    """Detach page listeners, then the multiplexer. Idempotent."""
    session = self.sessions.get(session_id)
    if session is None or session.state is not SessionState.MONITORING:
      return

    session.state = SessionState.STOPPED
    session.stopped_at = utc_now()

    if session.page_monitor is not None:
      session.page_monitor.detach()
    if session.multiplexer is not None:
      await session.multiplexer.stop()

    logger.info("Stopped request capture monitoring", extra={"capture_session": session_id})

  async def cleanup(self, session_id: str) -> None:
    """Stop monitoring and drop the session's buffer and profile alias."""
    await self.stop_monitoring(session_id)
    self.store.drop(session_id)

    session = self.sessions.get(session_id)
    if session is not None:
      session.page_monitor = None
      session.multiplexer = None
      session.context = None

    logger.info("Request capture cleanup completed", extra={"capture_session": session_id})

  async def cleanup_all(self) -> None:
    """Clean up every known session."""
    session_ids = list(dict.fromkeys([*self.sessions.keys(), *self.store.session_ids()]))
    for session_id in session_ids:
      await self.cleanup(session_id)
    logger.info("Request capture cleanup of all sessions completed")

  # ------------------------------------------------------------------
  # Queries
  # ------------------------------------------------------------------

  def get(self, session_id: str) -> List[CaptureRecord]:
    """Return the captured records of a session."""
    return self.store.get(session_id)

  def export(
    self,
    session_id: str,
    export_format: str = "jsonl",
    output_path: Optional[Union[str, Path]] = None,
  ) -> Optional[ExportResult]:
    """Export a session's records; see CaptureStore.export."""
    return self.store.export(session_id, export_format, output_path)

  def active_session_ids(self) -> List[str]:
    return [sid for sid, session in self.sessions.items() if session.state is SessionState.MONITORING]

  def get_status(self) -> CaptureStatus:
    """Return hook, session and capture counts."""
    return CaptureStatus(
      total_hooks=self.registry.hook_count,
      total_patterns=self.registry.pattern_count,
      active_sessions=len(self.active_session_ids()),
      total_captured=self.store.total_count(),
      output_format=self.store.output_format,
      output_directory=str(self.store.output_directory),
      hooks=self.registry.summary(),
      session_stats=[
        SessionStats(session_id=sid, captured_count=self.store.count(sid))
        for sid in self.store.session_ids()
      ],
    )
