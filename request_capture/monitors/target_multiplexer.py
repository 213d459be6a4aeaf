"""Browser-level network capture across pages, workers and extensions.

Playwright's page request/response events only cover page traffic. Service
workers, extension background pages and other workers are separate DevTools
targets, so this monitor opens one browser-level CDP session and:

1. Enables target discovery and auto-attach, attaches to already running
   targets of interest and follows Target.attachedToTarget /
   Target.detachedFromTarget afterwards.
2. Enables the Network domain on every attached sub-session through
   TargetRPCClient, then demultiplexes the Target.receivedMessageFromTarget
   envelopes: replies (numeric ``id``) resolve RPC calls, everything else is a
   Network event routed by method name.

Responses are buffered on Network.responseReceived and emitted on
Network.loadingFinished, once the body can be fetched with
Network.getResponseBody.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from request_capture.config import settings
from request_capture.core.exceptions import (
  MultiplexerUnavailableError,
  TargetDetachedError,
  TargetRPCError,
  TargetRPCTimeoutError,
)
from request_capture.core.utils import (
  body_fields,
  decode_body,
  isoformat_from_epoch,
  isoformat_utc,
  lower_keys,
)
from request_capture.hooks.registry import HookRegistry
from request_capture.monitors.target_rpc import TargetRPCClient
from request_capture.schemas.records import CapturedRequest, CapturedResponse, CaptureRecord
from request_capture.storage.capture_store import CaptureStore

logger = logging.getLogger(__name__)

EXTENSION_SCHEMES = ("chrome-extension://", "moz-extension://")

INTERESTING_TARGET_TYPES = frozenset({
  "page",
  "worker",
  "shared_worker",
  "service_worker",
  "background_page",
})


def classify_source(initiator: Optional[Dict[str, Any]]) -> str:
  """Best-effort guess of the execution context behind a request.

  The ``other`` initiator type is overloaded, so the result is metadata only.

  Examples:
    >>> classify_source({"type": "script", "url": "chrome-extension://abc/bg.js"})
    'extension'
    >>> classify_source({"type": "other"})
    'service_worker'
    >>> classify_source(None)
    'page'
  """
  if not initiator:
    return "page"
  initiator_url = initiator.get("url") or ""
  if initiator_url.startswith(EXTENSION_SCHEMES):
    return "extension"
  initiator_type = initiator.get("type")
  if initiator_type == "other":
    return "service_worker"
  if initiator_type == "script":
    return "script"
  return "page"


@dataclass
class TargetSession:
  """Attached sub-target."""

  target_session_id: str
  target_info: Dict[str, Any] = field(default_factory=dict)

  @property
  def target_type(self) -> str:
    return self.target_info.get("type", "unknown")


class TargetMultiplexer:
  """Captures network traffic from every attached DevTools target of a browser."""

  def __init__(
    self,
    session_id: str,
    context: Any,
    registry: HookRegistry,
    store: CaptureStore,
    rpc_timeout: Optional[float] = None,
    flatten: Optional[bool] = None,
    max_body_chars: Optional[int] = None,
    body_preview_chars: Optional[int] = None,
  ):
    """Initialize multiplexer for one capture session.

    Args:
      session_id: Capture session id stamped on every record
      context: Playwright BrowserContext whose browser is monitored
      registry: Hook registry consulted for every event
      store: Store receiving capture records
      rpc_timeout: Seconds to wait for sub-target replies
      flatten: Request flattened sessions when attaching
      max_body_chars: Largest body stored verbatim
      body_preview_chars: Preview length for truncated bodies
    """
    self.session_id = session_id
    self.context = context
    self.registry = registry
    self.store = store
    self.rpc_timeout = rpc_timeout or settings.TARGET_RPC_TIMEOUT_SECONDS
    self.flatten = settings.TARGET_FLATTEN_SESSIONS if flatten is None else flatten
    self.max_body_chars = settings.MAX_BODY_CHARS if max_body_chars is None else max_body_chars
    self.body_preview_chars = settings.BODY_PREVIEW_CHARS if body_preview_chars is None else body_preview_chars

    self.cdp_session = None
    self.rpc: Optional[TargetRPCClient] = None
    self.target_sessions: Dict[str, TargetSession] = {}
    self.pending_responses: Dict[Tuple[str, str], Dict[str, Any]] = {}
    self._listeners: List[Tuple[str, Callable]] = []
    self._started = False
    self._closed = False

  @property
  def is_active(self) -> bool:
    return self._started and not self._closed

  def _log_extra(self) -> Dict[str, str]:
    return {"capture_session": self.session_id}

  # ------------------------------------------------------------------
  # Lifecycle
  # ------------------------------------------------------------------

  async def start(self) -> None:
    """Open the browser-level CDP session and attach to targets.

    Raises:
      MultiplexerUnavailableError: If no browser-level CDP session can be created
    """
    browser = getattr(self.context, "browser", None)
    if callable(browser):
      browser = browser()
    if browser is None or not hasattr(browser, "new_browser_cdp_session"):
      raise MultiplexerUnavailableError("CDP is not available for this browser")

    try:
      self.cdp_session = await browser.new_browser_cdp_session()
    except Exception as exc:
      raise MultiplexerUnavailableError(f"Could not open browser CDP session: {exc}") from exc

    if self._closed:
      # stopped while the session was being opened
      await self._detach_session(self.cdp_session)
      return

    self.rpc = TargetRPCClient(self.cdp_session, timeout=self.rpc_timeout)

    # Subscribe before attaching so Network.enable replies are not missed
    self._subscribe("Target.attachedToTarget", self._on_attached)
    self._subscribe("Target.detachedFromTarget", self._on_detached)
    self._subscribe("Target.receivedMessageFromTarget", self._on_message)
    self._started = True

    await self._send_quietly("Target.setDiscoverTargets", {"discover": True})
    await self._send_quietly("Target.setAutoAttach", {
      "autoAttach": True,
      "waitForDebuggerOnStart": False,
      "flatten": self.flatten,
    })
    await self._attach_existing_targets()
    if self._closed:
      return

    logger.info(
      "CDP target auto-attach enabled; monitoring pages, workers, service workers and background pages",
      extra=self._log_extra(),
    )

  async def stop(self) -> None:
    """Unsubscribe, fail outstanding calls and detach the CDP session.

    Safe to call more than once and while body fetches are in flight.
    """
    if self._closed:
      return
    self._closed = True

    session = self.cdp_session
    for event, handler in self._listeners:
      try:
        session.remove_listener(event, handler)
      except Exception as exc:
        logger.debug("Could not remove CDP listener %s: %s", event, exc)
    self._listeners.clear()

    if self.rpc is not None:
      self.rpc.close()
    self.pending_responses.clear()
    self.target_sessions.clear()

    if session is not None:
      await self._detach_session(session)

  async def _detach_session(self, session: Any) -> None:
    try:
      await session.detach()
      logger.info("CDP session detached", extra=self._log_extra())
    except Exception as exc:
      logger.warning("Error detaching CDP session: %s", exc, extra=self._log_extra())

  def status(self) -> Dict[str, int]:
    """Return attached target and pending table sizes."""
    return {
      "attached_targets": len(self.target_sessions),
      "pending_responses": len(self.pending_responses),
      "pending_rpc": self.rpc.pending_count if self.rpc else 0,
    }

  def _subscribe(self, event: str, handler: Callable) -> None:
    self.cdp_session.on(event, handler)
    self._listeners.append((event, handler))

  async def _send_quietly(self, method: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
      return await self.cdp_session.send(method, params)
    except Exception as exc:
      logger.debug("%s failed: %s", method, exc, extra=self._log_extra())
      return None

  async def _attach_existing_targets(self) -> None:
    result = await self._send_quietly("Target.getTargets", {})
    for info in (result or {}).get("targetInfos", []):
      if info.get("type") not in INTERESTING_TARGET_TYPES:
        continue
      attached = await self._send_quietly("Target.attachToTarget", {
        "targetId": info.get("targetId"),
        "flatten": self.flatten,
      })
      if not attached or "sessionId" not in attached:
        continue
      if self._closed:
        return
      target_session_id = attached["sessionId"]
      self.target_sessions[target_session_id] = TargetSession(target_session_id, info)
      await self._enable_network(target_session_id)

  async def _enable_network(self, target_session_id: str) -> None:
    try:
      await self.rpc.send(target_session_id, "Network.enable", {})
    except TargetRPCError as exc:
      if self._closed:
        return
      # flattened sub-sessions may not answer forwarded commands
      log = logger.warning if self.flatten else logger.debug
      log(
        "Network.enable failed for target session %s (flatten=%s): %s",
        target_session_id,
        self.flatten,
        exc.message,
        extra=self._log_extra(),
      )

  # ------------------------------------------------------------------
  # Target events
  # ------------------------------------------------------------------

  async def _on_attached(self, params: Dict[str, Any]) -> None:
    if self._closed:
      return
    target_session_id = params.get("sessionId")
    if not target_session_id:
      return
    target_info = params.get("targetInfo") or {}
    self.target_sessions[target_session_id] = TargetSession(target_session_id, target_info)
    logger.debug(
      "Attached to %s target %s",
      target_info.get("type", "unknown"),
      target_info.get("url", ""),
      extra=self._log_extra(),
    )
    await self._enable_network(target_session_id)

  def _on_detached(self, params: Dict[str, Any]) -> None:
    target_session_id = params.get("sessionId")
    if not target_session_id:
      return
    self.target_sessions.pop(target_session_id, None)

    for key in [key for key in self.pending_responses if key[0] == target_session_id]:
      del self.pending_responses[key]
    if self.rpc is not None:
      self.rpc.purge(target_session_id)

  async def _on_message(self, params: Dict[str, Any]) -> None:
    if self._closed:
      return
    target_session_id = params.get("sessionId")
    try:
      payload = json.loads(params.get("message") or "")
    except (TypeError, ValueError):
      return
    if not isinstance(payload, dict):
      return

    if isinstance(payload.get("id"), int):
      self.rpc.handle_reply(target_session_id, payload)
      return

    method = payload.get("method")
    if not method:
      return
    try:
      await self._dispatch_event(target_session_id, method, payload.get("params") or {})
    except Exception:
      logger.exception("Error handling %s from target session %s", method, target_session_id)

  async def _dispatch_event(self, target_session_id: str, method: str, params: Dict[str, Any]) -> None:
    if method == "Network.requestWillBeSent":
      await self._handle_request(params)
    elif method == "Network.responseReceived":
      self._handle_response_received(target_session_id, params)
    elif method == "Network.loadingFinished":
      await self._handle_loading_finished(target_session_id, params)
    elif method == "Network.loadingFailed":
      self.pending_responses.pop((target_session_id, params.get("requestId")), None)
    elif method == "Network.webSocketCreated":
      self._handle_web_socket_created(params)

  # ------------------------------------------------------------------
  # Network events
  # ------------------------------------------------------------------

  async def _handle_request(self, params: Dict[str, Any]) -> None:
    request = params.get("request") or {}
    url = request.get("url", "")
    hooks = self.registry.find_matching_hooks(url)
    if not hooks:
      return

    initiator = params.get("initiator") or {}
    source = classify_source(initiator)
    request_id = params.get("requestId")
    view = CapturedRequest(
      url=url,
      method=request.get("method", "GET"),
      headers=lower_keys(request.get("headers")),
      post_data=request.get("postData"),
      resource_type=(params.get("type") or "").lower() or None,
      is_navigation=bool(request_id) and request_id == params.get("loaderId"),
    )
    logger.debug("%s request: %s %s", source, view.method, url, extra=self._log_extra())

    for hook in hooks:
      if not hook.enabled or not self.registry.should_capture_request(view, hook):
        continue
      custom = await self._run_callback(hook.on_request, view, hook.name)
      record = CaptureRecord(
        timestamp=isoformat_from_epoch(params.get("wallTime")),
        type="request",
        source=source,
        request_id=request_id,
        hook_name=hook.name,
        session_id=self.session_id,
        url=url,
        method=view.method,
        headers=request.get("headers") or {},
        post_data=view.post_data,
        resource_type=view.resource_type,
        initiator={
          "type": initiator.get("type", "unknown"),
          "url": initiator.get("url"),
          "stack": initiator.get("stack"),
        },
        custom=custom,
      )
      self._store(record)

  def _handle_response_received(self, target_session_id: str, params: Dict[str, Any]) -> None:
    request_id = params.get("requestId")
    url = (params.get("response") or {}).get("url", "")
    if not request_id or not self.registry.find_matching_hooks(url):
      return
    self.pending_responses[(target_session_id, request_id)] = params

  async def _handle_loading_finished(self, target_session_id: str, params: Dict[str, Any]) -> None:
    request_id = params.get("requestId")
    meta = self.pending_responses.pop((target_session_id, request_id), None)
    if meta is None:
      return

    response = meta.get("response") or {}
    url = response.get("url", "")
    view = CapturedResponse(
      url=url,
      status=int(response.get("status") or 0),
      status_text=response.get("statusText", ""),
      headers=lower_keys(response.get("headers")),
    )
    hooks = [
      hook for hook in self.registry.find_matching_hooks(url)
      if hook.enabled and self.registry.should_capture_response(view, hook)
    ]
    if not hooks:
      return

    body_error = None
    if any(hook.captures_response_body for hook in hooks):
      try:
        view.body = await self._fetch_body(target_session_id, request_id)
      except (TargetRPCTimeoutError, TargetDetachedError) as exc:
        # one dropped capture, no retry
        logger.debug("Skipping response capture for %s: %s", url, exc.message, extra=self._log_extra())
        return
      except TargetRPCError as exc:
        body_error = exc.message
      except (ValueError, UnicodeDecodeError) as exc:
        body_error = f"Could not decode body: {exc}"

    if self._closed:
      return

    for hook in hooks:
      body: Dict[str, Any] = {}
      if hook.captures_response_body:
        if body_error:
          body = {"body_error": body_error}
        else:
          body = body_fields(view.body, self.max_body_chars, self.body_preview_chars)
      custom = await self._run_callback(hook.on_response, view, hook.name)
      record = CaptureRecord(
        timestamp=isoformat_utc(),
        type="response",
        source="global",
        request_id=request_id,
        hook_name=hook.name,
        session_id=self.session_id,
        url=url,
        status=view.status,
        status_text=view.status_text,
        headers=response.get("headers") or {},
        mime_type=response.get("mimeType"),
        custom=custom,
        **body,
      )
      self._store(record)

  async def _fetch_body(self, target_session_id: str, request_id: str) -> Optional[str]:
    result = await self.rpc.send(target_session_id, "Network.getResponseBody", {"requestId": request_id})
    return decode_body(result.get("body"), bool(result.get("base64Encoded")))

  def _handle_web_socket_created(self, params: Dict[str, Any]) -> None:
    url = params.get("url", "")
    initiator = params.get("initiator") or {}
    source = classify_source(initiator)
    if source not in ("extension", "service_worker"):
      return

    for hook in self.registry.find_matching_hooks(url):
      if not hook.enabled:
        continue
      logger.info("Extension WebSocket: %s", url, extra=self._log_extra())
      self._store(CaptureRecord(
        timestamp=isoformat_utc(),
        type="websocket",
        source=source,
        request_id=params.get("requestId"),
        hook_name=hook.name,
        session_id=self.session_id,
        url=url,
        initiator={
          "type": initiator.get("type", "unknown"),
          "url": initiator.get("url"),
        },
        is_extension_web_socket=True,
      ))

  # ------------------------------------------------------------------
  # Helpers
  # ------------------------------------------------------------------

  async def _run_callback(self, callback: Callable, subject: Any, hook_name: str) -> Optional[Any]:
    try:
      return await callback(subject, self.session_id)
    except Exception:
      logger.exception("Hook %s callback failed", hook_name, extra=self._log_extra())
      return None

  def _store(self, record: CaptureRecord) -> None:
    if self._closed:
      return
    self.store.store(self.session_id, record)
