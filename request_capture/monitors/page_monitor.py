"""Page-level request/response capture through Playwright events.

Handles:
- Subscribing to every existing page and to pages created later
- Building request/response records for matching hooks
- Pairing responses with the request id generated for their request
- Page-level hook callbacks on domcontentloaded
- Deterministic teardown of all listeners
"""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from request_capture.config import settings
from request_capture.core.utils import body_fields, isoformat_utc, lower_keys
from request_capture.hooks.hook import Hook
from request_capture.hooks.registry import HookRegistry
from request_capture.schemas.records import CapturedRequest, CapturedResponse, CaptureRecord
from request_capture.storage.capture_store import CaptureStore

logger = logging.getLogger(__name__)

# Attribute stashed on Playwright request objects: hook name -> generated request id
REQUEST_ID_ATTRIBUTE = "_capture_request_ids"


@dataclass
class PageSubscription:
  """Listeners registered on one page."""

  page: Any
  handlers: List[Tuple[str, Callable]] = field(default_factory=list)


def _safe(getter: Callable[[], Any], default: Any = None) -> Any:
  """Read a Playwright attribute that may raise (closed frames, binary post data)."""
  try:
    return getter()
  except Exception:
    return default


def request_view(request: Any) -> CapturedRequest:
  """Build a CapturedRequest from a Playwright request."""
  return CapturedRequest(
    url=request.url,
    method=request.method,
    headers=lower_keys(_safe(lambda: request.headers, {})),
    post_data=_safe(lambda: request.post_data),
    resource_type=_safe(lambda: request.resource_type),
    is_navigation=bool(_safe(request.is_navigation_request, False)),
  )


def response_view(response: Any) -> CapturedResponse:
  """Build a CapturedResponse (without body) from a Playwright response."""
  return CapturedResponse(
    url=response.url,
    status=response.status,
    status_text=_safe(lambda: response.status_text, ""),
    headers=lower_keys(_safe(lambda: response.headers, {})),
    request=request_view(response.request),
  )


class PageMonitor:
  """Captures hook-matched traffic from the pages of one browser context."""

  def __init__(
    self,
    session_id: str,
    context: Any,
    registry: HookRegistry,
    store: CaptureStore,
    request_counter: Optional[Iterator[int]] = None,
    max_body_chars: Optional[int] = None,
    body_preview_chars: Optional[int] = None,
  ):
    """Initialize page monitor.

    Args:
      session_id: Capture session id stamped on every record
      context: Playwright BrowserContext
      registry: Hook registry consulted for every event
      store: Store receiving capture records
      request_counter: Shared counter used in generated request ids
      max_body_chars: Largest body stored verbatim
      body_preview_chars: Preview length for truncated bodies
    """
    self.session_id = session_id
    self.context = context
    self.registry = registry
    self.store = store
    self.request_counter = request_counter or itertools.count()
    self.max_body_chars = settings.MAX_BODY_CHARS if max_body_chars is None else max_body_chars
    self.body_preview_chars = settings.BODY_PREVIEW_CHARS if body_preview_chars is None else body_preview_chars
    self.subscriptions: List[PageSubscription] = []
    self._page_handler: Optional[Callable] = None
    self._detached = False

  def _log_extra(self) -> Dict[str, str]:
    return {"capture_session": self.session_id}

  # ------------------------------------------------------------------
  # Subscription management
  # ------------------------------------------------------------------

  def attach(self) -> None:
    """Subscribe to all current pages and to new pages of the context."""
    for page in list(self.context.pages):
      self.attach_page(page)

    self._page_handler = self.attach_page
    self.context.on("page", self._page_handler)

  def attach_page(self, page: Any) -> None:
    """Register request/response/domcontentloaded listeners on a page."""
    if self._detached:
      return
    logger.debug("Setting up request capture on page: %s", _safe(lambda: page.url, ""), extra=self._log_extra())

    async def on_request(request):
      await self.handle_request(request)

    async def on_response(response):
      await self.handle_response(response)

    async def on_dom_content_loaded(loaded_page):
      await self.handle_page(loaded_page)

    subscription = PageSubscription(page=page)
    for event, handler in (
      ("request", on_request),
      ("response", on_response),
      ("domcontentloaded", on_dom_content_loaded),
    ):
      page.on(event, handler)
      subscription.handlers.append((event, handler))
    self.subscriptions.append(subscription)

  def detach(self) -> None:
    """Remove every listener registered by this monitor."""
    if self._detached:
      return
    self._detached = True

    if self._page_handler is not None:
      try:
        self.context.remove_listener("page", self._page_handler)
      except Exception as exc:
        logger.debug("Could not remove page listener: %s", exc)
      self._page_handler = None

    for subscription in self.subscriptions:
      for event, handler in subscription.handlers:
        try:
          subscription.page.remove_listener(event, handler)
        except Exception:
          # Page might be closed already
          pass
    self.subscriptions.clear()

  # ------------------------------------------------------------------
  # Event handlers
  # ------------------------------------------------------------------

  def _next_request_id(self) -> str:
    return f"req_{next(self.request_counter)}_{int(time.time() * 1000)}"

  async def handle_request(self, request: Any) -> None:
    """Capture a request for every enabled hook whose rules accept it."""
    if self._detached:
      return
    try:
      view = request_view(request)
      hooks = [
        hook for hook in self.registry.find_matching_hooks(view.url)
        if hook.enabled and self.registry.should_capture_request(view, hook)
      ]
      if not hooks:
        return

      # Ids are stashed before any await so a fast response still pairs
      request_ids = getattr(request, REQUEST_ID_ATTRIBUTE, None) or {}
      for hook in hooks:
        request_ids[hook.name] = self._next_request_id()
      setattr(request, REQUEST_ID_ATTRIBUTE, request_ids)

      frame = _safe(lambda: request.frame)
      for hook in hooks:
        record = CaptureRecord(
          timestamp=isoformat_utc(),
          type="request",
          source="page",
          request_id=request_ids[hook.name],
          hook_name=hook.name,
          session_id=self.session_id,
          url=view.url,
          method=view.method,
          headers=_safe(lambda: request.headers, {}),
          post_data=view.post_data or None,
          resource_type=view.resource_type,
          is_navigation_request=view.is_navigation,
          frame={
            "url": _safe(lambda: frame.url) if frame else None,
            "name": _safe(lambda: frame.name) if frame else None,
          },
          custom=await self._run_callback(hook, hook.on_request, view),
        )
        self._store(record)
        logger.info("Captured REQUEST: %s %s", view.method, view.url, extra=self._log_extra())
    except Exception:
      logger.exception("Error capturing request", extra=self._log_extra())

  async def handle_response(self, response: Any) -> None:
    """Capture a response for every enabled hook whose rules accept it."""
    if self._detached:
      return
    try:
      view = response_view(response)
      hooks = [
        hook for hook in self.registry.find_matching_hooks(view.url)
        if hook.enabled and self.registry.should_capture_response(view, hook)
      ]
      if not hooks:
        return

      request_ids = getattr(response.request, REQUEST_ID_ATTRIBUTE, None) or {}

      body_error = None
      if any(hook.captures_response_body for hook in hooks):
        try:
          view.body = await response.text()
        except Exception as exc:
          body_error = str(exc)

      for hook in hooks:
        body: Dict[str, Any] = {}
        if hook.captures_response_body:
          if body_error:
            body = {"body_error": body_error}
          else:
            body = body_fields(view.body, self.max_body_chars, self.body_preview_chars)

        record = CaptureRecord(
          timestamp=isoformat_utc(),
          type="response",
          source="page",
          request_id=request_ids.get(hook.name),
          hook_name=hook.name,
          session_id=self.session_id,
          url=view.url,
          status=view.status,
          status_text=view.status_text,
          headers=_safe(lambda: response.headers, {}),
          request={
            "method": view.request.method,
            "headers": _safe(lambda: response.request.headers, {}),
          },
          custom=await self._run_callback(hook, hook.on_response, view),
          **body,
        )
        self._store(record)
        logger.info("Captured RESPONSE: %s %s", view.status, view.url, extra=self._log_extra())
    except Exception:
      logger.exception("Error capturing response", extra=self._log_extra())

  async def handle_page(self, page: Any) -> None:
    """Run page-level callbacks of matching hooks once the DOM is ready."""
    if self._detached:
      return
    url = _safe(lambda: page.url, "")
    if not url or url == "about:blank":
      return

    for hook in self.registry.find_matching_hooks(url):
      if not hook.enabled or not hook.has_page_callback:
        continue
      page_data = await self._run_callback(hook, hook.on_page, page)
      if not page_data:
        continue
      try:
        title = await page.title()
      except Exception:
        title = "Unknown"
      self._store(CaptureRecord(
        timestamp=isoformat_utc(),
        type="page",
        source="page",
        hook_name=hook.name,
        session_id=self.session_id,
        url=url,
        title=title,
        custom=page_data,
      ))
      logger.info("Captured PAGE data from: %s", url, extra=self._log_extra())

  # ------------------------------------------------------------------
  # Helpers
  # ------------------------------------------------------------------

  async def _run_callback(self, hook: Hook, callback: Callable, subject: Any) -> Optional[Any]:
    try:
      return await callback(subject, self.session_id)
    except Exception:
      logger.exception("Hook %s callback failed", hook.name, extra=self._log_extra())
      return None

  def _store(self, record: CaptureRecord) -> None:
    if self._detached:
      return
    self.store.store(self.session_id, record)
