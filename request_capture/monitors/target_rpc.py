"""Request/response RPC over Target.sendMessageToTarget.

Commands for an attached sub-target cannot be sent on the browser-level CDP
session directly. They are serialized as ``{"id", "method", "params"}``,
forwarded with ``Target.sendMessageToTarget`` and answered later inside a
``Target.receivedMessageFromTarget`` envelope carrying the same ``id``. This
client owns the message id counter and the table of outstanding calls keyed by
``(target_session_id, message_id)``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol, Tuple

from request_capture.core.exceptions import (
  TargetDetachedError,
  TargetRPCError,
  TargetRPCTimeoutError,
)

logger = logging.getLogger(__name__)

PendingKey = Tuple[str, int]


class CDPTransport(Protocol):
  """The part of Playwright's CDPSession used for forwarding."""

  async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    ...


class TargetRPCClient:
  """Correlates forwarded commands with their replies.

  Every entry in the pending table is removed exactly once: by a reply, by the
  timeout, by a failed forward, by ``purge`` when the sub-target detaches or by
  ``close``. Replies that arrive after their entry is gone are ignored.
  """

  def __init__(self, transport: CDPTransport, timeout: float = 8.0):
    """Create a client.

    Args:
      transport: Browser-level CDP session
      timeout: Seconds to wait for each reply
    """
    self.transport = transport
    self.timeout = timeout
    self._next_id = 1
    self._pending: Dict[PendingKey, Tuple[str, asyncio.Future]] = {}
    self._closed = False

  @property
  def pending_count(self) -> int:
    return len(self._pending)

  @property
  def closed(self) -> bool:
    return self._closed

  def pending_keys(self) -> list:
    return list(self._pending.keys())

  def _allocate_id(self) -> int:
    message_id = self._next_id
    self._next_id += 1
    return message_id

  async def send(
    self,
    target_session_id: str,
    method: str,
    params: Optional[Dict[str, Any]] = None,
  ) -> Dict[str, Any]:
    """Send a command to a sub-target and wait for its result.

    Args:
      target_session_id: Sub-session id from Target.attachedToTarget
      method: CDP method, e.g. "Network.getResponseBody"
      params: Command parameters

    Returns:
      The ``result`` object of the reply

    Raises:
      TargetRPCError: If forwarding fails, the client is closed or the reply is an error
      TargetRPCTimeoutError: If no reply arrives within the timeout
      TargetDetachedError: If the sub-target detaches first
    """
    if self._closed:
      raise TargetRPCError(method, "RPC client is closed", target_session_id)

    message_id = self._allocate_id()
    key = (target_session_id, message_id)
    future = asyncio.get_running_loop().create_future()
    self._pending[key] = (method, future)

    message = json.dumps({"id": message_id, "method": method, "params": params or {}})
    try:
      await self.transport.send(
        "Target.sendMessageToTarget",
        {"sessionId": target_session_id, "message": message},
      )
    except Exception as exc:
      self._pending.pop(key, None)
      raise TargetRPCError(method, str(exc), target_session_id) from exc

    try:
      return await asyncio.wait_for(future, timeout=self.timeout)
    except asyncio.TimeoutError:
      if self._pending.pop(key, None) is not None:
        logger.debug("CDP RPC timeout for %s on %s", method, target_session_id)
      raise TargetRPCTimeoutError(method, target_session_id, self.timeout) from None
    finally:
      self._pending.pop(key, None)

  def handle_reply(self, target_session_id: str, payload: Dict[str, Any]) -> bool:
    """Resolve the pending call matching a reply payload.

    Args:
      target_session_id: Sub-session the envelope came from
      payload: Decoded message with a numeric ``id``

    Returns:
      True if a pending call was resolved, False for late or unknown replies
    """
    entry = self._pending.pop((target_session_id, payload.get("id")), None)
    if entry is None:
      return False

    method, future = entry
    if future.done():
      return False

    error = payload.get("error")
    if error:
      message = error.get("message", "CDP error") if isinstance(error, dict) else str(error)
      future.set_exception(TargetRPCError(method, message, target_session_id))
    else:
      future.set_result(payload.get("result") or {})
    return True

  def purge(self, target_session_id: str) -> int:
    """Fail and remove every pending call of a detached sub-target.

    Returns:
      Number of calls removed
    """
    keys = [key for key in self._pending if key[0] == target_session_id]
    for key in keys:
      method, future = self._pending.pop(key)
      if not future.done():
        future.set_exception(TargetDetachedError(method, target_session_id))
    return len(keys)

  def close(self) -> None:
    """Fail all pending calls and reject new ones."""
    self._closed = True
    for target_session_id in {key[0] for key in self._pending}:
      self.purge(target_session_id)
