"""Hook registry: pattern storage, validation and matching."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Union

from request_capture.core.exceptions import HookValidationError
from request_capture.hooks.hook import Hook
from request_capture.hooks.patterns import pattern_label, url_matches
from request_capture.schemas.hooks import HookConfig
from request_capture.schemas.records import CapturedRequest, CapturedResponse, HookSummary

logger = logging.getLogger(__name__)


class HookRegistry:
  """Maps URL patterns to hooks.

  Each pattern maps to exactly one hook. Registering a second hook with an
  already known pattern replaces the earlier mapping (last write wins).
  """

  def __init__(self):
    """Initialize an empty registry."""
    # insertion ordered: pattern -> hook
    self._patterns: Dict[Any, Hook] = {}

  def register_hook(self, config: Union[Hook, HookConfig, Mapping[str, Any]]) -> bool:
    """Validate a hook configuration and index all of its patterns.

    Args:
      config: Hook, HookConfig or raw dict (camelCase or snake_case keys)

    Returns:
      True if the hook was registered, False if it was rejected
    """
    try:
      hook = Hook.from_config(config)
    except HookValidationError as exc:
      logger.warning("Skipping invalid capture hook: %s %s", exc.message, exc.details or "")
      return False

    stale = [
      pattern for pattern, existing in self._patterns.items()
      if existing.name == hook.name and pattern not in hook.url_patterns
    ]
    for pattern in stale:
      del self._patterns[pattern]
    if stale:
      logger.debug("Hook '%s' re-registered, dropped %d old patterns", hook.name, len(stale))

    for pattern in hook.url_patterns:
      previous = self._patterns.get(pattern)
      if previous is not None and previous.name != hook.name:
        logger.debug(
          "Pattern %s moved from hook '%s' to hook '%s'",
          pattern_label(pattern),
          previous.name,
          hook.name,
        )
      self._patterns[pattern] = hook

    logger.info("Registered capture hook: %s (%d patterns)", hook.name, len(hook.url_patterns))
    return True

  def find_matching_hooks(self, url: str) -> List[Hook]:
    """Find hooks whose patterns match the URL.

    Args:
      url: URL to match against

    Returns:
      Matching hooks, deduplicated by name, in registration order
    """
    matches: List[Hook] = []
    seen = set()
    for pattern, hook in self._patterns.items():
      if hook.name in seen:
        continue
      if url_matches(url, pattern):
        seen.add(hook.name)
        matches.append(hook)
    return matches

  def should_capture_request(self, request: CapturedRequest, hook: Hook) -> bool:
    """Check if a request passes the hook's capture rules."""
    return hook.filter_request(request)

  def should_capture_response(self, response: CapturedResponse, hook: Hook) -> bool:
    """Check if a response passes the hook's capture rules."""
    return hook.filter_response(response)

  def hooks(self) -> List[Hook]:
    """Return registered hooks, one entry per hook name."""
    unique: Dict[str, Hook] = {}
    for hook in self._patterns.values():
      unique.setdefault(hook.name, hook)
    return list(unique.values())

  @property
  def hook_count(self) -> int:
    return len(self.hooks())

  @property
  def pattern_count(self) -> int:
    return len(self._patterns)

  def summary(self) -> List[HookSummary]:
    """Group patterns by hook name for status reporting."""
    grouped: Dict[str, HookSummary] = {}
    for pattern, hook in self._patterns.items():
      if hook.name not in grouped:
        grouped[hook.name] = HookSummary(**hook.summary())
      grouped[hook.name].patterns.append(pattern_label(pattern))
    return list(grouped.values())

  def clear(self) -> None:
    """Remove all hooks."""
    self._patterns.clear()

  def __len__(self) -> int:
    return self.hook_count
