"""URL pattern matching for capture hooks.

Three pattern forms are supported:
- Plain strings without ``*`` match the URL exactly or as a prefix.
- Strings containing ``*`` are wildcard patterns anchored at both ends; every
  other character is literal.
- Compiled regular expressions are applied with ``search``.
"""

import re
from functools import lru_cache
from typing import Any, Iterable, Optional


@lru_cache(maxsize=1024)
def compile_wildcard(pattern: str) -> re.Pattern:
  """Compile a wildcard pattern into an anchored regex.

  Args:
    pattern: String containing one or more ``*`` wildcards

  Returns:
    Compiled regex matching the whole URL

  Examples:
    >>> compile_wildcard("https://*.example.com/*").pattern
    '^https://.*\\\\.example\\\\.com/.*$'
  """
  literal_parts = [re.escape(part) for part in pattern.split("*")]
  return re.compile("^" + ".*".join(literal_parts) + "$")


def url_matches(url: Optional[str], pattern: Any) -> bool:
  """Check if a URL matches a hook pattern.

  Args:
    url: URL to check
    pattern: Wildcard string, plain prefix string or compiled regex

  Returns:
    Whether the URL matches the pattern

  Examples:
    >>> url_matches("https://api.example.com/path", "https://*.example.com/*")
    True
    >>> url_matches("https://example.com.evil.com/path", "https://*.example.com/*")
    False
    >>> url_matches("https://api.example.com/v1/user", "https://api.example.com/v1")
    True
  """
  if not url or not pattern:
    return False

  if isinstance(pattern, re.Pattern):
    return pattern.search(url) is not None

  if isinstance(pattern, str):
    if "*" in pattern:
      return compile_wildcard(pattern).match(url) is not None
    return url == pattern or url.startswith(pattern)

  return False


def any_url_matches(url: Optional[str], patterns: Iterable[Any]) -> bool:
  """Return True when at least one pattern matches the URL."""
  return any(url_matches(url, pattern) for pattern in patterns)


def pattern_label(pattern: Any) -> str:
  """Render a pattern for status output."""
  if isinstance(pattern, re.Pattern):
    return f"/{pattern.pattern}/"
  return str(pattern)
