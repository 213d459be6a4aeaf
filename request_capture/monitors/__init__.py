"""Network monitors feeding the capture store.

- PageMonitor: Playwright page request/response events
- TargetMultiplexer: browser-level CDP session covering workers, service
  workers and extension background pages
"""

from .page_monitor import PageMonitor
from .target_multiplexer import TargetMultiplexer, classify_source
from .target_rpc import TargetRPCClient

__all__ = ['PageMonitor', 'TargetMultiplexer', 'TargetRPCClient', 'classify_source']
