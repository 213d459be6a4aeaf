"""Logging setup shared by the CLI and embedding applications."""

import logging
from typing import Optional

from request_capture.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(capture_session)s] - %(message)s'


class CaptureSessionFilter(logging.Filter):
  """Add default capture_session to all log records."""

  def filter(self, record):
    """Add capture_session to log record if not present."""
    if not hasattr(record, 'capture_session'):
      record.capture_session = '-'
    return True


def configure_logging(level: Optional[str] = None) -> None:
  """Configure root logging with the capture session aware format.

  Args:
    level: Logging level name; defaults to settings.LOG_LEVEL
  """
  level_name = (level or settings.LOG_LEVEL).upper()
  logging.basicConfig(
    level=getattr(logging, level_name, logging.INFO),
    format=LOG_FORMAT,
    datefmt='%Y-%m-%d %H:%M:%S'
  )

  for handler in logging.root.handlers:
    if not any(isinstance(f, CaptureSessionFilter) for f in handler.filters):
      handler.addFilter(CaptureSessionFilter())
