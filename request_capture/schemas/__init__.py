"""Pydantic schemas for hooks and capture records."""

from .hooks import CaptureRules, HookConfig
from .records import (
  CapturedRequest,
  CapturedResponse,
  CaptureRecord,
  CaptureStatus,
  ExportResult,
  HookSummary,
  SessionStats,
)

__all__ = [
  'CaptureRules',
  'HookConfig',
  'CapturedRequest',
  'CapturedResponse',
  'CaptureRecord',
  'CaptureStatus',
  'ExportResult',
  'HookSummary',
  'SessionStats',
]
