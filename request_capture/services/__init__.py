"""Capture session services."""

from .capture_service import CaptureSession, RequestCaptureService, SessionState

__all__ = ['CaptureSession', 'RequestCaptureService', 'SessionState']
