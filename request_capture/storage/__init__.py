"""Capture record storage."""

from .capture_store import CaptureStore

__all__ = ['CaptureStore']
