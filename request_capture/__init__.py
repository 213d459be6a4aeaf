"""Hook-driven network traffic capture for Playwright browser contexts."""

from request_capture.hooks import Hook, HookRegistry
from request_capture.services import RequestCaptureService
from request_capture.storage import CaptureStore

__all__ = ['CaptureStore', 'Hook', 'HookRegistry', 'RequestCaptureService']

__version__ = "0.1.0"
