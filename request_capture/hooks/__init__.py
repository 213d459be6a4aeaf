"""Capture hooks: configuration, matching and directory loading."""

from .hook import Hook
from .loader import load_hooks
from .patterns import url_matches
from .registry import HookRegistry

__all__ = ['Hook', 'HookRegistry', 'load_hooks', 'url_matches']
