"""Shared pytest configuration and fixtures."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from request_capture.hooks.registry import HookRegistry
from request_capture.storage.capture_store import CaptureStore


def pytest_configure(config):
  """Load the project .env file, if any, for tests that read the environment."""
  env_file = Path(__file__).resolve().parent.parent / ".env"
  if env_file.exists():
    load_dotenv(env_file)


@pytest.fixture
def registry():
  return HookRegistry()


@pytest.fixture
def store(tmp_path):
  """Store writing into a temporary directory with streaming disabled."""
  return CaptureStore(output_directory=tmp_path, max_capture_size=100, output_format="jsonl", per_hook_files=False)


@pytest.fixture
def api_hook():
  """Hook config watching api.example.com for successful GET calls."""
  return {
    "name": "api",
    "description": "Example API",
    "url_patterns": ["https://api.example.com/*"],
    "capture_rules": {
      "methods": ["GET"],
      "status_codes": [200],
    },
  }
