"""Capture engine configuration settings.

This module defines the engine's configuration using Pydantic Settings,
which loads values from environment variables and .env files with type validation.

The Settings class manages:
- Output location and format for captured traffic
- Hook discovery directory
- Ring buffer and response body limits
- Target multiplexer RPC behaviour
- Logging levels

Configuration Priority:
1. Environment variables (highest priority)
2. .env file in project root
3. Default values defined in this module

Example:
    from request_capture.config import settings

    print(settings.CAPTURE_OUTPUT_DIR)
    print(settings.MAX_CAPTURE_SIZE)
"""

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_OUTPUT_FORMATS = ("json", "jsonl", "csv")
SUPPORTED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
  """Capture engine settings using Pydantic Settings.

  Attributes:
    CAPTURE_OUTPUT_DIR: Directory for streamed JSONL files and exports
    CAPTURE_OUTPUT_FORMAT: Streaming format; per-hook JSONL files are written only for "jsonl"
    CAPTURE_HOOKS_DIR: Directory scanned for hook definition modules
    MAX_CAPTURE_SIZE: Ring buffer capacity per session
    PER_HOOK_FILES: Append every record to a per-(profile, hook, session) JSONL file
    MAX_BODY_CHARS: Largest response body stored verbatim
    BODY_PREVIEW_CHARS: Preview length kept for truncated bodies
    TARGET_RPC_TIMEOUT_SECONDS: Timeout for commands forwarded to sub-targets
    TARGET_FLATTEN_SESSIONS: Request flattened sessions when auto-attaching
    BROWSER_HEADLESS: Default headless flag for the CLI launcher
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
  """

  # Output settings
  CAPTURE_OUTPUT_DIR: str = Field(
    default="./captured-requests",
    description="Directory for per-hook JSONL files and exports"
  )
  CAPTURE_OUTPUT_FORMAT: str = Field(
    default="jsonl",
    description="Streaming output format (json, jsonl, csv)"
  )
  CAPTURE_HOOKS_DIR: str = Field(
    default="./capture-hooks",
    description="Directory containing hook definition modules"
  )

  # Buffer settings
  MAX_CAPTURE_SIZE: int = Field(
    default=1000,
    ge=1,
    description="Maximum number of records kept in memory per session"
  )
  PER_HOOK_FILES: bool = Field(
    default=True,
    description="Stream records to per-hook JSONL files"
  )
  MAX_BODY_CHARS: int = Field(
    default=100_000,
    ge=0,
    description="Response bodies longer than this are stored as a preview"
  )
  BODY_PREVIEW_CHARS: int = Field(
    default=1000,
    ge=0,
    description="Number of characters kept in a truncated body preview"
  )

  # Target multiplexer settings
  TARGET_RPC_TIMEOUT_SECONDS: float = Field(
    default=8.0,
    gt=0,
    description="Timeout for commands sent to attached sub-targets"
  )
  TARGET_FLATTEN_SESSIONS: bool = Field(
    default=True,
    description="Use flattened sessions for Target.setAutoAttach/attachToTarget"
  )

  # Browser settings (CLI launcher only)
  BROWSER_HEADLESS: bool = Field(
    default=False,
    description="Run the CLI launcher browser in headless mode"
  )

  # Logging
  LOG_LEVEL: str = Field(
    default="INFO",
    description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
  )

  model_config = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    case_sensitive=True,
    extra="ignore",
  )

  @field_validator("CAPTURE_OUTPUT_FORMAT", mode="before")
  @classmethod
  def normalize_output_format(cls, value: str) -> str:
    """Lower-case the output format and fall back to jsonl when unknown."""
    normalized = str(value).strip().lower()
    if normalized not in SUPPORTED_OUTPUT_FORMATS:
      logging.getLogger(__name__).warning(
        "CAPTURE_OUTPUT_FORMAT=%s is not supported; using jsonl",
        value,
      )
      return "jsonl"
    return normalized

  @field_validator("LOG_LEVEL", mode="before")
  @classmethod
  def normalize_log_level(cls, value: str) -> str:
    """Upper-case the log level and fall back to INFO when unknown."""
    normalized = str(value).strip().upper()
    return normalized if normalized in SUPPORTED_LOG_LEVELS else "INFO"


# Create global settings instance
settings = Settings()
