"""Bounded in-memory capture buffer with JSONL streaming and exports."""

from __future__ import annotations

import csv
import json
import logging
from collections import deque
from pathlib import Path
from typing import Deque, Dict, List, Optional, Union

from request_capture.config import settings
from request_capture.core.exceptions import CaptureExportError, UnsupportedExportFormatError
from request_capture.core.utils import filename_timestamp, sanitize_profile_name
from request_capture.schemas.records import CaptureRecord, ExportResult

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "jsonl", "csv")
CSV_COLUMNS = ["timestamp", "type", "hookName", "url", "method", "status", "headers"]


class CaptureStore:
  """Per-session ring buffers plus per-hook JSONL files.

  Each session keeps at most ``max_capture_size`` records; once full, the
  oldest record is evicted first. When streaming is enabled every stored record
  is also appended to ``<profile>-<hook>-<session>.jsonl`` in the output
  directory.
  """

  def __init__(
    self,
    output_directory: Optional[Union[str, Path]] = None,
    max_capture_size: Optional[int] = None,
    output_format: Optional[str] = None,
    per_hook_files: Optional[bool] = None,
  ):
    """Create a store.

    Args:
      output_directory: Directory for JSONL files and exports
      max_capture_size: Ring buffer capacity per session
      output_format: Streaming format; only "jsonl" streams to disk
      per_hook_files: Enable per-hook JSONL files
    """
    self.output_directory = Path(output_directory or settings.CAPTURE_OUTPUT_DIR)
    self.max_capture_size = max_capture_size or settings.MAX_CAPTURE_SIZE
    self.output_format = (output_format or settings.CAPTURE_OUTPUT_FORMAT).lower()
    self.per_hook_files = settings.PER_HOOK_FILES if per_hook_files is None else per_hook_files
    self._buffers: Dict[str, Deque[CaptureRecord]] = {}
    self._profiles: Dict[str, str] = {}

    try:
      self.output_directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
      logger.warning("Could not create output directory %s: %s", self.output_directory, exc)

  @property
  def streaming_enabled(self) -> bool:
    return self.output_format == "jsonl" and self.per_hook_files

  # ------------------------------------------------------------------
  # Session bookkeeping
  # ------------------------------------------------------------------

  def open_session(self, session_id: str) -> None:
    """Create an empty buffer for a session if it has none."""
    self._buffers.setdefault(session_id, deque(maxlen=self.max_capture_size))

  def set_profile(self, session_id: str, profile_name: Optional[str]) -> str:
    """Record the sanitized profile alias used in filenames for a session."""
    alias = sanitize_profile_name(profile_name)
    self._profiles[session_id] = alias
    return alias

  def profile_for(self, session_id: str) -> str:
    """Return the profile alias for a session, or 'unknown'."""
    return self._profiles.get(session_id, "unknown")

  def drop(self, session_id: str) -> None:
    """Forget a session's buffer and profile alias."""
    self._buffers.pop(session_id, None)
    self._profiles.pop(session_id, None)

  def session_ids(self) -> List[str]:
    return list(self._buffers.keys())

  def count(self, session_id: str) -> int:
    return len(self._buffers.get(session_id, ()))

  def total_count(self) -> int:
    return sum(len(buffer) for buffer in self._buffers.values())

  # ------------------------------------------------------------------
  # Storing and reading
  # ------------------------------------------------------------------

  def store(self, session_id: str, record: CaptureRecord) -> None:
    """Append a record to the session buffer and stream it to disk.

    Args:
      session_id: Capture session id
      record: Immutable capture record
    """
    buffer = self._buffers.get(session_id)
    if buffer is None:
      buffer = self._buffers[session_id] = deque(maxlen=self.max_capture_size)
    buffer.append(record)

    if self.streaming_enabled:
      self._append_jsonl(session_id, record)

  def get(self, session_id: str) -> List[CaptureRecord]:
    """Return a snapshot of a session's buffer, oldest first.

    Records are frozen; callers must not rely on the list being live.
    """
    return list(self._buffers.get(session_id, ()))

  def hook_log_path(self, session_id: str, hook_name: Optional[str]) -> Path:
    """Return the JSONL path for a (profile, hook, session) triple."""
    filename = f"{self.profile_for(session_id)}-{hook_name or 'general'}-{session_id}.jsonl"
    return self.output_directory / filename

  def _append_jsonl(self, session_id: str, record: CaptureRecord) -> None:
    filepath = self.hook_log_path(session_id, record.hook_name)
    try:
      with open(filepath, "a", encoding="utf-8") as f:
        f.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")
    except OSError as exc:
      logger.warning("Could not append to JSONL %s: %s", filepath, exc)

  # ------------------------------------------------------------------
  # Export
  # ------------------------------------------------------------------

  def default_export_path(self, session_id: str, export_format: str) -> Path:
    """Build ``<profile>-export-<session>-<timestamp>.<ext>`` in the output directory."""
    filename = f"{self.profile_for(session_id)}-export-{session_id}-{filename_timestamp()}.{export_format}"
    return self.output_directory / filename

  def export(
    self,
    session_id: str,
    export_format: str = "jsonl",
    output_path: Optional[Union[str, Path]] = None,
  ) -> Optional[ExportResult]:
    """Export a session buffer to json, jsonl or csv.

    Args:
      session_id: Capture session id
      export_format: One of json, jsonl, csv
      output_path: Target file; defaults to a timestamped file in the output directory

    Returns:
      ExportResult, or None when the session has no records

    Raises:
      UnsupportedExportFormatError: If the format is unknown
      CaptureExportError: If the file cannot be written
    """
    fmt = (export_format or "").lower()
    if fmt not in EXPORT_FORMATS:
      raise UnsupportedExportFormatError(export_format)

    records = self.get(session_id)
    if not records:
      logger.info("No captured requests found for session: %s", session_id)
      return None

    file_path = Path(output_path) if output_path else self.default_export_path(session_id, fmt)
    rows = [record.to_dict() for record in records]

    try:
      file_path.parent.mkdir(parents=True, exist_ok=True)
      if fmt == "json":
        with open(file_path, "w", encoding="utf-8") as f:
          json.dump(rows, f, indent=2, ensure_ascii=False)
      elif fmt == "jsonl":
        with open(file_path, "w", encoding="utf-8") as f:
          f.write("\n".join(json.dumps(row, ensure_ascii=False) for row in rows))
      else:
        self._write_csv(file_path, rows)
      size = file_path.stat().st_size
    except OSError as exc:
      logger.error("Error exporting captured requests to %s: %s", file_path, exc)
      raise CaptureExportError(str(file_path), str(exc)) from exc

    logger.info("Exported %d captured requests to: %s", len(rows), file_path)
    return ExportResult(file_path=str(file_path), format=fmt, count=len(rows), size=size)

  def _write_csv(self, file_path: Path, rows: List[dict]) -> None:
    with open(file_path, "w", encoding="utf-8", newline="") as f:
      writer = csv.writer(f)
      writer.writerow(CSV_COLUMNS)
      for row in rows:
        writer.writerow([
          row.get("timestamp", ""),
          row.get("type", ""),
          row.get("hookName", ""),
          row.get("url", ""),
          row.get("method", ""),
          row.get("status", ""),
          json.dumps(row.get("headers") or {}),
        ])
