#!/usr/bin/env python
"""
Command line entry point for the request capture engine.

Commands:
- status: load hooks and print the registry summary
- launch: open a Chromium browser, capture traffic until it closes or Ctrl+C
- list: print records from a captured JSONL file
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Iterator, List, Optional

from playwright.async_api import async_playwright

from request_capture.config import settings
from request_capture.core.exceptions import CaptureError
from request_capture.core.logging_config import configure_logging
from request_capture.core.utils import filename_timestamp
from request_capture.services.capture_service import RequestCaptureService

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
  parser = argparse.ArgumentParser(
    prog="request-capture",
    description="Capture browser network traffic matched by capture hooks.",
  )
  parser.add_argument(
    "--hooks-dir",
    default=settings.CAPTURE_HOOKS_DIR,
    help=f"Directory with hook modules (default: {settings.CAPTURE_HOOKS_DIR})",
  )
  parser.add_argument(
    "--log-level",
    default=None,
    help="Logging level (default: settings.LOG_LEVEL)",
  )
  subparsers = parser.add_subparsers(dest="command", required=True)

  subparsers.add_parser("status", help="Show loaded hooks and capture settings")

  launch = subparsers.add_parser("launch", help="Launch a browser and capture traffic")
  launch.add_argument("--profile", default="default", help="Profile name used in output filenames")
  launch.add_argument("--url", default=None, help="Page to open after launch")
  launch.add_argument(
    "--headless",
    action="store_true",
    default=settings.BROWSER_HEADLESS,
    help="Run the browser without a window",
  )
  launch.add_argument(
    "--export",
    choices=["json", "jsonl", "csv"],
    default=None,
    help="Export the session buffer when the browser closes",
  )

  list_parser = subparsers.add_parser("list", help="Print records from a JSONL capture file")
  list_parser.add_argument("file", help="JSONL file written by a capture session")
  list_parser.add_argument("--limit", type=int, default=20, help="Number of records to print (default: 20)")
  list_parser.add_argument(
    "--type",
    dest="record_type",
    choices=["request", "response", "websocket", "page"],
    default=None,
    help="Only print records of this type",
  )

  return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

def run_status(args: argparse.Namespace) -> int:
  service = RequestCaptureService(hooks_dir=args.hooks_dir)
  service.load_hooks()
  status = service.get_status()

  print(f"Hooks loaded:     {status.total_hooks}")
  print(f"URL patterns:     {status.total_patterns}")
  print(f"Output format:    {status.output_format}")
  print(f"Output directory: {status.output_directory}")
  for hook in status.hooks:
    state = "enabled" if hook.enabled else "disabled"
    print(f"\n  {hook.name} ({state})")
    if hook.description:
      print(f"    {hook.description}")
    for pattern in hook.patterns:
      print(f"    - {pattern}")
  return 0


# ---------------------------------------------------------------------------
# launch
# ---------------------------------------------------------------------------

async def launch_and_capture(args: argparse.Namespace) -> int:
  """Launch Chromium, monitor its context and clean up when it closes."""
  service = RequestCaptureService(hooks_dir=args.hooks_dir)
  if service.load_hooks() == 0:
    logger.error("No capture hooks found in %s", args.hooks_dir)
    return 1

  session_id = f"session-{filename_timestamp()}-{uuid.uuid4().hex[:6]}"

  async with async_playwright() as playwright:
    browser = await playwright.chromium.launch(headless=args.headless)
    closed = asyncio.Event()
    browser.on("disconnected", lambda _browser: closed.set())
    context = await browser.new_context()
    context.on("close", lambda _context: closed.set())

    try:
      await service.start_monitoring(session_id, context, args.profile)
      page = await context.new_page()
      if args.url:
        await page.goto(args.url)

      logger.info("Capturing session %s; close the browser or press Ctrl+C to stop", session_id)
      await closed.wait()
    finally:
      await service.stop_monitoring(session_id)
      if args.export:
        try:
          result = service.export(session_id, args.export)
          if result:
            print(f"Exported {result.count} records to {result.file_path}")
        except CaptureError as exc:
          logger.error("Export failed: %s", exc.message)
      await service.cleanup(session_id)
      if browser.is_connected():
        await browser.close()

  return 0


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------

def iter_records(path: Path) -> Iterator[dict]:
  """Yield decoded records from a JSONL file, skipping malformed lines."""
  with open(path, "r", encoding="utf-8") as f:
    for line_number, line in enumerate(f, start=1):
      line = line.strip()
      if not line:
        continue
      try:
        yield json.loads(line)
      except json.JSONDecodeError:
        logger.warning("Skipping malformed line %d in %s", line_number, path)


def format_record(record: dict) -> str:
  """Render one record as a single summary line."""
  record_type = record.get("type", "?")
  if record_type == "response":
    detail = str(record.get("status", ""))
  elif record_type == "request":
    detail = record.get("method", "")
  else:
    detail = record_type
  return f"{record.get('timestamp', '')}  {record_type:<9} {detail:<6} [{record.get('hookName', '')}] {record.get('url', '')}"


def run_list(args: argparse.Namespace) -> int:
  path = Path(args.file)
  if not path.is_file():
    logger.error("Capture file not found: %s", path)
    return 1

  shown = 0
  for record in iter_records(path):
    if args.record_type and record.get("type") != args.record_type:
      continue
    print(format_record(record))
    shown += 1
    if shown >= args.limit:
      break

  if shown == 0:
    print("No records found")
  return 0


def main(argv: Optional[List[str]] = None) -> int:
  args = parse_args(argv)
  configure_logging(args.log_level)

  if args.command == "status":
    return run_status(args)
  if args.command == "list":
    return run_list(args)

  try:
    return asyncio.run(launch_and_capture(args))
  except KeyboardInterrupt:
    print("\nCapture stopped")
    return 0


if __name__ == "__main__":
  sys.exit(main())
