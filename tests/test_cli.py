"""Tests for the status and list CLI commands."""

import json

import pytest

from request_capture import cli


@pytest.fixture
def capture_file(tmp_path):
  path = tmp_path / "work-api-s1.jsonl"
  rows = [
    {"timestamp": "2024-05-01T12:30:00.000Z", "type": "request", "hookName": "api", "url": "https://api.example.com/a", "method": "GET"},
    {"timestamp": "2024-05-01T12:30:01.000Z", "type": "response", "hookName": "api", "url": "https://api.example.com/a", "status": 200},
    {"timestamp": "2024-05-01T12:30:02.000Z", "type": "request", "hookName": "api", "url": "https://api.example.com/b", "method": "POST"},
  ]
  lines = [json.dumps(row) for row in rows]
  lines.insert(1, "{broken")
  path.write_text("\n".join(lines) + "\n", encoding="utf-8")
  return path


def test_list_prints_records(capture_file, capsys):
  assert cli.main(["list", str(capture_file)]) == 0

  output = capsys.readouterr().out.splitlines()
  assert len(output) == 3
  assert "https://api.example.com/a" in output[0]
  assert "200" in output[1]


def test_list_filters_by_type_and_limit(capture_file, capsys):
  assert cli.main(["list", str(capture_file), "--type", "request", "--limit", "1"]) == 0

  output = capsys.readouterr().out.splitlines()
  assert len(output) == 1
  assert "GET" in output[0]


def test_list_missing_file(tmp_path):
  assert cli.main(["list", str(tmp_path / "missing.jsonl")]) == 1


def test_status_prints_hook_summary(tmp_path, capsys, monkeypatch):
  monkeypatch.chdir(tmp_path)
  (tmp_path / "api.py").write_text(
    "hook = {'name': 'api', 'description': 'Example API', "
    "'url_patterns': ['https://api.example.com/*'], 'capture_rules': {}}\n",
    encoding="utf-8",
  )

  assert cli.main(["--hooks-dir", str(tmp_path), "status"]) == 0

  output = capsys.readouterr().out
  assert "Hooks loaded:     1" in output
  assert "api (enabled)" in output
  assert "- https://api.example.com/*" in output


def test_format_record_for_page_records():
  line = cli.format_record({"timestamp": "t", "type": "page", "hookName": "pages", "url": "https://app.example.com/"})
  assert "[pages]" in line
  assert line.startswith("t  page")
