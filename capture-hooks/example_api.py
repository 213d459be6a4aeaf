"""Example capture hook: record every call to a JSON API host.

Copy this file, change the patterns and drop it in the hooks directory
(CAPTURE_HOOKS_DIR). Files starting with ``_`` are ignored.
"""

import logging

logger = logging.getLogger(__name__)

API_ROOT = "https://api.example.com/"


def _endpoint(url):
  return url.replace(API_ROOT, "").split("?")[0]


def on_request(request, session_id):
  logger.info("API request: %s %s", request.method, request.url)
  return {"endpoint": _endpoint(request.url), "fullUrl": request.url}


def on_response(response, session_id):
  logger.info("API response: %s %s", response.status, response.url)
  return {"endpoint": _endpoint(response.url), "status": response.status}


hook = {
  "name": "example-api",
  "description": "Capture api.example.com requests per endpoint",
  "enabled": True,
  "url_patterns": [API_ROOT + "*"],
  "capture_rules": {
    "methods": ["GET", "POST", "PUT", "PATCH", "DELETE"],
    # empty = every status
    "status_codes": [],
    "capture_responses": True,
    "capture_response_body": True,
  },
  "on_request": on_request,
  "on_response": on_response,
}
