"""Tests for page-level capture through Playwright events."""

import asyncio
import itertools

import pytest

from request_capture.monitors.page_monitor import REQUEST_ID_ATTRIBUTE, PageMonitor
from tests.fixtures.fakes import FakeContext, FakePage, FakeRequest, FakeResponse

API_URL = "https://api.example.com/v1/items?page=1"


def _monitor(registry, store, pages=None, **kwargs):
  context = FakeContext(pages=pages if pages is not None else [FakePage()])
  monitor = PageMonitor("s1", context, registry, store, request_counter=itertools.count(), **kwargs)
  monitor.attach()
  return monitor, context


class TestSubscriptions:

  def test_attach_covers_existing_and_new_pages(self, registry, store):
    existing = FakePage()
    monitor, context = _monitor(registry, store, pages=[existing])

    assert existing.listener_count("request") == 1
    assert existing.listener_count("response") == 1
    assert existing.listener_count("domcontentloaded") == 1
    assert context.listener_count("page") == 1

    new_page = FakePage("https://app.example.com/other")
    asyncio.run(context.emit("page", new_page))

    assert new_page.listener_count() == 3
    assert len(monitor.subscriptions) == 2

  def test_detach_removes_every_listener(self, registry, store):
    page = FakePage()
    monitor, context = _monitor(registry, store, pages=[page])

    monitor.detach()
    monitor.detach()

    assert page.listener_count() == 0
    assert context.listener_count() == 0
    assert monitor.subscriptions == []

  def test_events_after_detach_are_ignored(self, registry, store, api_hook):
    registry.register_hook(api_hook)
    monitor, _ = _monitor(registry, store)
    monitor.detach()

    request = FakeRequest(API_URL)
    asyncio.run(monitor.handle_request(request))
    asyncio.run(monitor.handle_response(FakeResponse(request)))

    assert store.get("s1") == []

  def test_pages_opened_after_detach_are_not_subscribed(self, registry, store):
    monitor, _ = _monitor(registry, store)
    monitor.detach()

    page = FakePage()
    monitor.attach_page(page)

    assert page.listener_count() == 0


class TestRequestResponseCapture:

  @pytest.fixture
  def monitored(self, registry, store, api_hook):
    registry.register_hook(api_hook)
    page = FakePage()
    monitor, context = _monitor(registry, store, pages=[page])
    return monitor, page

  def test_request_and_response_are_paired(self, monitored, store):
    monitor, page = monitored
    request = FakeRequest(API_URL, headers={"Accept": "application/json"}, navigation=False)
    response = FakeResponse(request, body='{"items": [1, 2]}')

    async def scenario():
      await page.emit("request", request)
      await page.emit("response", response)

    asyncio.run(scenario())

    request_record, response_record = store.get("s1")
    assert request_record.type == "request"
    assert request_record.source == "page"
    assert request_record.request_id.startswith("req_0_")
    assert request_record.frame == {"url": "https://app.example.com/", "name": "main"}
    assert request_record.resource_type == "xhr"
    assert request_record.is_navigation_request is False

    assert response_record.type == "response"
    assert response_record.request_id == request_record.request_id
    assert response_record.status == 200
    assert response_record.body == '{"items": [1, 2]}'
    assert response_record.request == {"method": "GET", "headers": {"Accept": "application/json"}}

  def test_request_ids_are_unique(self, monitored, store):
    monitor, page = monitored

    async def scenario():
      await page.emit("request", FakeRequest(API_URL))
      await page.emit("request", FakeRequest(API_URL))

    asyncio.run(scenario())

    first, second = store.get("s1")
    assert first.request_id != second.request_id

  def test_method_filter_rejects_request(self, monitored, store):
    monitor, page = monitored
    request = FakeRequest(API_URL, method="POST", post_data='{"a": 1}')

    asyncio.run(page.emit("request", request))

    assert store.get("s1") == []
    assert not hasattr(request, REQUEST_ID_ATTRIBUTE)

  def test_status_filter_rejects_response(self, monitored, store):
    monitor, page = monitored
    request = FakeRequest(API_URL)
    response = FakeResponse(request, status=404, status_text="Not Found")

    asyncio.run(page.emit("response", response))

    assert store.get("s1") == []
    assert response.text_calls == 0

  def test_unmatched_url_is_ignored(self, monitored, store):
    monitor, page = monitored
    asyncio.run(page.emit("request", FakeRequest("https://cdn.example.com/app.js")))
    assert store.get("s1") == []

  def test_body_read_failure_is_recorded(self, monitored, store):
    monitor, page = monitored
    request = FakeRequest(API_URL)
    response = FakeResponse(request, text_error=RuntimeError("Response body is unavailable for redirect responses"))

    asyncio.run(page.emit("response", response))

    [record] = store.get("s1")
    assert record.body is None
    assert record.body_error == "Response body is unavailable for redirect responses"

  def test_large_body_is_truncated(self, registry, store, api_hook):
    registry.register_hook(api_hook)
    page = FakePage()
    _monitor(registry, store, pages=[page], max_body_chars=100, body_preview_chars=10)
    request = FakeRequest(API_URL)

    asyncio.run(page.emit("response", FakeResponse(request, body="y" * 250)))

    [record] = store.get("s1")
    assert record.body is None
    assert record.body_size == 250
    assert record.body_preview == "y" * 10


class TestHookBehaviour:

  def test_each_hook_pairs_its_own_request_id(self, registry, store):
    registry.register_hook({"name": "one", "url_patterns": ["https://api.example.com/*"], "capture_rules": {}})
    registry.register_hook({"name": "two", "url_patterns": ["https://*.example.com/*"], "capture_rules": {}})
    page = FakePage()
    _monitor(registry, store, pages=[page])
    request = FakeRequest(API_URL)

    async def scenario():
      await page.emit("request", request)
      await page.emit("response", FakeResponse(request, body="ok"))

    asyncio.run(scenario())

    records = store.get("s1")
    requests = {r.hook_name: r.request_id for r in records if r.type == "request"}
    responses = {r.hook_name: r.request_id for r in records if r.type == "response"}
    assert requests == responses
    assert requests["one"] != requests["two"]

  def test_disabled_hook_captures_nothing(self, registry, store):
    registry.register_hook({
      "name": "off",
      "enabled": False,
      "url_patterns": ["https://api.example.com/*"],
      "capture_rules": {},
    })
    page = FakePage()
    _monitor(registry, store, pages=[page])

    asyncio.run(page.emit("request", FakeRequest(API_URL)))

    assert store.get("s1") == []

  def test_body_not_read_when_disabled(self, registry, store):
    registry.register_hook({
      "name": "no-body",
      "url_patterns": ["https://api.example.com/*"],
      "capture_rules": {"capture_response_body": False},
    })
    page = FakePage()
    _monitor(registry, store, pages=[page])
    response = FakeResponse(FakeRequest(API_URL), body="secret")

    asyncio.run(page.emit("response", response))

    [record] = store.get("s1")
    assert response.text_calls == 0
    assert record.body is None

  def test_callbacks_fill_custom_and_failures_are_contained(self, registry, store):
    def on_request(request, session_id):
      return {"endpoint": "v1/items", "session": session_id}

    async def on_response(response, session_id):
      raise ValueError("bad hook")

    registry.register_hook({
      "name": "custom",
      "url_patterns": ["https://api.example.com/*"],
      "capture_rules": {},
      "on_request": on_request,
      "on_response": on_response,
    })
    page = FakePage()
    _monitor(registry, store, pages=[page])
    request = FakeRequest(API_URL)

    async def scenario():
      await page.emit("request", request)
      await page.emit("response", FakeResponse(request, body="ok"))

    asyncio.run(scenario())

    request_record, response_record = store.get("s1")
    assert request_record.custom == {"endpoint": "v1/items", "session": "s1"}
    assert response_record.custom is None
    assert response_record.body == "ok"

  def test_page_callback_produces_page_record(self, registry, store):
    async def on_page(page, session_id):
      return {"heading": await page.title()}

    registry.register_hook({
      "name": "pages",
      "url_patterns": ["https://app.example.com/*"],
      "capture_rules": {},
      "customPageCapture": on_page,
    })
    page = FakePage("https://app.example.com/dashboard", title="Dashboard")
    _monitor(registry, store, pages=[page])

    async def scenario():
      await page.emit("domcontentloaded", page)
      blank = FakePage("about:blank")
      await page.emit("domcontentloaded", blank)

    asyncio.run(scenario())

    [record] = store.get("s1")
    assert record.type == "page"
    assert record.title == "Dashboard"
    assert record.url == "https://app.example.com/dashboard"
    assert record.custom == {"heading": "Dashboard"}

  def test_hook_without_page_callback_records_no_page(self, registry, store, api_hook):
    registry.register_hook(api_hook)
    page = FakePage("https://api.example.com/docs")
    _monitor(registry, store, pages=[page])

    asyncio.run(page.emit("domcontentloaded", page))

    assert store.get("s1") == []
