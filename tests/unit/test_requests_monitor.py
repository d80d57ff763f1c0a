"""Unit tests for the built-in requests monitor and HTTP auth modules."""

from unittest.mock import MagicMock

import pytest

from loadprobe.core.events import Event
from loadprobe.core.module_api import ModuleAPI
from loadprobe.core.params import Params
from loadprobe.core_modules import http_auth, requests_monitor
from loadprobe.models.capture import (
    PageSettings,
    ResourceRequest,
    ResourceResponse,
    ResponseStage,
)


def make_api(name, bus, store, params=None):
    return ModuleAPI(
        name=name,
        url="https://example.com/",
        version="1.0.0",
        bus=bus,
        store=store,
        params=Params(params or {}),
        page=MagicMock(),
    )


class TestRequestsMonitor:
    """Tests for requests_monitor."""

    @pytest.fixture
    def events(self, bus):
        recorded = []
        for name in ("send", "recv", "abort", "base", "responseEnd"):
            bus.on(name, lambda *args, name=name: recorded.append((name, args)))
        return recorded

    @pytest.fixture(autouse=True)
    def monitor(self, bus, store):
        requests_monitor.module(make_api("requests_monitor", bus, store))

    def request(self, bus, request_id, url, timestamp):
        bus.emit(Event.RESOURCE_REQUESTED, ResourceRequest(id=request_id, url=url, timestamp=timestamp))

    def response(self, bus, request_id, url, stage, timestamp, **kwargs):
        bus.emit(Event.RESOURCE_RECEIVED, ResourceResponse(
            id=request_id, url=url, stage=stage, timestamp=timestamp, **kwargs
        ))

    def test_requests_metric_initialized(self, store):
        assert store.get_metric("requests") == 0

    def test_request_lifecycle(self, bus, store, events):
        url = "https://example.com/"
        self.request(bus, 1, url, 0)
        self.response(bus, 1, url, ResponseStage.START, 150, status=200,
                      headers={"Content-Type": "text/html; charset=utf-8", "Content-Length": "512"})
        self.response(bus, 1, url, ResponseStage.END, 400)

        assert [name for name, _ in events] == ["send", "recv", "base", "responseEnd"]

        entry = events[1][1][0]
        assert entry.status == 200
        assert entry.content_type == "text/html"
        assert entry.content_length == 512
        assert entry.is_base is True

        assert store.get_metric("requests") == 1
        assert store.get_metric("timeToFirstByte") == 150
        assert store.get_metric("timeToLastByte") == 400

    def test_redirect_is_not_base(self, bus, store, events):
        self.request(bus, 1, "http://example.com/", 0)
        self.response(bus, 1, "http://example.com/", ResponseStage.START, 50, status=301)
        self.response(bus, 1, "http://example.com/", ResponseStage.END, 60)

        self.request(bus, 2, "https://example.com/", 70)
        self.response(bus, 2, "https://example.com/", ResponseStage.START, 200, status=200)
        self.response(bus, 2, "https://example.com/", ResponseStage.END, 300)

        base_events = [args for name, args in events if name == "base"]
        assert len(base_events) == 1
        assert base_events[0][0].id == 2
        assert store.get_metric("requests") == 2
        assert store.get_metric("timeToFirstByte") == 130

    def test_only_first_document_is_base(self, bus, events):
        for request_id in (1, 2):
            url = f"https://example.com/{request_id}"
            self.request(bus, request_id, url, 0)
            self.response(bus, request_id, url, ResponseStage.START, 10, status=200)
            self.response(bus, request_id, url, ResponseStage.END, 20)

        assert [name for name, _ in events].count("responseEnd") == 1

    def test_failed_request_emits_abort(self, bus, store, events):
        url = "https://example.com/"
        self.request(bus, 1, url, 0)
        self.request(bus, 2, "https://cdn.example.com/app.js", 5)
        self.response(bus, 2, "https://cdn.example.com/app.js", ResponseStage.END, 30,
                      failed=True, error_text="net::ERR_NAME_NOT_RESOLVED")

        aborts = [args for name, args in events if name == "abort"]
        assert len(aborts) == 1
        assert aborts[0][0].failed is True
        assert aborts[0][0].error_text == "net::ERR_NAME_NOT_RESOLVED"
        assert store.get_metric("requests") == 0

    def test_response_for_unknown_request_is_ignored(self, bus, events):
        self.response(bus, 42, "https://example.com/", ResponseStage.END, 10)
        assert events == []


class TestHttpAuth:
    """Tests for http_auth."""

    def settings(self):
        return PageSettings(user_agent="test")

    def test_credentials_applied_before_open(self, bus, store):
        http_auth.module(make_api("http_auth", bus, store, {"auth_user": "john", "auth_pass": "secret"}))

        settings = self.settings()
        bus.emit(Event.PAGE_BEFORE_OPEN, settings)

        assert settings.http_username == "john"
        assert settings.http_password == "secret"

    def test_no_user_no_credentials(self, bus, store):
        http_auth.module(make_api("http_auth", bus, store))

        settings = self.settings()
        bus.emit(Event.PAGE_BEFORE_OPEN, settings)

        assert settings.http_username is None
        assert bus.listener_count(Event.PAGE_BEFORE_OPEN) == 0
