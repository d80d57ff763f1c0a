"""Unit tests for the default metric modules."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from loadprobe.core.events import Event
from loadprobe.core.module_api import ModuleAPI
from loadprobe.core.params import Params
from loadprobe.models.capture import RequestEntry
from loadprobe.modules import dialogs, js_errors, requests_stats, window_performance


@pytest.fixture
def page():
    page = MagicMock()
    page.evaluate = AsyncMock(return_value=None)
    return page


def load(module, bus, store, page):
    api = ModuleAPI(
        name=module.__name__.rsplit(".", 1)[-1],
        url="https://example.com/",
        version="1.0.0",
        bus=bus,
        store=store,
        params=Params(),
        page=page,
    )
    module.module(api)
    return api


class TestJsErrors:
    def test_errors_counted_with_offenders(self, bus, store, page):
        load(js_errors, bus, store, page)
        assert store.get_metric("jsErrors") == 0

        bus.emit(Event.JS_ERROR, "TypeError: x is undefined", "  at foo (https://example.com/app.js:10:5)\n  at bar")
        bus.emit(Event.JS_ERROR, "ReferenceError: y", None)

        assert store.get_metric("jsErrors") == 2
        assert store.get_offenders("jsErrors") == [
            "TypeError: x is undefined - at foo (https://example.com/app.js:10:5)",
            "ReferenceError: y",
        ]


class TestDialogs:
    def test_dialogs_counted(self, bus, store, page):
        load(dialogs, bus, store, page)

        bus.emit(Event.ALERT, "Hello")
        bus.emit(Event.ALERT, "Again")
        bus.emit(Event.CONFIRM, "Sure?")

        assert store.get_metric("windowAlerts") == 2
        assert store.get_metric("windowConfirms") == 1
        assert store.get_metric("windowPrompts") == 0
        assert store.get_offenders("windowConfirms") == ["Sure?"]


class TestRequestsStats:
    def entry(self, **kwargs):
        return RequestEntry(id=1, url="https://example.com/a.png", send_time=0, **kwargs)

    def test_status_codes(self, bus, store, page):
        load(requests_stats, bus, store, page)

        bus.emit(Event.RECV, self.entry(status=404))
        bus.emit(Event.RECV, self.entry(status=302))
        bus.emit(Event.RECV, self.entry(status=200))
        bus.emit(Event.ABORT, self.entry(failed=True, error_text="net::ERR_FAILED"))

        assert store.get_metric("notFound") == 1
        assert store.get_metric("redirects") == 1
        assert store.get_metric("failedRequests") == 1
        assert store.get_offenders("redirects") == ["https://example.com/a.png (HTTP 302)"]
        assert store.get_offenders("failedRequests") == ["https://example.com/a.png (net::ERR_FAILED)"]


class TestWindowPerformance:
    @pytest.mark.asyncio
    async def test_milestones_relative_to_response_end(self, bus, store, page):
        page.evaluate.return_value = {
            "responseEnd": 1000,
            "domInteractive": 1250,
            "domContentLoaded": 1300,
            "domContentLoadedEnd": 1310,
            "domComplete": 1800,
        }
        load(window_performance, bus, store, page)

        bus.emit(Event.LOAD_FINISHED, "success")
        await bus.drain()

        assert store.get_metric("domInteractive") == 250
        assert store.get_metric("domContentLoaded") == 300
        assert store.get_metric("domContentLoadedEnd") == 310
        assert store.get_metric("domComplete") == 800
        assert store.is_final("domComplete")

    @pytest.mark.asyncio
    async def test_timing_unavailable(self, bus, store, page):
        load(window_performance, bus, store, page)

        bus.emit(Event.LOAD_FINISHED, "success")
        await bus.drain()

        assert store.get_metric("domComplete") == 0
        assert not store.is_final("domComplete")
