"""Unit tests for engine data models."""

import pytest
from pydantic import ValidationError

from loadprobe.models.capture import CookieSpec, PageSettings, RequestEntry


class TestRequestEntry:
    def test_timings(self):
        entry = RequestEntry(id=1, url="https://example.com/", send_time=100,
                             recv_start_time=250, recv_end_time=400)

        assert entry.time_to_first_byte == 150
        assert entry.time_to_last_byte == 300
        assert entry.domain == "example.com"

    def test_timings_unknown_until_received(self):
        entry = RequestEntry(id=1, url="https://example.com/", send_time=100)

        assert entry.time_to_first_byte is None
        assert entry.time_to_last_byte is None

    @pytest.mark.parametrize("status,expected", [(200, False), (301, True), (304, True), (404, False), (None, False)])
    def test_is_redirect(self, status, expected):
        entry = RequestEntry(id=1, url="https://example.com/", send_time=0, status=status)
        assert entry.is_redirect is expected


class TestCookieSpec:
    def test_alias(self):
        cookie = CookieSpec(name="a", value="b", httpOnly=True)
        assert cookie.http_only is True
        assert cookie.to_engine_cookie()["httpOnly"] is True

    def test_explicit_domain_is_kept(self):
        cookie = CookieSpec(name="a", value="b", domain="cdn.example.com")
        assert cookie.with_default_domain("https://www.example.com/").domain == "cdn.example.com"

    def test_expires_only_when_set(self):
        assert "expires" not in CookieSpec(name="a", value="b").to_engine_cookie()
        assert CookieSpec(name="a", value="b", expires=1700000000).to_engine_cookie()["expires"] == 1700000000


class TestPageSettings:
    def test_invalid_viewport(self):
        with pytest.raises(ValidationError):
            PageSettings(user_agent="ua", viewport=(0, 600))

    def test_mutable_before_open(self):
        settings = PageSettings(user_agent="ua")
        settings.http_username = "john"
        settings.extra_headers["X-Test"] = "1"

        assert settings.http_username == "john"
        assert settings.extra_headers == {"X-Test": "1"}
