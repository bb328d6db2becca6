"""Tests for the redirect-following fetcher and its error classes."""

import pytest
import requests

from localize_assets import (
    FetchError,
    FetchTimeoutError,
    HttpStatusError,
    NetworkError,
    TooManyRedirectsError,
    fetch,
)


class TestFetchSuccess:
    def test_returns_body_content_type_and_final_url(self, session, options):
        session.add("https://c.com/a.css", b"body{}", "text/css; charset=utf-8")
        res = fetch(session, "https://c.com/a.css", options)
        assert res.body == b"body{}"
        assert res.content_type == "text/css; charset=utf-8"
        assert res.final_url == "https://c.com/a.css"

    def test_missing_content_type(self, session, options):
        session.add("https://c.com/blob", b"\x00\x01")
        assert fetch(session, "https://c.com/blob", options).content_type is None

    def test_sends_fixed_headers_and_timeout(self, session, options):
        session.add("https://c.com/a.png", b"png", "image/png")
        fetch(session, "https://c.com/a.png", options)
        _, kwargs = session.calls[0]
        assert kwargs["headers"] == {"User-Agent": "Mozilla/5.0", "Referer": "https://www.example.com"}
        assert kwargs["timeout"] == 20.0
        assert kwargs["allow_redirects"] is False

    def test_request_options_override(self, session, options):
        session.add("https://c.com/a.png", b"png", "image/png")
        fetch(session, "https://c.com/a.png", options, timeout=5)
        assert session.calls[0][1]["timeout"] == 5


class TestFetchRedirects:
    def test_relative_location_resolves_against_current_url(self, session, options):
        session.redirect("https://c.com/a/latest.css", "../v2/site.css", status=301)
        session.add("https://c.com/v2/site.css", b"x", "text/css")
        res = fetch(session, "https://c.com/a/latest.css", options)
        assert res.final_url == "https://c.com/v2/site.css"
        assert session.requested() == ["https://c.com/a/latest.css", "https://c.com/v2/site.css"]

    def test_protocol_relative_location(self, session, options):
        session.redirect("http://c.com/x.js", "//cdn.c.com/x.js")
        session.add("https://cdn.c.com/x.js", b"x", "application/javascript")
        assert fetch(session, "http://c.com/x.js", options).final_url == "https://cdn.c.com/x.js"

    def test_redirect_loop_hits_the_limit(self, session, options):
        session.redirect("https://c.com/a", "https://c.com/b")
        session.redirect("https://c.com/b", "https://c.com/a")
        with pytest.raises(TooManyRedirectsError):
            fetch(session, "https://c.com/a", options)
        assert len(session.calls) == options.max_redirects + 1

    def test_exactly_max_redirects_is_allowed(self, session, options):
        for i in range(5):
            session.redirect(f"https://c.com/{i}", f"https://c.com/{i + 1}")
        session.add("https://c.com/5", b"ok", "text/plain")
        assert fetch(session, "https://c.com/0", options).final_url == "https://c.com/5"

    def test_explicit_limit(self, session, options):
        session.redirect("https://c.com/a", "https://c.com/b")
        session.add("https://c.com/b", b"ok")
        with pytest.raises(TooManyRedirectsError):
            fetch(session, "https://c.com/a", options, max_redirects=0)

    def test_unfetchable_redirect_target(self, session, options):
        session.redirect("https://c.com/a", "data:text/plain,hi")
        with pytest.raises(FetchError):
            fetch(session, "https://c.com/a", options)

    def test_3xx_without_location_is_a_status_error(self, session, options):
        session.add("https://c.com/a", b"", status=304)
        with pytest.raises(HttpStatusError) as exc_info:
            fetch(session, "https://c.com/a", options)
        assert exc_info.value.status == 304


class TestFetchErrors:
    def test_http_status(self, session, options):
        with pytest.raises(HttpStatusError) as exc_info:
            fetch(session, "https://c.com/missing.png", options)
        assert exc_info.value.status == 404
        assert exc_info.value.url == "https://c.com/missing.png"
        assert "HTTP 404" in str(exc_info.value)

    def test_timeout(self, session, options):
        session.fail("https://c.com/slow.js", requests.Timeout("read timed out"))
        with pytest.raises(FetchTimeoutError):
            fetch(session, "https://c.com/slow.js", options)

    def test_connect_timeout_is_a_timeout(self, session, options):
        session.fail("https://c.com/slow.js", requests.ConnectTimeout("connect timed out"))
        with pytest.raises(FetchTimeoutError):
            fetch(session, "https://c.com/slow.js", options)

    def test_transport_error(self, session, options):
        session.fail("https://c.com/x.js", requests.ConnectionError("refused"))
        with pytest.raises(NetworkError):
            fetch(session, "https://c.com/x.js", options)

    @pytest.mark.parametrize("cls", [HttpStatusError, TooManyRedirectsError, FetchTimeoutError, NetworkError])
    def test_all_errors_are_fetch_errors(self, cls):
        assert issubclass(cls, FetchError)
