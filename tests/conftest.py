"""Shared fixtures: a canned-response HTTP session and default Options."""

import pytest
from requests.structures import CaseInsensitiveDict

from localize_assets import Options


class FakeResponse:
    def __init__(self, status=200, body=b"", headers=None):
        self.status_code = status
        self.content = body
        self.headers = CaseInsensitiveDict(headers or {})


class FakeSession:
    """Serves responses by exact URL and records every request made.

    Unknown URLs answer 404. A route holding an exception instance raises it.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url, body=b"", content_type=None, status=200, headers=None):
        headers = dict(headers or {})
        if content_type:
            headers["Content-Type"] = content_type
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[url] = FakeResponse(status, body, headers)

    def redirect(self, url, location, status=302):
        self.routes[url] = FakeResponse(status, b"", {"Location": location})

    def fail(self, url, exc):
        self.routes[url] = exc

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404)
        if isinstance(route, Exception):
            raise route
        return route

    def requested(self):
        return [url for url, _ in self.calls]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def options(tmp_path):
    return Options(base="https://www.example.com", assets_dir=tmp_path / "out")
