"""Shared fakes: requests-like sessions that answer from a handler function."""

from __future__ import annotations

import re
from typing import Any, Callable, List, Optional

import pytest
import requests


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, text: str = "", headers: Optional[dict] = None):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.headers = headers or {}

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    """Records calls and delegates to ``handler(method, url, kwargs)``."""

    def __init__(self, handler: Callable[[str, str, dict], FakeResponse]):
        self.handler = handler
        self.calls: List[tuple] = []
        self.closed = False
        self.headers: dict = {}

    def _call(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        result = self.handler(method, url, kwargs)
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self._call("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self._call("POST", url, **kwargs)

    def close(self) -> None:
        self.closed = True


_ID_KEY = re.compile(r"publishedfileids\[(\d+)\]")


def ids_from_form(data: dict) -> List[str]:
    """Return the publishedfileids[i] values of a form body in index order."""
    indexed = []
    for key, value in data.items():
        m = _ID_KEY.fullmatch(key)
        if m:
            indexed.append((int(m.group(1)), value))
    return [v for _, v in sorted(indexed)]


def details_response(entries: List[dict]) -> FakeResponse:
    return FakeResponse(json_data={"response": {"result": 1, "resultcount": len(entries), "publishedfiledetails": entries}})


def ok_detail(pid: str, title: Optional[str] = None, updated: int = 1000, preview: Optional[str] = None) -> dict:
    return {
        "publishedfileid": pid,
        "result": 1,
        "title": title if title is not None else f"Item {pid}",
        "time_updated": updated,
        "preview_url": preview or f"https://cdn.example/{pid}.jpg",
    }


@pytest.fixture
def fake_session_factory():
    """Build FakeSessions around a handler and remember every one created."""
    created: List[FakeSession] = []

    def make(handler):
        def factory(*_args):
            s = FakeSession(handler)
            created.append(s)
            return s
        factory.created = created
        return factory

    return make
