from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

import httpx
import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sigaa_client.institutions import get_profile  # noqa: E402
from sigaa_client.session.bond import HTTPFactory  # noqa: E402
from sigaa_client.session.hooks import HTTPSession  # noqa: E402
from sigaa_client.session.page_cache import PageCache  # noqa: E402


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers",
        "portal: live smoke tests that log into a real SIGAA portal (need credentials)",
    )


@dataclass
class _Reply:
    status: int = 200
    body: Union[str, bytes] = ""
    headers: dict[str, str] = field(default_factory=dict)

    def build(self, request: httpx.Request) -> httpx.Response:
        content = self.body.encode("utf-8") if isinstance(self.body, str) else self.body
        headers = {"content-type": "text/html; charset=utf-8", **self.headers}
        return httpx.Response(self.status, headers=headers, content=content, request=request)


Handler = Callable[[httpx.Request], httpx.Response]


class FakePortal:
    """
    Scripted SIGAA server on top of httpx.MockTransport.

    Replies are queued per (method, path-with-query) or (method, path); the last reply of a queue is
    repeated. Every request that reaches the "network" is recorded in `requests`.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Union[_Reply, Handler]]] = {}
        self.transport = httpx.MockTransport(self._handle)

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        body: Union[str, bytes] = "",
        headers: Optional[dict[str, str]] = None,
    ) -> "FakePortal":
        self._routes.setdefault((method.upper(), path), []).append(_Reply(status, body, dict(headers or {})))
        return self

    def add_handler(self, method: str, path: str, handler: Handler) -> "FakePortal":
        self._routes.setdefault((method.upper(), path), []).append(handler)
        return self

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> list[httpx.Request]:
        out = self.requests
        if method is not None:
            out = [r for r in out if r.method == method.upper()]
        if path is not None:
            out = [r for r in out if r.url.path == path]
        return out

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        full = request.url.raw_path.decode("ascii")
        queue = self._routes.get((request.method, full)) or self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, text="not found", request=request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, _Reply):
            return item.build(request)
        return item(request)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def portal() -> FakePortal:
    return FakePortal()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_factory(portal: FakePortal) -> Callable[..., HTTPFactory]:
    def _make(
        institution: str = "IFSC",
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        mobile: bool = False,
    ) -> HTTPFactory:
        profile = get_profile(institution)
        session = HTTPSession(profile, page_cache=PageCache(ttl_seconds=ttl_seconds, clock=clock))
        return HTTPFactory(session, portal.transport, mobile=mobile)

    return _make
