from __future__ import annotations

from typing import Any, Callable, Dict, List

import httpx
import pytest

from nse_client.config import Settings

BASE_URL = "https://www.nseindia.com"
WARMUP_URL = f"{BASE_URL}/option-chain"
SESSION_COOKIES = [("nsit", "abc"), ("nseappid", "xyz")]


class FakeClock:
    """Monotonic clock the tests can move forward by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def warmup_response() -> httpx.Response:
    headers = [("Set-Cookie", f"{name}={value}; Path=/") for name, value in SESSION_COOKIES]
    return httpx.Response(200, headers=headers, text="<html></html>")


class FakeNSE:
    """Routes MockTransport requests: warm-up page plus registered API handlers."""

    def __init__(self) -> None:
        self.warmups = 0
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def route(self, path: str, payload: Any = None, *, status: int = 200) -> None:
        self.routes[path] = lambda request: httpx.Response(status, json=payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/option-chain":
            self.warmups += 1
            return warmup_response()
        self.requests.append(request)
        responder = self.routes.get(request.url.path)
        if responder is None:
            return httpx.Response(404, json={"error": "not found"})
        return responder(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        nse_base_url=BASE_URL,
        nse_archive_url="https://nsearchives.nseindia.com",
        nse_warmup_path="/option-chain",
        cookie_ttl_seconds=1800,
        request_timeout_seconds=5.0,
    )


@pytest.fixture
def fake_nse() -> FakeNSE:
    return FakeNSE()
