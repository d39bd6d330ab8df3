"""Shared fixtures for gateway tests."""

import json
from typing import Callable

import httpx
import pytest

from ai_gateway.llm import RetryConfig


class RecordingSleep:
    """Async sleep stand-in that records requested delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    """Monotonic clock that advances a fixed step on every read."""

    def __init__(self, start: float = 100.0, step: float = 0.25):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


class RecordingHandler:
    """MockTransport handler that records requests and replays scripted responses."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def json_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def calls_to(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_retry_config() -> RetryConfig:
    return RetryConfig(max_retries=0, jitter=False)


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
