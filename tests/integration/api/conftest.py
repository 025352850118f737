"""Fixtures for API integration tests."""

import json
from collections.abc import Callable, Generator, Iterable
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sse_starlette.sse import AppStatus

from chandler.api.app import create_app
from chandler.config.settings import Settings

SSEEvent = tuple[str, Any]


@pytest.fixture(autouse=True)
def reset_sse_exit_event() -> None:
    """Each TestClient runs its own event loop; drop the loop-bound exit event."""
    AppStatus.should_exit_event = None


@pytest.fixture
def make_client() -> Generator[Callable[..., TestClient], None, None]:
    """Factory for started TestClients built from settings overrides.

    Rate limiting is off unless ``rate_limit`` is passed.
    """
    clients: list[TestClient] = []

    def _make(**overrides: Any) -> TestClient:
        overrides.setdefault("rate_limit", {"enabled": False})
        overrides.setdefault("observability", {"logging": {"level": "WARNING"}})
        client = TestClient(create_app(Settings(**overrides)))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()


def _parse_events(lines: Iterable[str]) -> list[SSEEvent]:
    events: list[SSEEvent] = []
    name = "message"
    for line in lines:
        if line.startswith("event:"):
            name = line[len("event:") :].strip()
        elif line.startswith("data:"):
            events.append((name, json.loads(line[len("data:") :].strip())))
            name = "message"
    return events


@pytest.fixture
def read_events() -> Callable[..., list[SSEEvent]]:
    """Run a streaming request and return its (event, data) pairs."""

    def _read(client: TestClient, method: str, url: str, **kwargs: Any) -> list[SSEEvent]:
        with client.stream(method, url, **kwargs) as response:
            assert response.status_code == 200
            assert "text/event-stream" in response.headers["content-type"]
            return _parse_events(response.iter_lines())

    return _read
