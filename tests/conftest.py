"""Shared fixtures: a recording mock transport and an in-memory sink."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable, Optional

import httpx
import pytest

from stampede_harness.executor import RequestExecutor
from stampede_harness.reset import CacheResetCoordinator

BASE_URL = "http://target"


class RecordingTarget:
    """MockTransport handler that records (path, monotonic time) per request."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, float]] = []
        self.delay_s = 0.0
        self.status = 200
        self.body = b'{"id":1,"name":"Popular Product"}'
        self.unreachable: set[str] = set()
        self.status_by_path: dict[str, int] = {}

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((path, time.monotonic()))
        if path in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        return httpx.Response(self.status_by_path.get(path, self.status), content=self.body)

    def count(self, path: str) -> int:
        return sum(1 for p, _ in self.calls if p == path)

    def times(self, path: str) -> list[float]:
        return [t for p, t in self.calls if p == path]


class ListSink:
    def __init__(self) -> None:
        self.records: list[dict] = []
        self.closed = False

    def emit(self, record: dict) -> None:
        self.records.append(record)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def target() -> RecordingTarget:
    return RecordingTarget()


@pytest.fixture
def sink() -> ListSink:
    return ListSink()


@pytest.fixture
def make_client(target: RecordingTarget) -> Callable[[], httpx.AsyncClient]:
    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(target), base_url=BASE_URL)

    return factory


@pytest.fixture
def make_engine(sink: ListSink) -> Callable[..., tuple[RequestExecutor, CacheResetCoordinator]]:
    """Executor + reset coordinator over a given client."""

    def factory(
        client: httpx.AsyncClient, timeout_s: float = 5.0, leader_wait_s: Optional[float] = None
    ) -> tuple[RequestExecutor, CacheResetCoordinator]:
        executor = RequestExecutor(base_url=BASE_URL, timeout_s=timeout_s, sink=sink, client=client)
        return executor, CacheResetCoordinator(executor, leader_wait_s=leader_wait_s)

    return factory


def ordinals(records: Iterable[dict]) -> list[int]:
    return [record["vu"] for record in records]
