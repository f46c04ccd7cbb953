"""Test doubles shared by the test modules and ``conftest.py``."""

from __future__ import annotations

import random
from typing import Any, Callable, Iterable, List, Optional

import httpx

TODO_PAYLOAD = {"userId": 1, "id": 1, "title": "delectus aut autem", "completed": False}


class ScriptedRandom(random.Random):
    """Returns predetermined values from ``random()``."""

    def __init__(self, values: Iterable[float]) -> None:
        super().__init__(0)
        self._values = list(values)

    def random(self) -> float:
        return self._values.pop(0)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class RecordingOtelLogger:
    def __init__(self) -> None:
        self.records: List[Any] = []

    def emit(self, record: Any) -> None:
        self.records.append(record)


class ExplodingLogger:
    def emit(self, record: Any) -> None:
        raise RuntimeError("exporter is down")


def upstream_client(handler: Optional[Callable[[httpx.Request], httpx.Response]] = None) -> httpx.AsyncClient:
    def default_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=TODO_PAYLOAD)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler or default_handler))
