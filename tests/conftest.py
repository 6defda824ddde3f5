"""Pytest configuration and fixtures."""

from typing import Callable, List, Tuple

import httpx
import pytest
from prometheus_client import CollectorRegistry

from configmap_reload.metrics import PrometheusMetrics
from configmap_reload.transport import HttpTransport


class RecordingEndpoint:
    """Replays scripted responses and remembers every request it saw.

    Each step is a status code or an exception to raise; the last step
    repeats once the script runs out.
    """

    def __init__(self, steps):
        self._steps = list(steps)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self._steps.pop(0) if len(self._steps) > 1 else self._steps[0]
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step)


@pytest.fixture
def registry():
    """A private registry so metric values never leak between tests."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return PrometheusMetrics(registry)


@pytest.fixture
def webhook() -> Callable[..., Tuple[HttpTransport, RecordingEndpoint]]:
    """Build a transport backed by a scripted in-memory endpoint."""

    def factory(*steps) -> Tuple[HttpTransport, RecordingEndpoint]:
        endpoint = RecordingEndpoint(steps)
        client = httpx.Client(transport=httpx.MockTransport(endpoint))
        return HttpTransport(client=client), endpoint

    return factory
