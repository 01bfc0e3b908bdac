"""
Shared fixtures for the flag stream client tests.
"""

import threading

import pytest

from flag_client.transport import StreamHandle, StreamHandler, StreamTransport
from flag_shared.errors import TransportTerminated
from flag_shared.models import StreamRequest


API_KEY = "ser.test-environment-key"


class FakeHandle(StreamHandle):
    """A handle that only records what the manager did to it."""

    def __init__(self, request: StreamRequest, handler: StreamHandler):
        self.request = request
        self.handler = handler
        self.resumed = False
        self.cancel_count = 0

    def resume(self) -> None:
        self.resumed = True

    def cancel(self) -> None:
        self.cancel_count += 1

    def deliver(self, chunk):
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self.handler.on_data(self, chunk)

    def complete(self, error: TransportTerminated | None = None):
        self.handler.on_completed(self, error)


class FakeTransport(StreamTransport):
    """Deterministic transport: nothing happens until a test drives a handle."""

    def __init__(self):
        self.handles: list[FakeHandle] = []
        self.closed = False
        self._lock = threading.Lock()

    def open_stream(self, request: StreamRequest, handler: StreamHandler) -> FakeHandle:
        handle = FakeHandle(request, handler)
        with self._lock:
            self.handles.append(handle)
        return handle

    def close(self) -> None:
        self.closed = True

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


class Recorder:
    """Subscriber callback that keeps every result it is given."""

    def __init__(self):
        self.results = []

    def __call__(self, result):
        self.results.append(result)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def recorder():
    return Recorder()
