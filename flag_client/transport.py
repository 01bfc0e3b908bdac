"""
MODULE OVERVIEW:
The transport capability the connection manager streams through.

WHAT IS HAPPENING HERE:
The manager never touches HTTP directly. It asks a `StreamTransport` to open a stream
for a `StreamRequest`, gets back a `StreamHandle`, and from then on the transport
calls back into a `StreamHandler` (the manager) with every chunk of bytes and,
exactly once, with the reason the stream ended. That keeps the manager testable with
a fake transport and keeps threading concerns on this side of the line.

`HttpxTransport` is the real one. Each handle runs its request on its own daemon
thread using a shared `httpx.Client`, so chunks and completions arrive on a thread
that is not the caller's. `cancel()` never blocks: it flags the handle and closes the
response, which knocks the worker out of its blocking read.
"""
import threading
from abc import ABC, abstractmethod
from itertools import count
import httpx
from loguru import logger

from flag_shared.config import settings
from flag_shared.errors import TransportTerminated
from flag_shared.models import StreamRequest

class StreamHandle(ABC):
    @abstractmethod
    def resume(self) -> None:
        """Start streaming. Called once, after the manager has recorded the handle."""

    @abstractmethod
    def cancel(self) -> None:
        pass

class StreamHandler(ABC):
    @abstractmethod
    def on_data(self, handle: StreamHandle, chunk: bytes) -> None:
        pass

    @abstractmethod
    def on_completed(self, handle: StreamHandle, error: TransportTerminated | None) -> None:
        """`error` is None when the server closed the stream cleanly."""

class StreamTransport(ABC):
    @abstractmethod
    def open_stream(self, request: StreamRequest, handler: StreamHandler) -> StreamHandle:
        pass

    def close(self) -> None:
        pass

class HttpxStreamHandle(StreamHandle):
    _ids = count(1)

    def __init__(self, client: httpx.Client, request: StreamRequest, handler: StreamHandler):
        self.request = request
        self._client = client
        self._handler = handler
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._response: httpx.Response | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"FlagStream-{next(self._ids)}", daemon=True
        )

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def resume(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            response = self._response
        if response is not None:
            response.close()

    def _run(self) -> None:
        error = None
        try:
            if not self._cancelled.is_set():
                self._stream()
        except httpx.TimeoutException as e:
            error = TransportTerminated(timed_out=True, cause=e)
        except (httpx.HTTPError, httpx.StreamError) as e:
            error = TransportTerminated(cause=e)
        except Exception as e:
            # Closing the response under a blocked read can surface as anything
            if not self._cancelled.is_set():
                logger.exception(f"protocol=sse event=transport_error thread={self._thread.name}")
            error = TransportTerminated(cause=e)

        if self._cancelled.is_set():
            error = TransportTerminated(cancelled=True)
        self._handler.on_completed(self, error)

    def _stream(self) -> None:
        with self._client.stream(self.request.method, self.request.url, headers=self.request.headers) as response:
            with self._lock:
                self._response = response
            if self._cancelled.is_set():
                return
            response.raise_for_status()
            for chunk in response.iter_bytes():
                if self._cancelled.is_set():
                    break
                self._handler.on_data(self, chunk)

class HttpxTransport(StreamTransport):
    def __init__(
        self,
        client: httpx.Client | None = None,
        connect_timeout_s: float = settings.CONNECT_TIMEOUT_S,
        read_timeout_s: float = settings.READ_TIMEOUT_S,
    ):
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=httpx.Timeout(read_timeout_s, connect=connect_timeout_s))

    def open_stream(self, request: StreamRequest, handler: StreamHandler) -> HttpxStreamHandle:
        return HttpxStreamHandle(self.client, request, handler)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
