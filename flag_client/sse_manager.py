"""
MODULE OVERVIEW:
The realtime flag stream connection manager.

WHAT IS HAPPENING HERE:
`SSEManager` holds one long-lived `GET {base_url}sse/environments/{api_key}/stream`
open and hands every decoded `FlagEvent` (or per-line decoding error) to a single
subscriber callback. The stream is supposed to stay open forever, so whenever the
transport reports that it ended while somebody is still subscribed we open it again
straight away with the same callback. There is no backoff: a server that keeps
closing the stream gets reconnected to as fast as it closes it.

Two locks:
  * `_state_lock` guards the `_SessionState` record (base URL, API key, handle,
    callback, parser, stats). Every read and write of those fields goes through it.
  * `_delivery_lock` serialises "chunk -> parse -> decode -> callback", completion
    handling, and the start/stop transitions against each other. It is re-entrant
    so a subscriber may call `start()` or `stop()` from inside its callback.
The delivery lock is always taken before the state lock, never the other way round.

Errors are delivered to the subscriber as values. `start()` never raises for a
missing API key or a bad URL; it calls the subscriber once with the error instead.
"""
import threading
from dataclasses import dataclass, field
from typing import Callable
import httpx
from loguru import logger

from flag_client.parser import SSEParser, decode_flag_event
from flag_client.transport import HttpxTransport, StreamHandle, StreamHandler, StreamTransport
from flag_shared.client_utils import log_connection, make_client_stats, redact_url, snapshot_stats, utc_now
from flag_shared.config import settings
from flag_shared.errors import FlagStreamError, InvalidURLError, MissingAPIKeyError, TransportTerminated
from flag_shared.models import ConnectionStats, FlagEvent, StreamRequest

OnEvent = Callable[[FlagEvent | FlagStreamError], None]

STREAM_PATH = "sse/environments/{api_key}/stream"

STREAM_HEADERS = {
    "Accept": "text/event-stream, application/json; charset=utf-8",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

def build_stream_url(base_url: str, api_key: str) -> str:
    """Compose the stream URL, raising InvalidURLError if it cannot be built."""
    raw = base_url.rstrip("/") + "/" + STREAM_PATH.format(api_key=api_key)
    # The key is a single path segment; anything that would split or end the path is invalid
    if api_key in (".", "..") or any(c in "/?#" or c.isspace() for c in api_key):
        raise InvalidURLError(url=redact_url(raw, api_key))
    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as e:
        raise InvalidURLError(url=redact_url(raw, api_key)) from e
    if url.scheme not in ("http", "https") or not url.host:
        raise InvalidURLError(url=redact_url(raw, api_key))
    # Normalisation must not have moved the request to another endpoint
    if not url.path.endswith("/" + STREAM_PATH.format(api_key=api_key)):
        raise InvalidURLError(url=redact_url(raw, api_key))
    return str(url)

@dataclass
class _SessionState:
    base_url: str
    api_key: str | None
    handle: StreamHandle | None = None
    on_event: OnEvent | None = None
    parser: SSEParser = field(default_factory=SSEParser)
    stats: dict = field(default_factory=make_client_stats)

class SSEManager(StreamHandler):
    def __init__(
        self,
        transport: StreamTransport | None = None,
        base_url: str = settings.BASE_URL,
        api_key: str | None = settings.API_KEY,
        decode: Callable[[bytes], FlagEvent] = decode_flag_event,
    ):
        self._transport = transport or HttpxTransport()
        self._state = _SessionState(base_url=base_url, api_key=api_key, parser=SSEParser(decode))
        self._state_lock = threading.Lock()
        self._delivery_lock = threading.RLock()

    # ==========================
    # CONFIGURATION
    # ==========================
    @property
    def base_url(self) -> str:
        with self._state_lock:
            return self._state.base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        with self._state_lock:
            self._state.base_url = value

    @property
    def api_key(self) -> str | None:
        with self._state_lock:
            return self._state.api_key

    @api_key.setter
    def api_key(self, value: str | None) -> None:
        with self._state_lock:
            self._state.api_key = value

    @property
    def is_active(self) -> bool:
        with self._state_lock:
            return self._state.on_event is not None

    def stats(self) -> ConnectionStats:
        with self._state_lock:
            return snapshot_stats(self._state.stats)

    # ==========================
    # LIFECYCLE
    # ==========================
    def start(self, on_event: OnEvent) -> None:
        """Subscribe `on_event` and open the stream, replacing any running session."""
        with self._delivery_lock:
            self._open(on_event, reconnect=False)

    def stop(self) -> None:
        """Cancel the stream and drop the subscriber. Safe to call when not started."""
        with self._delivery_lock:
            handle = self._teardown()
        if handle is not None:
            logger.info("protocol=sse event=stop reason=caller")

    def close(self) -> None:
        self.stop()
        self._transport.close()

    def __enter__(self) -> "SSEManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _open(self, on_event: OnEvent, reconnect: bool) -> None:
        with self._state_lock:
            api_key = self._state.api_key
            base_url = self._state.base_url

        try:
            if not api_key:
                raise MissingAPIKeyError()
            url = build_stream_url(base_url, api_key)
        except (MissingAPIKeyError, InvalidURLError) as e:
            logger.warning(f"protocol=sse event=start_failed reconnect={reconnect} reason='{e}'")
            self._teardown()
            self._notify(on_event, e)
            return

        request = StreamRequest(url=url, headers=dict(STREAM_HEADERS))
        handle = self._transport.open_stream(request, self)

        # Handle and callback change together so neither is ever visible without the other
        with self._state_lock:
            previous = self._state.handle
            self._state.handle = handle
            self._state.on_event = on_event
            # A new session never continues the previous one's partial line
            self._state.parser.reset()
            if reconnect:
                self._state.stats["reconnect_count"] += 1
            self._state.stats["connected_at"] = utc_now()

        # On reconnect the previous handle has already completed
        if previous is not None and not reconnect:
            previous.cancel()
        log_connection("reconnect" if reconnect else "connect", redact_url(url, api_key))
        handle.resume()

    def _teardown(self) -> StreamHandle | None:
        with self._state_lock:
            handle = self._state.handle
            self._state.handle = None
            self._state.on_event = None
            self._state.parser.reset()
        if handle is not None:
            handle.cancel()
        return handle

    # ==========================
    # TRANSPORT CALLBACKS
    # ==========================
    def on_data(self, handle: StreamHandle, chunk: bytes) -> None:
        with self._delivery_lock:
            with self._state_lock:
                if handle is not self._state.handle or self._state.on_event is None:
                    return
                on_event = self._state.on_event
                parser = self._state.parser
                self._state.stats["bytes_received"] += len(chunk)
            self._dispatch(handle, on_event, parser.feed(chunk))

    def on_completed(self, handle: StreamHandle, error: TransportTerminated | None) -> None:
        reason = "closed" if error is None else error.reason
        with self._delivery_lock:
            with self._state_lock:
                if handle is not self._state.handle:
                    logger.debug(f"protocol=sse event=stale_completion reason={reason}")
                    return
                on_event = self._state.on_event
                parser = self._state.parser

            if on_event is None:
                self._teardown()
                return

            if error is None:
                self._dispatch(handle, on_event, parser.flush())
                with self._state_lock:
                    if handle is not self._state.handle:
                        return
            elif parser.pending:
                logger.debug(f"protocol=sse event=partial_line_dropped bytes={len(parser.pending)}")
            if error is not None and error.cause is not None:
                logger.debug(f"protocol=sse event=transport_error cause={error.cause!r}")

            logger.info(f"protocol=sse event=dropped reason={reason} action=reconnect")
            self._open(on_event, reconnect=True)

    def _dispatch(self, handle: StreamHandle, on_event: OnEvent, results: list) -> None:
        for result in results:
            with self._state_lock:
                # The subscriber may have stopped or restarted from inside an earlier callback
                if handle is not self._state.handle or on_event is not self._state.on_event:
                    return
                stats = self._state.stats
                if isinstance(result, FlagStreamError):
                    stats["decode_failures"] += 1
                else:
                    stats["events_received"] += 1
                    stats["last_event_at"] = utc_now()

            if isinstance(result, FlagStreamError):
                logger.warning(f"protocol=sse event=decode_failed error_type={type(result).__name__} reason='{result}'")
            self._notify(on_event, result)

    def _notify(self, on_event: OnEvent, result: FlagEvent | FlagStreamError) -> None:
        try:
            on_event(result)
        except Exception:
            logger.exception("protocol=sse event=subscriber_error")
