"""
MODULE OVERVIEW:
The error taxonomy of the stream client.

WHAT IS HAPPENING HERE:
None of these are raised at the caller. `MissingAPIKeyError` and `InvalidURLError`
are handed to the subscriber when `start()` cannot open a connection. The two
decoding errors are handed over per `data:` line and the stream carries on.
`TransportTerminated` never leaves the client: it is how a transport tells the
manager why a stream ended, and the manager answers it by reconnecting.
"""

class FlagStreamError(Exception):
    """Base class for everything the stream client reports."""

class MissingAPIKeyError(FlagStreamError):
    def __init__(self, message: str = "API key is missing or empty"):
        super().__init__(message)

class InvalidURLError(FlagStreamError):
    def __init__(self, message: str = "Invalid event source URL", url: str | None = None):
        super().__init__(message if url is None else f"{message}: {url}")
        self.url = url

class DecodingError(FlagStreamError):
    """A `data:` payload was not valid JSON or did not match the event schema."""

    def __init__(self, cause: BaseException, payload: bytes = b""):
        super().__init__(f"Could not decode event payload: {cause}")
        self.cause = cause
        self.payload = payload

class UnhandledDecodingError(FlagStreamError):
    """Decoding a payload failed for a reason other than bad input."""

    def __init__(self, cause: BaseException, payload: bytes = b""):
        super().__init__(f"Unhandled error while decoding event payload: {cause!r}")
        self.cause = cause
        self.payload = payload

class TransportTerminated(FlagStreamError):
    def __init__(self, cancelled: bool = False, timed_out: bool = False, cause: BaseException | None = None):
        self.cancelled = cancelled
        self.timed_out = timed_out
        self.cause = cause
        detail = f" ({cause!r})" if cause is not None else ""
        super().__init__(f"Stream terminated: {self.reason}{detail}")

    @property
    def reason(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.timed_out:
            return "timed_out"
        return "error"
