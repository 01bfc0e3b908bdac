"""
MODULE OVERVIEW:
The incremental `text/event-stream` parser.

WHAT IS HAPPENING HERE:
The realtime endpoint only ever puts something useful on `data:` lines, one JSON
document per line. So instead of assembling full SSE events (`event:` + `id:` + `data:`
terminated by a blank line) we look at each line on its own and decode every `data:`
payload straight into the domain event. Everything else (blank lines, `:` comments,
`event:`, `id:`, `retry:`) is skipped.


The transport hands us whatever bytes arrived, which can end halfway through a line.
The unfinished tail is kept as a list of pieces and only joined once its newline
arrives, so a long line costs one join rather than one copy per chunk. A tail that
grows past `max_line_bytes` is reported once as a decoding error and everything up
to the next newline is thrown away. We stay in bytes the whole way so a multi-byte
UTF-8 character split across two chunks is never decoded on its own.
"""
import json
from typing import Callable, Generic, TypeVar
from pydantic import ValidationError

from flag_shared.config import settings
from flag_shared.errors import DecodingError, UnhandledDecodingError
from flag_shared.models import FlagEvent

T = TypeVar("T")

DATA_PREFIX = b"data:"

# Bad input, as opposed to a bug in the decoder
DECODE_ERRORS = (ValidationError, json.JSONDecodeError)

def decode_flag_event(payload: bytes) -> FlagEvent:
    return FlagEvent.model_validate_json(payload)

class SSEParser(Generic[T]):
    def __init__(self, decode: Callable[[bytes], T] = decode_flag_event, max_line_bytes: int = settings.MAX_LINE_BYTES):
        self._decode = decode
        self._max_line_bytes = max_line_bytes
        self._pieces: list[bytes] = []
        self._pending_size = 0
        # Set after an oversized line was dropped, until its newline shows up
        self._discarding = False

    @property
    def pending(self) -> bytes:
        """The partial line waiting for the rest of its bytes."""
        return b"".join(self._pieces)

    def feed(self, chunk: str | bytes) -> list[T | DecodingError | UnhandledDecodingError]:
        """Consume a raw chunk and return the results of every complete `data:` line in it, in order."""
        if not chunk:
            return []
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")

        results = []
        start = 0
        while True:
            end = chunk.find(b"\n", start)
            if end == -1:
                break
            if self._discarding:
                self._discarding = False
            else:
                self._pieces.append(chunk[start:end])
                result = self._parse_line(self._take_line())
                if result is not None:
                    results.append(result)
            start = end + 1

        tail = chunk[start:]
        if tail and not self._discarding:
            self._pieces.append(tail)
            self._pending_size += len(tail)
            if self._pending_size > self._max_line_bytes:
                self._pieces.clear()
                self._pending_size = 0
                self._discarding = True
                results.append(DecodingError(ValueError(f"line longer than {self._max_line_bytes} bytes")))
        return results

    def flush(self) -> list[T | DecodingError | UnhandledDecodingError]:
        """Parse a final line the stream ended without terminating."""
        self._discarding = False
        line = self._take_line()
        result = self._parse_line(line) if line else None
        return [result] if result is not None else []

    def reset(self) -> None:
        self._pieces.clear()
        self._pending_size = 0
        self._discarding = False

    def _take_line(self) -> bytes:
        line = self._pieces[0] if len(self._pieces) == 1 else b"".join(self._pieces)
        self._pieces.clear()
        self._pending_size = 0
        return line

    def _parse_line(self, line: bytes):
        if line.endswith(b"\r"):
            line = line[:-1]
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        try:
            return self._decode(payload)
        except DECODE_ERRORS as e:
            return DecodingError(e, payload)
        except Exception as e:
            return UnhandledDecodingError(e, payload)
