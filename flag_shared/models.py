"""
MODULE OVERVIEW:
Typed data structures shared by the parser, the connection manager and the CLI,
powered by Pydantic v2.

WHAT IS HAPPENING HERE:
`FlagEvent` is the only thing the realtime endpoint sends us: a notification that the
environment's flags changed at `updated_at`. Subscribers are expected to refetch flags
when they see a newer timestamp. `StreamRequest` is what the manager hands to the
transport, and `ConnectionStats` is a read-only snapshot of the manager's counters.
"""
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field

class FlagEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Seconds since the epoch, as sent by the server
    updated_at: float

    @property
    def updated_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.updated_at, tz=timezone.utc)

class StreamRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)

class ConnectionStats(BaseModel):
    events_received: int
    decode_failures: int
    reconnect_count: int
    bytes_received: int
    last_event_at: datetime | None
    connected_at: datetime | None
