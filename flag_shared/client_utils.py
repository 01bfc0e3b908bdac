from datetime import datetime, timezone
from loguru import logger

from flag_shared.models import ConnectionStats

def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    The manager creates one in __init__ and mutates it under its state lock.
    Keys: events_received, decode_failures, reconnect_count,
          bytes_received, last_event_at, connected_at.
    """
    return {
        "events_received": 0,
        "decode_failures": 0,
        "reconnect_count": 0,
        "bytes_received": 0,
        "last_event_at": None,
        "connected_at": None,
    }

def snapshot_stats(stats: dict) -> ConnectionStats:
    return ConnectionStats(**stats)

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def log_connection(event: str, url: str, extra: dict | None = None) -> None:
    """
    Single structured log entry for a connection lifecycle step.
    Writes: protocol, event, url and any extra fields as key=value pairs.
    """
    log_str = f"protocol=sse event={event} url={url}"
    for k, v in (extra or {}).items():
        log_str += f" {k}={v}"
    logger.info(log_str)

def redact_url(url: str, api_key: str | None) -> str:
    """The API key is part of the stream path; keep it out of the logs."""
    if api_key:
        return url.replace(f"/environments/{api_key}/", f"/environments/{api_key[:4]}***/")
    return url
