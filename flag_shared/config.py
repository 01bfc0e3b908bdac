"""
MODULE OVERVIEW:
This module provides application-wide configuration using Pydantic Settings.
Where it fits: every default the stream client needs (endpoint, credentials, transport
timeouts, log level) is read from here.

WHAT IS HAPPENING HERE:
Values come from `FLAG_STREAM_*` environment variables or a local `.env` file.
The manager only reads these as defaults; the base URL and API key can still be
changed on a live `SSEManager` instance.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://realtime.flagsmith.com/"

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FLAG_STREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        # Tolerate unrelated env vars so the client works out of the box
        extra="ignore",
    )

    BASE_URL: str = DEFAULT_BASE_URL
    API_KEY: str | None = None
    LOG_LEVEL: str = "INFO"

    # Transport. The stream is held open indefinitely, so the read timeout is the
    # longest silence tolerated before the connection counts as dropped.
    CONNECT_TIMEOUT_S: float = 10.0
    READ_TIMEOUT_S: float = 60.0

    # Parser. A partial line longer than this is dropped up to its next newline.
    MAX_LINE_BYTES: int = 1_048_576

settings = Settings()
