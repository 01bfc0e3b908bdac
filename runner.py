"""
CLI entrypoint for the realtime flag stream client.
"""
import sys
import time
import typer
from loguru import logger

from flag_client.sse_manager import SSEManager
from flag_client.visualizer import Visualizer
from flag_shared.config import settings
from flag_shared.errors import FlagStreamError

app = typer.Typer(help="Realtime feature-flag stream client")

def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())

@app.command()
def listen(
    api_key: str = typer.Option(settings.API_KEY or "", help="Environment API key (defaults to FLAG_STREAM_API_KEY)"),
    base_url: str = typer.Option(settings.BASE_URL, help="Realtime service base URL"),
    duration: float = typer.Option(60.0, help="Seconds to stay subscribed"),
    plain: bool = typer.Option(False, "--plain", help="Print one line per event instead of the dashboard"),
):
    """Subscribe to the flag stream and show change notifications as they arrive."""
    configure_logging(settings.LOG_LEVEL)
    with SSEManager(base_url=base_url, api_key=api_key) as manager:
        if plain:
            run_plain(manager, duration)
        else:
            try:
                Visualizer(manager).run(duration)
            except KeyboardInterrupt:
                pass

def run_plain(manager: SSEManager, duration: float) -> None:
    def on_event(result):
        if isinstance(result, FlagStreamError):
            typer.echo(f"error {type(result).__name__}: {result}", err=True)
        else:
            typer.echo(f"flags updated_at={result.updated_at}")

    manager.start(on_event)
    try:
        deadline = time.monotonic() + duration
        while time.monotonic() < deadline and manager.is_active:
            time.sleep(0.25)
    except KeyboardInterrupt:
        pass
    finally:
        manager.stop()

@app.command()
def url(
    api_key: str = typer.Option(settings.API_KEY or "", help="Environment API key"),
    base_url: str = typer.Option(settings.BASE_URL, help="Realtime service base URL"),
):
    """Print the stream URL that `listen` would connect to."""
    from flag_client.sse_manager import build_stream_url

    if not api_key:
        typer.echo("API key is missing or empty", err=True)
        raise typer.Exit(1)
    try:
        typer.echo(build_stream_url(base_url, api_key))
    except FlagStreamError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)

if __name__ == "__main__":
    app()
