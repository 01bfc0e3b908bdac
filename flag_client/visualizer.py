"""
MODULE OVERVIEW:
The Rich terminal dashboard for the flag stream.

WHAT IS HAPPENING HERE:
The manager calls `on_event` from its transport thread; the dashboard only appends to
bounded deques there. The main thread owns the `Live` display and redraws the layout
a few times a second from those deques and the manager's stats snapshot.
"""
import time
from collections import deque
from datetime import datetime
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from flag_client.sse_manager import SSEManager
from flag_shared.errors import FlagStreamError
from flag_shared.models import FlagEvent

class Visualizer:
    def __init__(self, manager: SSEManager):
        self.manager = manager
        self.recent_events = deque(maxlen=10)
        self.errors = deque(maxlen=5)

    def on_event(self, result: FlagEvent | FlagStreamError):
        ts = datetime.now().strftime("%H:%M:%S")
        if isinstance(result, FlagStreamError):
            self.errors.appendleft(f"[{ts}] {type(result).__name__}: {result}")
        else:
            updated = result.updated_at_datetime.strftime("%Y-%m-%d %H:%M:%S")
            self.recent_events.appendleft((ts, updated, f"{result.updated_at:.3f}"))

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main")
        )
        layout["main"].split_row(
            Layout(name="left", ratio=2),
            Layout(name="right", ratio=1)
        )
        layout["right"].split_column(
            Layout(name="stats"),
            Layout(name="errors")
        )

        active = self.manager.is_active
        color = "green" if active else "red"
        status = "STREAMING" if active else "STOPPED"
        layout["header"].update(Panel(f"[{color} bold]Flag stream | {self.manager.base_url} | Status: {status}[/]", style=color))

        table = Table(title="Flag Change Notifications", expand=True)
        table.add_column("Received", justify="left", style="cyan", no_wrap=True)
        table.add_column("Environment updated (UTC)", style="magenta")
        table.add_column("updated_at", style="green")
        for e in list(self.recent_events):
            table.add_row(*e)
        layout["left"].update(Panel(table, title="Feed"))

        stats = self.manager.stats()
        stats_text = (
            f"Events Received: {stats.events_received}\n"
            f"Decode Failures: {stats.decode_failures}\n"
            f"Reconnects: {stats.reconnect_count}\n"
            f"Bytes Received: {stats.bytes_received}"
        )
        layout["stats"].update(Panel(stats_text, title="Connection Stats"))
        layout["errors"].update(Panel("\n".join(list(self.errors)), title="Errors"))
        return layout

    def run(self, duration_s: float):
        self.manager.start(self.on_event)
        deadline = time.monotonic() + duration_s
        try:
            with Live(self.generate_layout(), refresh_per_second=4) as live:
                while time.monotonic() < deadline and self.manager.is_active:
                    live.update(self.generate_layout())
                    time.sleep(0.25)
                live.update(self.generate_layout())
        finally:
            self.manager.stop()
