"""
Rich-based terminal dashboard for speed test results.

All formatting helpers live in ``speedengine.stats`` -- this module only
does presentation via the ``rich`` library.
"""
from __future__ import annotations

import statistics
from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from speedengine.grading import grade_latency, grade_speed
from speedengine.stats import format_latency, format_speed

console = Console()


# ---------------------------------------------------------------------------
# Histogram helper
# ---------------------------------------------------------------------------

_BARS = "▁▂▃▄▅▆▇█"


def create_histogram(values: List[float]) -> str:
    """Return a single-line Unicode bar-chart."""
    if not values:
        return "No data"

    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        _BARS[min(int((v - lo) / span * (len(_BARS) - 1)), len(_BARS) - 1)]
        for v in values
    )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header(server_url: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Adaptive Speedtest[/bold cyan]\n"
            f"[dim]Server: {server_url}[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_tier(probe, tier, params) -> None:  # noqa: ANN001 (ProbeResult, SpeedTier, TestParameters)
    """Print the probed speed and the parameters chosen for it."""
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column(style="bold")
    note = " [yellow](fallback)[/yellow]" if probe.fallback else ""
    table.add_row("Probe:", f"{format_speed(probe.speed_mbps)}{note}")
    table.add_row("Tier:", tier.value)
    table.add_row(
        "Download:",
        f"{params.download_concurrency} x {params.download_payload_size // (1024 * 1024)} MB",
    )
    table.add_row(
        "Upload:",
        f"{params.upload_concurrency} x {params.upload_payload_size // (1024 * 1024)} MB",
    )
    console.print(Panel(table, title="[bold]Connection[/bold]", border_style="blue"))


def print_latency_details(result) -> None:  # noqa: ANN001 (LatencyResult)
    """Print detailed latency statistics and a histogram."""
    table = Table(title="Latency Details", box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    pings = result.pings
    if pings:
        table.add_row("Min", format_latency(min(pings)))
        table.add_row("Max", format_latency(max(pings)))
        table.add_row("Mean", format_latency(statistics.mean(pings)))
    table.add_row("Latency (trimmed median)", format_latency(result.latency_ms))
    table.add_row("Jitter", f"{result.jitter_ms:.2f} ms")
    table.add_row("Samples", f"{len(pings)}/{result.attempts}")
    console.print(table)

    if pings:
        console.print(
            Panel(
                f"[cyan]{create_histogram(pings)}[/cyan]\n"
                f"[dim]Min: {min(pings):.1f} ms  Max: {max(pings):.1f} ms[/dim]",
                title="Ping Histogram",
            )
        )


def print_speed_result(result, title: str, color: str = "green") -> None:  # noqa: ANN001
    """Print a download or upload result panel."""
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Speed", f"[bold {color}]{format_speed(result.speed_mbps)}[/bold {color}]")
    table.add_row("Data Transferred", f"{result.bytes_total / (1024 * 1024):.1f} MB")
    table.add_row("Duration", f"{result.duration_ms / 1000:.1f} s")
    table.add_row("Connections", str(len(result.connections)))
    table.add_row("Samples", str(len(result.samples)))
    if result.simulated:
        table.add_row("Mode", "[yellow]simulated (loopback)[/yellow]")
    if result.fallback:
        table.add_row("Mode", "[yellow]fallback estimate[/yellow]")
    console.print(table)

    speeds = [s.mbps for s in result.samples]
    if speeds:
        console.print(
            Panel(
                f"[{color}]{create_histogram(speeds)}[/{color}]\n"
                f"[dim]Min: {min(speeds):.1f} Mbps  "
                f"Max: {max(speeds):.1f} Mbps[/dim]",
                title="Speed Over Time",
            )
        )


def print_final_results(result) -> None:  # noqa: ANN001 (TestResult)
    dl_label, dl_color = grade_speed(result.download_mbps or 0.0)
    ul_label, ul_color = grade_speed(result.upload_mbps or 0.0)
    ping_label, ping_color = grade_latency(result.latency_ms or 0.0)

    console.print()
    console.print(
        Panel.fit(
            f"[bold white]   Ping:[/bold white]  [bold yellow]{format_latency(result.latency_ms or 0.0)}[/bold yellow]  "
            f"[dim](jitter: {result.jitter_ms or 0.0:.2f} ms)[/dim]  [{ping_color}]{ping_label}[/{ping_color}]\n"
            f"[bold white]   Download:[/bold white]  [bold green]{format_speed(result.download_mbps or 0.0)}[/bold green]  "
            f"[{dl_color}]{dl_label}[/{dl_color}]\n"
            f"[bold white]   Upload:[/bold white]  [bold blue]{format_speed(result.upload_mbps or 0.0)}[/bold blue]  "
            f"[{ul_color}]{ul_label}[/{ul_color}]",
            title="[bold]Results[/bold]",
            border_style="cyan",
        )
    )
    console.print()


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class ProgressDisplay:
    """Manages a ``rich`` progress bar for one test phase."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[speed]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id = None
        self._last_speed = 0.0
        self._last_percent = 0.0

    def start(self, description: str) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task(description, total=100, speed="")
        self._last_speed = 0.0
        self._last_percent = 0.0

    def update(self, percent: float, speed_mbps: float = 0) -> None:
        if self._task_id is None:
            return
        # Debounce: only update when values change noticeably
        if abs(percent - self._last_percent) < 1.0 and abs(speed_mbps - self._last_speed) < 1.0:
            return
        speed_str = format_speed(speed_mbps) if speed_mbps > 0 else "..."
        self.progress.update(self._task_id, completed=percent, speed=speed_str)
        self._last_percent = percent
        self._last_speed = speed_mbps

    def stop(self) -> None:
        if self._task_id is not None:
            self.progress.stop()
            self._task_id = None
