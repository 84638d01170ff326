#!/usr/bin/env python3
"""
Adaptive Speedtest CLI -- measure a link against a speed test server.

Usage::

    python speedtest.py                                # rich dashboard
    python speedtest.py --server http://host:8080      # pick a server
    python speedtest.py --simple                       # plain text
    python speedtest.py --json                         # JSON to stdout
    python speedtest.py -o result.json                 # save to file
    python speedtest.py --csv log.csv                  # append CSV row
    python speedtest.py --download-duration 10 --warmup 3
    python speedtest.py --config-set server_url http://host:8080
    python speedtest.py --config-get ping_count
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from rich.logging import RichHandler

from speedengine.config import config_path, get_config_value, load_config, set_config_value
from speedengine.constants import (
    MAX_DURATION,
    MAX_PING_COUNT,
    MIN_DURATION,
    MIN_PING_COUNT,
)
from speedengine.endpoints import Server
from speedengine.session import TestSession, TestStatus, run_speedtest
from ui.dashboard import (
    ProgressDisplay,
    console,
    print_final_results,
    print_header,
    print_latency_details,
    print_speed_result,
    print_tier,
)
from ui.output import (
    append_csv,
    create_result_json,
    format_csv_row,
    format_text_result,
    save_json,
)

logger = logging.getLogger("speedtest")

_PHASE_LABELS = {
    TestStatus.PROBING: "Probing",
    TestStatus.DOWNLOAD: "Downloading",
    TestStatus.UPLOAD: "Uploading",
}


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def _validate(
    ping_count: int,
    download_duration: float,
    upload_duration: float,
    warmup_seconds: float,
) -> None:
    """Raise ``ValueError`` if any parameter is out of range."""
    if not MIN_PING_COUNT <= ping_count <= MAX_PING_COUNT:
        raise ValueError(f"Ping count must be between {MIN_PING_COUNT} and {MAX_PING_COUNT}")
    if not MIN_DURATION <= download_duration <= MAX_DURATION:
        raise ValueError(f"Download duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    if not MIN_DURATION <= upload_duration <= MAX_DURATION:
        raise ValueError(f"Upload duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    if warmup_seconds < 0:
        raise ValueError("Warm-up must be >= 0 s")
    if warmup_seconds >= min(download_duration, upload_duration):
        raise ValueError("Warm-up must be shorter than the download and upload durations")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


# ---------------------------------------------------------------------------
# Progress wiring
# ---------------------------------------------------------------------------

class _PhaseProgress:
    """Restarts the progress bar on every status change."""

    def __init__(self) -> None:
        self.display: Optional[ProgressDisplay] = None

    def on_status(self, status: TestStatus) -> None:
        self.close()
        label = _PHASE_LABELS.get(status)
        if label:
            self.display = ProgressDisplay()
            self.display.start(label)

    def on_progress(self, percent: float, speed_mbps: float) -> None:
        if self.display is not None:
            self.display.update(percent, speed_mbps)

    def close(self) -> None:
        if self.display is not None:
            self.display.stop()
            self.display = None


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_cli_test(
    server: Server,
    *,
    json_output: bool = False,
    output_file: Optional[str] = None,
    csv_file: Optional[str] = None,
    simple: bool = False,
    ping_count: int,
    download_duration: float,
    upload_duration: float,
    warmup_seconds: float,
) -> Optional[Dict[str, Any]]:
    """Run one speed test and render it; returns the JSON document."""
    show_ui = not json_output and not simple
    phases = _PhaseProgress()

    session = TestSession(
        server,
        ping_count=ping_count,
        download_duration=download_duration,
        upload_duration=upload_duration,
        warmup_seconds=warmup_seconds,
        on_progress=phases.on_progress if show_ui else None,
        on_status=phases.on_status if show_ui else None,
    )

    if show_ui:
        print_header(server.base_url)

    try:
        result = await run_speedtest(session)
    except asyncio.CancelledError:
        session.abort()
        raise
    finally:
        phases.close()

    if not result.complete:
        console.print("[yellow]Test aborted before completion[/yellow]")
        return None

    tier = session.tier.value if session.tier else ""

    if show_ui:
        print_tier(session.probe_result, session.tier, session.params)
        print_latency_details(session.latency_result)
        print_speed_result(session.download_result, "Download Results", "green")
        print_speed_result(session.upload_result, "Upload Results", "blue")
        print_final_results(result)
    elif simple:
        print(
            format_text_result(
                latency_ms=result.latency_ms,
                jitter_ms=result.jitter_ms,
                download_mbps=result.download_mbps,
                upload_mbps=result.upload_mbps,
                server_url=server.base_url,
                tier=tier,
            )
        )

    # -- JSON result --------------------------------------------------------
    result_json = create_result_json(
        server_info=server.to_dict(),
        result=result.to_dict(),
        tier=tier,
        parameters=session.params.to_dict() if session.params else None,
        probe_results=session.probe_result.to_dict() if session.probe_result else None,
        latency_results=session.latency_result.to_dict() if session.latency_result else None,
        download_results=session.download_result.to_dict() if session.download_result else None,
        upload_results=session.upload_result.to_dict() if session.upload_result else None,
    )

    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    # -- CSV append ---------------------------------------------------------
    if csv_file:
        append_csv(
            csv_file,
            format_csv_row(
                server.base_url,
                tier,
                result.latency_ms,
                result.jitter_ms,
                result.download_mbps,
                result.upload_mbps,
            ),
        )
        if not json_output:
            console.print(f"[green]CSV row appended to:[/green] {csv_file}")

    return result_json


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------

def _parse_config_value(raw: str) -> Any:
    """JSON literal if it parses (numbers, booleans), else the raw string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def run_config_command(
    get_key: Optional[str] = None,
    set_pair: Optional[List[str]] = None,
) -> str:
    """Handle ``--config-get`` / ``--config-set``; returns the line to print."""
    if set_pair:
        key, raw = set_pair
        path = set_config_value(key, _parse_config_value(raw))
        return f"{key} = {json.dumps(get_config_value(key))} (saved to {path})"
    if get_key:
        return f"{get_key} = {json.dumps(get_config_value(get_key))}"
    return config_path()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser(config: Dict[str, Any]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Adaptive Speedtest -- download, upload, latency and jitter",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--csv", type=str, metavar="FILE", default=config["csv_file"] or None,
                        help="Append results as CSV row")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    # Server
    parser.add_argument("--server", type=str, metavar="URL", default=config["server_url"],
                        help=f"Speed test server base URL (default: {config['server_url']})")

    # Test parameters
    parser.add_argument("--ping-count", type=int, default=config["ping_count"], metavar="N",
                        help=f"Number of ping samples (default: {config['ping_count']})")
    parser.add_argument("--download-duration", type=float, default=config["download_duration"],
                        metavar="SECS", help="Download test duration in seconds")
    parser.add_argument("--upload-duration", type=float, default=config["upload_duration"],
                        metavar="SECS", help="Upload test duration in seconds")
    parser.add_argument("--warmup", type=float, default=config["warmup_seconds"], metavar="SECS",
                        help="Seconds of each transfer phase excluded from the result")

    # Config file
    parser.add_argument("--config-get", type=str, metavar="KEY", help="Print one saved setting")
    parser.add_argument("--config-set", nargs=2, metavar=("KEY", "VALUE"),
                        help="Save a setting used as the default for later runs")
    parser.add_argument("--config-path", action="store_true", help="Print the config file location")
    return parser


def main() -> None:
    args = build_parser(load_config()).parse_args()
    _setup_logging(args.verbose)

    if args.config_get or args.config_set or args.config_path:
        try:
            console.print(run_config_command(args.config_get, args.config_set), highlight=False)
        except KeyError as exc:
            console.print(f"[red]Error: {exc.args[0]}[/red]")
            sys.exit(1)
        return

    try:
        _validate(
            ping_count=args.ping_count,
            download_duration=args.download_duration,
            upload_duration=args.upload_duration,
            warmup_seconds=args.warmup,
        )
        server = Server.from_url(args.server)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    try:
        result = asyncio.run(
            run_cli_test(
                server,
                json_output=args.json,
                output_file=args.output,
                csv_file=args.csv,
                simple=args.simple,
                ping_count=args.ping_count,
                download_duration=args.download_duration,
                upload_duration=args.upload_duration,
                warmup_seconds=args.warmup,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except Exception:
        logger.debug("Speed test failed", exc_info=True)
        console.print("\n[red]Speed test failed. Please try again.[/red]")
        sys.exit(1)

    if result is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
