"""
Output formatting -- JSON export, plain text, and CSV.
"""
from __future__ import annotations

import json
import os
import statistics
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def create_result_json(
    server_info: Dict[str, Any],
    result: Dict[str, Any],
    tier: Optional[str] = None,
    parameters: Optional[Dict[str, Any]] = None,
    probe_results: Optional[Dict[str, Any]] = None,
    latency_results: Optional[Dict[str, Any]] = None,
    download_results: Optional[Dict[str, Any]] = None,
    upload_results: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the JSON document for one run."""
    latency_results = latency_results or {}
    download_results = download_results or {}
    upload_results = upload_results or {}

    pings: List[float] = latency_results.get("pings", [])
    if pings:
        rtt = {
            "min": min(pings),
            "max": max(pings),
            "mean": statistics.mean(pings),
            "median": statistics.median(pings),
        }
    else:
        rtt = {"min": 0, "max": 0, "mean": 0, "median": 0}

    doc: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server": server_info,
        "tier": tier,
        "parameters": parameters or {},
        "ping": result.get("latency_ms"),
        "jitter": result.get("jitter_ms"),
        "latency": {
            "rtt": rtt,
            "count": len(pings),
            "attempts": latency_results.get("attempts", len(pings)),
            "samples": pings,
            "fallback": latency_results.get("fallback", False),
        },
        "download": {
            "speed_mbps": result.get("download_mbps"),
            "bytes": download_results.get("bytes_total", 0),
            "duration_ms": download_results.get("duration_ms", 0),
            "connections": download_results.get("connections", []),
            "samples": download_results.get("samples", []),
            "fallback": download_results.get("fallback", False),
            "simulated": download_results.get("simulated", False),
        },
        "upload": {
            "speed_mbps": result.get("upload_mbps"),
            "bytes": upload_results.get("bytes_total", 0),
            "duration_ms": upload_results.get("duration_ms", 0),
            "connections": upload_results.get("connections", []),
            "samples": upload_results.get("samples", []),
            "fallback": upload_results.get("fallback", False),
            "simulated": upload_results.get("simulated", False),
        },
    }

    if probe_results:
        doc["probe"] = probe_results

    return doc


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except OSError as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise OSError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text / CSV helpers
# ---------------------------------------------------------------------------

def format_text_result(
    latency_ms: float,
    jitter_ms: float,
    download_mbps: float,
    upload_mbps: float,
    server_url: str,
    tier: str,
) -> str:
    sep = "=" * 50
    mid = "-" * 50
    return (
        f"{sep}\n"
        f"Speedtest Results\n"
        f"{sep}\n"
        f"Server: {server_url}\n"
        f"Tier: {tier}\n"
        f"{mid}\n"
        f"Latency: {latency_ms:.1f} ms (jitter: {jitter_ms:.2f} ms)\n"
        f"Download: {download_mbps:.2f} Mbps\n"
        f"Upload: {upload_mbps:.2f} Mbps\n"
        f"{sep}"
    )


def _csv_escape(value: str) -> str:
    """Quote a CSV field when it contains a separator, quote or newline."""
    if any(c in value for c in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_csv_header() -> str:
    return "timestamp,server,tier,latency_ms,jitter_ms,download_mbps,upload_mbps"


def format_csv_row(
    server_url: str,
    tier: str,
    latency_ms: float,
    jitter_ms: float,
    download_mbps: float,
    upload_mbps: float,
) -> str:
    ts = datetime.now(timezone.utc).isoformat()
    return (
        f"{ts},{_csv_escape(server_url)},{_csv_escape(tier)},"
        f"{latency_ms:.1f},{jitter_ms:.2f},{download_mbps:.2f},{upload_mbps:.2f}"
    )


def append_csv(path: str, row: str) -> None:
    """Append a single CSV row, writing the header if the file is new."""
    write_header = not os.path.isfile(path) or os.path.getsize(path) == 0
    with open(path, "a", encoding="utf-8") as fh:
        if write_header:
            fh.write(format_csv_header() + "\n")
        fh.write(row + "\n")
