"""
Result classification for display.

Speed and latency figures map to the same five labels the result screen
colours by: excellent, good, average, below average, poor.
"""
from __future__ import annotations

from typing import List, Tuple


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

# (minimum Mbps, label, rich colour); first match wins.
_SPEED_CLASSES: List[Tuple[float, str, str]] = [
    (100.0, "excellent", "green"),
    (50.0, "good", "green"),
    (25.0, "average", "yellow"),
    (10.0, "below average", "red"),
    (0.0, "poor", "red"),
]

# (maximum ms, exclusive, label, rich colour); first match wins.
_LATENCY_CLASSES: List[Tuple[float, str, str]] = [
    (20.0, "excellent", "green"),
    (50.0, "good", "green"),
    (100.0, "average", "yellow"),
    (150.0, "below average", "red"),
]


def grade_speed(speed_mbps: float) -> Tuple[str, str]:
    """Return ``(label, colour)`` for a throughput figure."""
    for threshold, label, color in _SPEED_CLASSES:
        if speed_mbps >= threshold:
            return (label, color)
    return ("poor", "red")


def grade_latency(latency_ms: float) -> Tuple[str, str]:
    """Return ``(label, colour)`` for a latency or jitter figure."""
    for threshold, label, color in _LATENCY_CLASSES:
        if latency_ms < threshold:
            return (label, color)
    return ("poor", "red")
