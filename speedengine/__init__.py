"""Speed test engine -- probing, adaptive parameters, measurement, and statistics."""

import logging

from .download import DownloadResult, DownloadTester
from .driver import ThroughputResult
from .endpoints import Server
from .latency import LatencyResult, LatencyTester
from .probe import NetworkProbe, ProbeResult
from .randomdata import random_bytes
from .sampling import CompletionTimeline, Sample, SpeedSampler
from .session import TestResult, TestSession, TestStatus, run_speedtest
from .stats import (
    calculate_jitter,
    calculate_percentile,
    format_latency,
    format_speed,
    reduce_latency,
    reduce_samples,
)
from .tiers import SpeedTier, TestParameters, adapt_parameters, classify_speed
from .transfers import ActiveTransferSet
from .upload import UploadResult, UploadTester

# Library stays quiet unless the application configures logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ActiveTransferSet",
    "CompletionTimeline",
    "DownloadResult",
    "DownloadTester",
    "LatencyResult",
    "LatencyTester",
    "NetworkProbe",
    "ProbeResult",
    "Sample",
    "Server",
    "SpeedSampler",
    "SpeedTier",
    "TestParameters",
    "TestResult",
    "TestSession",
    "TestStatus",
    "ThroughputResult",
    "UploadResult",
    "UploadTester",
    "adapt_parameters",
    "calculate_jitter",
    "calculate_percentile",
    "classify_speed",
    "format_latency",
    "format_speed",
    "random_bytes",
    "reduce_latency",
    "reduce_samples",
    "run_speedtest",
]
