"""
Shared constants used across all engine modules.

Centralises magic numbers, default headers, and tunables so they live in
exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = "adaptive-speedtest/0.1 (+aiohttp)"

COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

# Random payloads do not compress; ask for the raw bytes.
DOWNLOAD_HEADERS = {**COMMON_HEADERS, "Accept-Encoding": "identity"}
UPLOAD_HEADERS = {**COMMON_HEADERS, "Content-Type": "application/octet-stream"}

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

DEFAULT_SERVER_URL = "http://127.0.0.1:8080"
PING_PATH = "/ping"
TESTFILE_PATH = "/testfile"
UPLOAD_PATH = "/upload"

LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0"})

# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

KB = 1024
MB = 1024 * 1024
MEGABIT = 1024 * 1024           # bits per reported "Mbit"

# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------

PROBE_INITIAL_SIZE = 256 * KB
PROBE_SIZE = 2 * MB
PROBE_COUNT = 3
PROBE_TIMEOUT = 15.0             # seconds per probe request
PROBE_FALLBACK_MBPS = 25.0       # moderate tier when every probe fails

# ---------------------------------------------------------------------------
# Latency
# ---------------------------------------------------------------------------

DEFAULT_PING_COUNT = 20
MIN_PING_COUNT = 5
MAX_PING_COUNT = 100
WARMUP_PINGS = 3
PING_INTERVAL = 0.05             # pause between timed pings
PING_TIMEOUT = 5.0
MIN_TRIM_SAMPLES = 5             # below this, no outlier trimming

DEFAULT_LATENCY_MS = 10.0
DEFAULT_JITTER_MS = 2.0
LOOPBACK_MIN_LATENCY_MS = 0.5
LOOPBACK_MIN_JITTER_MS = 0.1

# ---------------------------------------------------------------------------
# Throughput timing
# ---------------------------------------------------------------------------

DEFAULT_DURATION = 15.0          # seconds for download / upload
MIN_DURATION = 1.0
MAX_DURATION = 120.0
DEFAULT_WARMUP = 5.0             # discard speed samples in this window
GRACE_SECONDS = 2.0              # max unwind time after the test window
SAMPLE_INTERVAL = 0.1            # 100 ms between speed samples
MIN_SAMPLE_ELAPSED = 0.02        # shorter windows are degenerate
RETRY_BACKOFF = 0.5              # pause before replacing a failed stream

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

RANDOM_FILL_LIMIT = 64 * KB      # largest single secure-random fill
MAX_TRANSFER_SIZE = 500 * MB     # server-side cap for download and upload
DEFAULT_TESTFILE_SIZE = 32 * MB
SERVER_CHUNK_SIZE = 64 * KB

# ---------------------------------------------------------------------------
# Speed filtering / smoothing
# ---------------------------------------------------------------------------

MAX_REASONABLE_SPEED = 50_000.0  # Mbps; anything above is a spike
EMA_ALPHA = 0.25                 # exponential moving average weight
