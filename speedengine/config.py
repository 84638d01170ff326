"""
User configuration file support.

Reads/writes ``~/.adaptive-speedtest/config.json``.

Supported keys::

    server_url = "http://127.0.0.1:8080"
    ping_count = 20
    download_duration = 15.0
    upload_duration = 15.0
    warmup_seconds = 5.0
    csv_file = ""            # auto-append CSV path
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from .constants import (
    DEFAULT_DURATION,
    DEFAULT_PING_COUNT,
    DEFAULT_SERVER_URL,
    DEFAULT_WARMUP,
)

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".adaptive-speedtest")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = {
    "server_url": DEFAULT_SERVER_URL,
    "ping_count": DEFAULT_PING_COUNT,
    "download_duration": DEFAULT_DURATION,
    "upload_duration": DEFAULT_DURATION,
    "warmup_seconds": DEFAULT_WARMUP,
    "csv_file": "",
}


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load config from disk, returning defaults for missing keys."""
    path = _config_path()
    config = dict(DEFAULTS)

    if not os.path.isfile(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return config

    if isinstance(user, dict):
        config.update({k: v for k, v in user.items() if k in DEFAULTS})
    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def get_config_value(key: str) -> Any:
    """Get a single config value."""
    if key not in DEFAULTS:
        raise KeyError(f"Unknown config key: {key}")
    return load_config()[key]


def set_config_value(key: str, value: Any) -> str:
    """Set a single config value and persist.  Returns file path."""
    if key not in DEFAULTS:
        raise KeyError(f"Unknown config key: {key}")
    config = load_config()
    config[key] = value
    return save_config(config)


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()
