"""
Speed test server endpoints.

A ``Server`` wraps the base URL of a host exposing ``/ping``,
``/testfile`` and ``/upload`` and derives every request URL from it.
"""
from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Any, Dict
from urllib.parse import urlencode, urlsplit

from .constants import LOOPBACK_HOSTS, PING_PATH, TESTFILE_PATH, UPLOAD_PATH

_bust_counter = itertools.count()


def cache_bust() -> str:
    """Unique token for the ``t`` query parameter."""
    return f"{int(time.time() * 1000)}-{next(_bust_counter)}"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Server:
    """A speed test server reachable at *base_url*."""

    base_url: str

    # -- Constructors -------------------------------------------------------

    @classmethod
    def from_url(cls, url: str) -> Server:
        url = url.strip()
        if "://" not in url:
            url = f"http://{url}"
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Invalid server URL: {url!r}")
        return cls(base_url=url.rstrip("/"))

    # -- Properties ---------------------------------------------------------

    @property
    def hostname(self) -> str:
        return urlsplit(self.base_url).hostname or ""

    @property
    def is_local(self) -> bool:
        """True when client and server share a machine."""
        host = self.hostname.lower()
        return host in LOOPBACK_HOSTS or host.startswith("127.")

    # -- Derived URLs -------------------------------------------------------

    def _url(self, path: str, **params: Any) -> str:
        params["t"] = cache_bust()
        return f"{self.base_url}{path}?{urlencode(params)}"

    def ping_url(self) -> str:
        return self._url(PING_PATH)

    def testfile_url(self, size: int, stream: int = 0) -> str:
        return self._url(TESTFILE_PATH, size=size, stream=stream)

    def upload_url(self) -> str:
        return self._url(UPLOAD_PATH)

    # -- Serialisation ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.base_url,
            "hostname": self.hostname,
            "local": self.is_local,
        }
