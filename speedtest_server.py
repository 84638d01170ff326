#!/usr/bin/env python3
"""
Companion speed test server.

Usage::

    python speedtest_server.py                       # 0.0.0.0:8080, unthrottled
    python speedtest_server.py --port 9000
    python speedtest_server.py --link-rate 50        # emulate a 50 Mbps link
"""
from __future__ import annotations

import argparse
import logging
import sys

from rich.logging import RichHandler

from testserver.app import run_server


def main() -> None:
    parser = argparse.ArgumentParser(description="Speed test server (/ping, /testfile, /upload)")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Listen port (default: 8080)")
    parser.add_argument("--link-rate", type=float, default=None, metavar="MBPS",
                        help="Cap the combined traffic of all clients to MBPS")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
    )

    if args.link_rate is not None and args.link_rate <= 0:
        logging.getLogger(__name__).error("--link-rate must be > 0")
        sys.exit(1)

    run_server(host=args.host, port=args.port, link_rate_mbps=args.link_rate)


if __name__ == "__main__":
    main()
