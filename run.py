#!/usr/bin/env python3
"""Development launcher for the QR Docs service."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import uvicorn

from qrdocs.utils.logging import configure_logging

BACKEND_APP = "qrdocs.main:app"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
PROJECT_ROOT = Path(__file__).resolve().parent


def parse_args() -> argparse.Namespace:
    """Parse command line arguments for the launcher script."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", DEFAULT_HOST),
        help="Host interface for the QR Docs server.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", DEFAULT_PORT)),
        help="Port for the QR Docs server.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "info"),
        help="Log level passed to Uvicorn.",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() in {"1", "true", "yes"},
        help="Enable autoreload for local development.",
    )
    parser.add_argument(
        "--graceful-timeout",
        type=int,
        default=int(os.getenv("SHUTDOWN_GRACE_SECONDS", "10")),
        help="Seconds to wait for in-flight requests on shutdown.",
    )
    return parser.parse_args()


def main() -> None:
    """Launch a single Uvicorn server for the upload, view and admin routes."""

    args = parse_args()
    configure_logging(args.log_level)
    sys.path.insert(0, str(PROJECT_ROOT))

    uvicorn.run(
        BACKEND_APP,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        reload=args.reload,
        reload_dirs=[str(PROJECT_ROOT / "qrdocs")] if args.reload else None,
        timeout_graceful_shutdown=args.graceful_timeout,
    )


if __name__ == "__main__":
    main()
