"""
Entry point for chunked downloads.

Usage:
    # Download into the current directory with defaults (4 parts, 3 attempts, 5 min)
    python -m rangefetch --url https://example.com/report.pdf

    # Download into a directory with 8 parts
    python -m rangefetch --url https://example.com/big.iso --dest ./downloads --parts 8

    # Expose Prometheus metrics while downloading
    python -m rangefetch --url https://example.com/big.iso --metrics-port 8000

Configuration priority (highest to lowest):
    1. Command line flags
    2. RANGEFETCH_* environment variables
    3. config.yaml (under 'download:')
    4. Defaults

Exit codes:
    0: Download complete
    1: Download failed
    2: Invalid arguments or configuration
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from prometheus_client import start_http_server

from rangefetch.config import DownloadConfig
from rangefetch.download.orchestrator import ChunkedDownloader
from rangefetch.download.models import DownloadResult
from rangefetch.errors.exceptions import ConfigurationError, RangeFetchError
from rangefetch.logging.setup import get_logger, setup_logging
from rangefetch.security.url_validation import validate_download_url

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="rangefetch",
        description="Download a file as concurrent HTTP byte ranges",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--url", required=True, help="File's download URL")
    parser.add_argument(
        "--dest",
        default=".",
        help="Destination directory on the local computer (default: .)",
    )
    parser.add_argument(
        "--parts", type=int, default=None, help="Number of byte ranges (default: 4)"
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Attempts per range before giving up (default: 3)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline for the whole download in seconds (default: 300)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: ./config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Log directory path (default: LOG_DIR env var, else console only)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Write JSON lines to the log file instead of plain text",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for Prometheus metrics server (default: disabled)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> DownloadConfig:
    """Merge command line overrides into the file/env configuration.

    Raises:
        ConfigurationError: If the merged configuration is invalid
    """
    config_path = Path(args.config) if args.config else None
    if config_path is not None and not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    config = DownloadConfig.load_config(config_path)

    overrides = {}
    if args.parts is not None:
        overrides["parts"] = args.parts
    if args.retries is not None:
        overrides["max_retries"] = args.retries
    if args.timeout is not None:
        overrides["timeout_seconds"] = args.timeout

    return replace(config, **overrides).validate()


async def run_download(
    url: str,
    dest: str,
    config: DownloadConfig,
) -> DownloadResult:
    """Run one download, mapping SIGINT/SIGTERM to cancellation."""
    loop = asyncio.get_running_loop()
    cancel_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Shutdown signal received, cancelling download...")
        cancel_event.set()

    # Set up signal handlers (Unix only, Windows uses different mechanism)
    signals_to_handle = []
    if sys.platform != "win32":
        signals_to_handle = [signal.SIGINT, signal.SIGTERM]
        for sig in signals_to_handle:
            try:
                loop.add_signal_handler(sig, signal_handler)
            except (ValueError, RuntimeError):
                # Signal handling not available in this context
                pass

    try:
        downloader = ChunkedDownloader(config=config)
        return await downloader.download(url, dest, cancel_event=cancel_event)
    finally:
        for sig in signals_to_handle:
            try:
                loop.remove_signal_handler(sig)
            except (ValueError, RuntimeError):
                pass


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    global logger
    args = parse_args(argv)

    log_dir_str = args.log_dir or os.getenv("LOG_DIR")
    setup_logging(
        name="rangefetch",
        log_dir=Path(log_dir_str) if log_dir_str else None,
        json_format=args.json_logs,
        console_level=getattr(logging, args.log_level),
    )

    # Re-get logger after setup to use new handlers
    logger = get_logger(__name__)

    is_valid, error = validate_download_url(args.url)
    if not is_valid:
        logger.error(f"File's download url is not valid: {error}")
        return EXIT_USAGE

    try:
        config = build_config(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_USAGE

    if args.metrics_port is not None:
        logger.info(f"Starting metrics server on port {args.metrics_port}")
        start_http_server(args.metrics_port)

    try:
        result = asyncio.run(run_download(args.url, args.dest, config))
    except RangeFetchError as e:
        logger.error(f"Download failed: {e}")
        return EXIT_FAILED

    print(result.path)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
