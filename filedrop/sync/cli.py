"""Command line entry point for the sync client (``filedrop-sync``)."""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from filedrop.config import LOGGING_SETTINGS, VERSION
from filedrop.errors import ConfigurationError
from filedrop.models.endpoint import ClientConfig
from filedrop.sync.registry import EndpointRegistry, client_id, load_client_config
from filedrop.sync.scheduler import SyncScheduler
from filedrop.utils import get_logger, setup_logging

logger = get_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        prog="filedrop-sync",
        description="Poll one or more FileDrop servers and download their pending files.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Path to the JSON client configuration (default: ./config.json).",
    )
    parser.add_argument(
        "--log-level",
        default=str(LOGGING_SETTINGS["level"]),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level (default: INFO).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser.parse_args(argv)


async def run_client(config: ClientConfig) -> SyncScheduler:
    registry = EndpointRegistry(config, client_id=client_id())
    scheduler = SyncScheduler(registry)

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, scheduler.stop)
        except (NotImplementedError, RuntimeError):  # pragma: no cover - non-unix event loops
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(scheduler.stop))

    await scheduler.run()
    return scheduler


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    setup_logging(log_level=args.log_level, log_file=LOGGING_SETTINGS["file"])

    try:
        config = load_client_config(args.config)
    except ConfigurationError as e:
        if e.code == "CONFIG_CREATED":
            logger.info("Please edit the configuration and restart the client", path=str(args.config))
            return 0
        logger.error("Invalid configuration", error=e.message)
        return 1

    logger.info("Starting FileDrop sync client", version=VERSION, servers=len(config.servers))
    scheduler = asyncio.run(run_client(config))
    scheduler.print_stats()
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
