#!/usr/bin/env python3
"""
OnAir main entry point.

Allows OnAir to be run as a module: python3 -m onair
"""

import asyncio
import logging
import logging.handlers
import sys

from onair.config import ConfigError, OnAirConfig, load_config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: OnAirConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    if config.log_file:
        # WatchedFileHandler reopens the file after logrotate moves it
        handler = logging.handlers.WatchedFileHandler(config.log_file, mode="a")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)

    # Per-chunk pacer messages are too noisy even at DEBUG
    logging.getLogger("onair.broadcast.pacer").setLevel(logging.INFO)


def main() -> int:
    try:
        config = load_config()
    except ConfigError as e:
        logging.basicConfig(format=LOG_FORMAT)
        logging.error(f"OnAir failed to start: {e}")
        return 1

    setup_logging(config)

    from onair.service import OnAirService

    service = OnAirService(config)
    try:
        asyncio.run(service.run_forever())
    except KeyboardInterrupt:
        logging.info("OnAir shutdown requested")
    except Exception as e:
        logging.error(f"OnAir failed: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
