#!/usr/bin/env python3
"""
Service logger setup

USAGE:
    from core.logger import setup_service_logger

    logger = setup_service_logger("marketplace_service", level="INFO")
"""

import logging
import sys
from typing import Optional

from core.config import LoggingConfig, get_settings

NOISY_LIBRARIES = ("httpx", "httpcore", "asyncpg", "nats")

_configured = False


def setup_service_logger(
    service_name: str,
    level: Optional[str] = None,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """Configure root handlers once and return the service logger"""
    global _configured

    config = config or get_settings().logging
    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)

    if not _configured:
        root = logging.getLogger()
        root.setLevel(log_level)
        formatter = logging.Formatter(config.log_format)

        if config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        if config.quiet_libraries:
            for name in NOISY_LIBRARIES:
                logging.getLogger(name).setLevel(logging.WARNING)

        _configured = True

    logger = logging.getLogger(service_name)
    logger.setLevel(log_level)
    return logger
