"""
Logging setup for applications and tools built on Pyrope.

The library itself only emits records through module loggers
(``logging.getLogger(__name__)``) with structured ``extra`` fields; it
never configures handlers on import. Entry points call setup_logging()
once at startup.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import ObservabilityConfig

NOISY_LOGGERS = ("botocore", "aiobotocore", "urllib3")


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
