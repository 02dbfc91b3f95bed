"""
logging_config.py — Centralized Logging Configuration for ShopSync

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so the getLogger() calls in connectors and third-party
libraries route through Loguru with the same format and level.

Business Rules:
- All logs go through Loguru (no direct print() or stdlib handlers)
- JSON format in production for machine parsing
- Human-readable format in development
- Log rotation: 50MB files, 7-day retention (production only)

Called by: shopsync/main.py (lifespan startup)
Depends on: LOG_LEVEL, KEYSTONE_ENVIRONMENT, LOG_FILE env vars
"""

import logging
import os
import sys

from loguru import logger


def setup_logging() -> None:
    """Configure Loguru and intercept stdlib logging.

    Call once at app startup, before any other imports that log.
    """
    logger.remove()

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    is_production = os.getenv("KEYSTONE_ENVIRONMENT", "development") == "production"

    if is_production:
        # Production: JSON lines to stdout (the container runtime collects these)
        logger.add(
            sys.stdout,
            level=log_level,
            format="{message}",
            serialize=True,
        )
        log_file = os.getenv("LOG_FILE")
        if log_file:
            logger.add(
                log_file,
                level=log_level,
                rotation="50 MB",
                retention="7 days",
                compression="gz",
                serialize=True,
            )
    else:
        logger.add(
            sys.stdout,
            level=log_level,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            colorize=True,
        )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, production=is_production)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from stdlib logging internals so Loguru reports the caller
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
