"""
logging_config.py — Centralized Logging Configuration for possync

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so every getLogger("possync.*") call routes through Loguru.

Business Rules:
- All logs go through Loguru (no direct print())
- JSON lines when POSSYNC_LOG_JSON is set, human-readable otherwise
- Optional rotating file sink: 10MB files, 7-day retention

Called by: possync/main.py (on startup)
Depends on: possync/config.py (log_level, log_json, log_file)
"""

import logging
import sys

from loguru import logger


def setup_logging(level: str | None = None, json_logs: bool | None = None, log_file: str | None = None) -> None:
    """Configure Loguru and intercept stdlib logging.

    Call once at startup. Arguments override the values from settings.
    """
    from .config import settings

    logger.remove()

    log_level = (level or settings.log_level).upper()
    as_json = settings.log_json if json_logs is None else json_logs
    file_path = settings.log_file if log_file is None else log_file

    if as_json:
        logger.add(sys.stdout, level=log_level, format="{message}", serialize=True)
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

    if file_path:
        logger.add(
            file_path,
            level=log_level,
            rotation="10 MB",
            retention="7 days",
            compression="gz",
            serialize=True,
        )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, json=as_json)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from stdlib logging internals
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())
