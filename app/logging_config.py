"""
logging_config.py — Loguru setup for the production tracker

Loguru is the only log backend. Service modules that use
logging.getLogger(__name__) are bridged in through _StdlibBridge, so the
request id bound by the middleware shows up on their lines as well.

Business Rules:
- Every line carries extra.request_id ("-" outside a request)
- JSON lines when app_url is a real host; coloured text on localhost
- Optional log_file: 50 MB rotation, 7 days kept, gzip

Called by: app/main.py lifespan
Depends on: app/config.py (log_level, app_url, log_file)
"""

import logging
import sys

from loguru import logger

from .config import settings

_DEV_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[request_id]}</magenta> | <cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
_QUIET = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine", "multipart")


def is_local(app_url: str) -> bool:
    return not app_url or any(h in app_url for h in ("localhost", "127.0.0.1", "0.0.0.0"))


def setup_logging(level: str | None = None, app_url: str | None = None,
                  log_file: str | None = None) -> None:
    """(Re)configure sinks. Arguments default to the loaded settings."""
    level = (level or settings.log_level).upper()
    app_url = settings.app_url if app_url is None else app_url
    log_file = settings.log_file if log_file is None else log_file
    json_lines = not is_local(app_url)

    logger.remove()
    logger.configure(extra={"request_id": "-"})
    if json_lines:
        logger.add(sys.stdout, level=level, serialize=True)
    else:
        logger.add(sys.stdout, level=level, format=_DEV_FORMAT, colorize=True)
    if log_file:
        logger.add(log_file, level=level, rotation="50 MB", retention="7 days",
                   compression="gz", serialize=json_lines)

    logging.basicConfig(handlers=[_StdlibBridge()], level=0, force=True)
    for name in _QUIET:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging ready (level={}, json={})", level, json_lines)


class _StdlibBridge(logging.Handler):
    """Forward stdlib records to Loguru at the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # first frame outside the logging module is the real caller
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())
