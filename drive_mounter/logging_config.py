"""
Console and file logging for the mount service.

Log calls may pass extra={"operation": ..., "connection_id": ...}; records
without them get "-" so the file format stays parseable line by line.
"""

import logging
import logging.handlers

from rich.console import Console
from rich.logging import RichHandler

from .config import Settings

CONTEXT_FIELDS = ("operation", "connection_id")

FILE_FORMAT = (
    "%(asctime)s %(levelname)-8s [%(operation)s] [%(connection_id)s] "
    "%(name)s %(filename)s:%(lineno)d - %(message)s"
)


class MountContextFilter(logging.Filter):
    """Fills in the context fields the file format expects."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "-")
        return True


def _console_handler(settings: Settings) -> RichHandler:
    # rclone stderr contains brackets, so markup stays off
    handler = RichHandler(
        console=Console(width=120, stderr=True),
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    handler.setLevel(settings.log_level)
    return handler


def _file_handler(settings: Settings) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=settings.log_file_path,
        when="midnight",
        interval=1,
        backupCount=settings.log_retention_days,
        encoding="utf-8",
    )
    handler.setLevel(settings.log_level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    handler.addFilter(MountContextFilter())
    return handler


def setup_logging(settings: Settings) -> None:
    settings.log_directory.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)

    root_logger.handlers.clear()

    root_logger.addHandler(_console_handler(settings))
    root_logger.addHandler(_file_handler(settings))

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logging.info(
        f"Logging to {settings.log_file_path} at {settings.log_level}, "
        f"keeping {settings.log_retention_days} day(s)",
        extra={"operation": "startup"},
    )
