"""
Logging setup.

The application logs through the standard library. setup_logging() is called
once from create_app(); modules call get_logger(__name__).
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

SIMPLE_FORMAT = "%(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RequestFormatter(logging.Formatter):
    """Formatter that includes the request line when one is active."""

    def format(self, record):
        from flask import has_request_context, request

        if has_request_context():
            record.url = f"{request.method} {request.path}"
            record.remote_addr = request.remote_addr
        else:
            record.url = "-"
            record.remote_addr = "-"
        return super().format(record)


def setup_logging(app) -> None:
    """
    Configure the package logger for the application.

    Handlers are attached to the "sitetrack" logger (not root) so that test
    runners and WSGI servers keep their own configuration.
    """
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    logger = logging.getLogger("sitetrack")
    logger.setLevel(level)
    logger.handlers = []
    logger.propagate = bool(app.config.get("TESTING"))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
    logger.addHandler(console_handler)

    log_file = app.config.get("LOG_FILE")
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            RequestFormatter(
                fmt="%(asctime)s - %(levelname)s - [%(url)s] - %(remote_addr)s - %(name)s - %(message)s",
                datefmt=DATE_FORMAT,
            )
        )
        logger.addHandler(file_handler)

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logger.debug("Logger initialized (level=%s)", logging.getLevelName(level))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the sitetrack namespace."""
    if not name:
        return logging.getLogger("sitetrack")
    return logging.getLogger(name)
