"""Logging sinks shared by the CLI, the monitor loop and the Django service.

Every handler installed here masks Telegram bot tokens and API keys.
"""

import os
import re
import sys
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

SECRET_PATTERNS = (
    (re.compile(r"bot\d+:[A-Za-z0-9_-]+"), "bot<redacted>"),
    (re.compile(r"((?:[?&]|\b)(?:key|api_key|token)=)[^&\s'\"]+", re.IGNORECASE), r"\1<redacted>"),
)

NOISY_LOGGERS = ("aiohttp", "asyncio", "urllib3", "playwright", "redis")


def redact(message: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class RedactSecrets(logging.Filter):
    """Rewrite a record's message with secrets masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _level_from_env(default: int) -> int:
    name = os.environ.get("LEAKGUARD_LOG_LEVEL", "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def _rotating_file_handler(log_file: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        log_file,
        maxBytes=10_000_000,
        backupCount=10,
        encoding="utf-8",
        delay=True,
    )
    base, ext = os.path.splitext(log_file)

    def namer(default_name):
        # leakguard.log.1 -> leakguard_1.log
        index = default_name.rsplit(".", 1)[-1]
        return f"{base}_{index}{ext}" if index.isdigit() else default_name

    handler.namer = namer
    return handler


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """Configure logging sinks and return the package logger.

    Args:
        level: Root log level; ``LEAKGUARD_LOG_LEVEL`` overrides it.
        log_file: Rotating log file. Defaults to ``LEAKGUARD_LOG_FILE`` or
            ``leakguard.log``; an empty value keeps logs on stderr only.

    Returns:
        The ``leakguard`` logger. Calling this again only changes the level.
    """
    level = _level_from_env(level)
    root_logger = logging.getLogger()

    if getattr(configure_logging, "_configured", False):
        root_logger.setLevel(level)
        return logging.getLogger("leakguard")

    if log_file is None:
        log_file = os.environ.get("LEAKGUARD_LOG_FILE", "leakguard.log")

    root_logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    secrets = RedactSecrets()

    try:
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")
    except (AttributeError, ValueError):
        pass

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(_rotating_file_handler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(secrets)
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    configure_logging._configured = True
    return logging.getLogger("leakguard")
