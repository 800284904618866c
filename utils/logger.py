import json
import logging
import os
from datetime import UTC, datetime
from typing import Any, Optional

from colorama import Fore, Style, init

init(autoreset=True)


LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def parse_log_level(level: str) -> int:
    """Map a level name (DEBUG, INFO, WARN, ERROR) to a logging constant."""
    try:
        return LOG_LEVELS[level.strip().upper()]
    except KeyError:
        raise ValueError(f"invalid log level: {level}") from None


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured crawl logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "event_type": getattr(record, "event_type", "general"),
            "event_data": getattr(record, "event_data", {}),
        }

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output with crawl event highlighting"""

    COLORS = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.BLUE,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.MAGENTA + Style.BRIGHT,
    }

    EVENT_COLORS = {
        "category": Fore.GREEN,
        "product": Fore.MAGENTA,
        "retry": Fore.YELLOW,
        "fetch": Fore.CYAN,
        "general": Fore.WHITE,
    }

    def format(self, record):
        record.levelname_colored = (
            self.COLORS.get(record.levelname, Fore.WHITE)
            + record.levelname
            + Style.RESET_ALL
        )

        event_type = getattr(record, "event_type", "general")
        record.event_type_colored = (
            self.EVENT_COLORS.get(event_type, Fore.WHITE)
            + event_type.upper()
            + Style.RESET_ALL
        )

        return super().format(record)


class DefaultEventMetadataFilter(logging.Filter):
    """Ensure log records contain event metadata expected by the formatters."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "event_type"):
            record.event_type = "general"
        if not hasattr(record, "event_data"):
            record.event_data = {}
        return True


def setup_logger(
    name: Optional[str] = None,
    level: int = logging.INFO,
    log_file: Optional[str] = "data/logs/crawl.log",
    structured_file: Optional[str] = None,
    console: bool = True,
):
    """Setup logger with file, optional JSON-lines and console handlers.

    Args:
        name: Logger name; None configures the root logger, which every
            ``logging.getLogger(__name__)`` module logger propagates to
        level: Logging level
        log_file: Path to the plain-text log file, or None to skip it
        structured_file: Path to a JSON-lines log file, or None
        console: Whether to enable coloured console logging
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    event_filter = DefaultEventMetadataFilter()

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(event_filter)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(event_type)s] - %(message)s"
            )
        )
        logger.addHandler(file_handler)

    if structured_file:
        os.makedirs(os.path.dirname(structured_file) or ".", exist_ok=True)
        json_handler = logging.FileHandler(structured_file, encoding="utf-8")
        json_handler.setLevel(level)
        json_handler.addFilter(event_filter)
        json_handler.setFormatter(StructuredFormatter())
        logger.addHandler(json_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.addFilter(event_filter)
        console_handler.setFormatter(
            ColoredFormatter(
                "%(asctime)s - %(levelname_colored)s - [%(event_type_colored)s] - %(message)s"
            )
        )
        logger.addHandler(console_handler)

    return logger


def log_event(
    logger: logging.Logger,
    level: int,
    message: str,
    event_type: str = "general",
    exc_info: Any = None,
    **fields: Any,
) -> None:
    """Log ``message`` with structured fields.

    Fields are attached as ``event_data`` for the JSON formatter and appended
    as ``key=value`` pairs so plain-text handlers show them too.
    """
    if not logger.isEnabledFor(level):
        return
    if fields:
        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        message = f"{message} {rendered}"
    logger.log(
        level,
        message,
        exc_info=exc_info,
        extra={"event_type": event_type, "event_data": fields},
    )
