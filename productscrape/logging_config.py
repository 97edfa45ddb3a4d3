"""Logging for the scraping pipeline.

Human-readable progress goes to stderr; every record, including the
structured pipeline events (``fetch_retry``, ``bot_challenge``,
``list_item_failed``, ``scrape_complete`` ...), is also appended as one JSON
object per line to a daily file under ``logs/``.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "setup_logging",
    "get_logger",
    "log_scrape_event",
    "EventJSONFormatter",
    "DailyJSONLHandler",
    "LOG_DIR",
    "ROOT_LOGGER",
]

ROOT_LOGGER = "productscrape"

LOG_DIR = Path(__file__).parent.parent / "logs"

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class EventJSONFormatter(logging.Formatter):
    """Renders a record as a single JSON line.

    Event payloads attached by ``log_scrape_event`` are merged into the top
    level so each line can be filtered by ``event_type``, ``url`` or ``kind``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event_type = getattr(record, "event_type", None)
        if event_type:
            entry["event_type"] = event_type
            entry.update(getattr(record, "event_data", {}))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class DailyJSONLHandler(logging.Handler):
    """Appends formatted records to ``<prefix>_YYYYMMDD.jsonl``."""

    def __init__(self, log_dir: Path, prefix: str = "scrape") -> None:
        super().__init__()
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self.setFormatter(EventJSONFormatter())

    @property
    def current_file(self) -> Path:
        return self.log_dir / f"{self.prefix}_{datetime.now():%Y%m%d}.jsonl"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            with open(self.current_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


class _ConsoleFormatter(logging.Formatter):
    """Colors the level name when the target stream is a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, colorize: bool) -> None:
        super().__init__(CONSOLE_FORMAT, datefmt="%H:%M:%S")
        self.colorize = colorize

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelname) if self.colorize else None
        if color:
            message = message.replace(record.levelname, f"{color}{record.levelname}{self.RESET}", 1)
        return message


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the ``productscrape`` logger hierarchy.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Threshold for the logger and the console
        log_to_file: Append JSONL records under ``log_dir``
        log_to_console: Write readable lines to stderr
        log_dir: Directory for JSONL files (default: ``LOG_DIR``)

    Returns:
        The package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_to_console:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(_ConsoleFormatter(colorize=sys.stderr.isatty()))
        logger.addHandler(console)

    if log_to_file:
        logger.addHandler(DailyJSONLHandler(log_dir or LOG_DIR))

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger for a pipeline component, e.g. ``get_logger("fetcher")``."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_scrape_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = ROOT_LOGGER,
) -> None:
    """Emit a structured pipeline event.

    Args:
        event_type: Event name, e.g. 'fetch_retry' or 'partial_list_failure'
        data: JSON-serializable payload; an optional 'message' key replaces
            the default message (the event name)
        level: Log level
        logger_name: Component logger to emit on
    """
    logger = get_logger(logger_name)
    if not logger.isEnabledFor(level):
        return
    payload = {k: v for k, v in data.items() if k != "message"}
    logger.log(
        level,
        data.get("message", event_type),
        extra={"event_type": event_type, "event_data": payload},
    )
