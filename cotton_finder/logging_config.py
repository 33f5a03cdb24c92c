"""Logging configuration for ingestion runs and catalog access.

Console output is human-readable; every record is also appended to a
daily JSONL file so a run can be inspected afterwards.
"""

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Dict, Optional

__all__ = [
    "setup_logging",
    "get_logger",
    "log_scrape_event",
    "LOG_DIR",
    "ROOT_LOGGER_NAME",
]

ROOT_LOGGER_NAME = "cotton_finder"

LOG_DIR = Path(os.getenv("COTTON_LOG_DIR", Path(__file__).parent.parent / "logs"))


class JSONLFileHandler(logging.Handler):
    """Writes one JSON object per record, rotating the file daily."""

    def __init__(self, log_dir: Path, prefix: str = "ingest"):
        super().__init__()
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self._current_date: Optional[str] = None
        self._stream: Optional[IO[str]] = None

    def _get_stream(self) -> IO[str]:
        today = datetime.now().strftime("%Y%m%d")
        if today != self._current_date or self._stream is None:
            if self._stream is not None:
                self._stream.close()
            self._current_date = today
            path = self.log_dir / f"{self.prefix}_{today}.jsonl"
            self._stream = open(path, "a", encoding="utf-8")
        return self._stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: Dict[str, Any] = {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            event_type = getattr(record, "event_type", None)
            if event_type:
                entry["event_type"] = event_type
            entry.update(getattr(record, "event_data", None) or {})

            stream = self._get_stream()
            stream.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        super().close()


class ColoredConsoleHandler(logging.StreamHandler):
    """Console handler that colours the level name on terminals."""

    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if hasattr(self.stream, "isatty") and self.stream.isatty():
            color = self.COLORS.get(record.levelname, "")
            if color:
                message = message.replace(
                    f"[{record.levelname}]", f"[{color}{record.levelname}{self.RESET}]", 1
                )
        return message


def setup_logging(
    level: int = logging.INFO,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
    prefix: str = "ingest",
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Console logging level (the JSONL file always gets DEBUG)
        log_to_file: Whether to write the JSONL file
        log_to_console: Whether to log to stdout
        log_dir: Custom log directory (default: project logs/)
        prefix: JSONL file name prefix

    Returns:
        The configured ``cotton_finder`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_to_file else level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_to_console:
        console_handler = ColoredConsoleHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
        )
        logger.addHandler(console_handler)

    if log_to_file:
        file_handler = JSONLFileHandler(log_dir or LOG_DIR, prefix=prefix)
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger under the package namespace (``cotton_finder.<name>``)."""
    if name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_scrape_event(
    event_type: str,
    data: Dict[str, Any],
    level: int = logging.INFO,
    logger_name: str = ROOT_LOGGER_NAME,
) -> None:
    """Log a structured event.

    Args:
        event_type: Event name (e.g. 'ingest_start', 'product_error')
        data: Event fields; an optional 'message' key becomes the log message
        level: Log level
        logger_name: Logger to use
    """
    message = data.get("message", event_type)
    fields = {k: v for k, v in data.items() if k != "message"}
    get_logger(logger_name).log(
        level,
        message,
        extra={"event_type": event_type, "event_data": fields},
    )
