"""Structured logging setup for localgpt."""

import structlog
from pathlib import Path
from typing import Any, Optional, TextIO
import os


VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Open log file, shared by repeated configure_logging() calls
_log_stream: Optional[TextIO] = None


def log_file_path() -> Path:
    """Location of the JSON log file (~/.cache/localgpt/logs/localgpt.log)."""
    return Path.home() / ".cache" / "localgpt" / "logs" / "localgpt.log"


def _open_log_stream(path: Path) -> TextIO:
    """Return the open stream for `path`, replacing a stream for another path."""
    global _log_stream

    if _log_stream is not None and not _log_stream.closed:
        if Path(_log_stream.name) == path:
            return _log_stream
        _log_stream.close()

    path.parent.mkdir(parents=True, exist_ok=True)
    _log_stream = open(path, "a", buffering=1)
    return _log_stream


def close_logging() -> None:
    """Close the log file opened by configure_logging(), if any."""
    global _log_stream

    if _log_stream is not None:
        _log_stream.close()
        _log_stream = None


def configure_logging() -> None:
    """
    Configure structlog for JSON logging to ~/.cache/localgpt/logs/localgpt.log.

    Safe to call more than once: the CLI group calls it on every invocation,
    and the same file handle is reused until HOME points somewhere else.

    Log level can be controlled via LOCALGPT_LOG_LEVEL environment variable:
    - Set to "DEBUG" to see request payloads and every decoded stream record
    - Defaults to "INFO" if not set or not recognized

    Example:
        LOCALGPT_LOG_LEVEL=DEBUG localgpt run Summarize --input notes.md

        # View logs with jq for readability:
        tail -f ~/.cache/localgpt/logs/localgpt.log | jq .
    """
    stream = _open_log_stream(log_file_path())

    log_level = os.environ.get("LOCALGPT_LOG_LEVEL", "INFO").upper()
    if log_level not in VALID_LEVELS:
        log_level = "INFO"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=stream),
        # Loggers bound before a reconfigure must pick up the new stream
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger bound to `name` (typically __name__)."""
    return structlog.get_logger(name)
