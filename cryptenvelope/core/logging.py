"""
Secure Logging Module
=====================

Logging setup for applications using cryptenvelope.

Library modules only ever call logging.getLogger("cryptenvelope.<area>");
handlers are installed by the application through configure_logging() or
get_secure_logger().

Security Features:
- Automatic redaction of keys, passwords and long base64/hex runs
  (envelope fields, raw key dumps)
- Rotating log files with size limits
- Structured JSON output for log aggregation
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Final, Optional, Pattern

if TYPE_CHECKING:
    from cryptenvelope.core.config import LoggingConfig


ROOT_LOGGER_NAME: Final[str] = "cryptenvelope"

_CONSOLE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_FILE_FORMAT: Final[str] = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
)

# Patterns for sensitive data detection
_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    ("password", re.compile(r'(?i)(password|passwd|pwd|passphrase)\s*[=:]\s*["\']?[^\s"\',}]+["\']?')),
    ("key", re.compile(r'(?i)\b(key|secret|private[_-]?key|mac[_-]?key)\s*[=:]\s*["\']?[^\s"\',}]+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\',}]+["\']?')),
    # Base64 runs: envelope iv/cdata/mac fields, encoded keys
    ("base64_secret", re.compile(r'[A-Za-z0-9+/]{40,}={0,2}')),
    # Hex dumps of keys or tags
    ("hex_secret", re.compile(r'(?i)(?:0x)?[a-f0-9]{32,}')),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"


class SecureLogFilter(logging.Filter):
    """
    Log filter that removes sensitive information from log messages.

    Messages and string arguments are scanned for key/password assignments
    and long encoded blobs, which are replaced with [REDACTED].
    """

    def __init__(self, name: str = "", additional_patterns: Optional[list[Pattern[str]]] = None) -> None:
        """
        Initialize the secure log filter.

        Args:
            name: Logger name filter (empty string matches all)
            additional_patterns: Additional regex patterns to redact
        """
        super().__init__(name)
        self._additional_patterns = additional_patterns or []

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place. Always keeps the record."""
        if record.msg and isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._sanitize(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _sanitize(self, text: str) -> str:
        result = text

        for name, pattern in _SENSITIVE_PATTERNS:
            if name in ("base64_secret", "hex_secret"):
                result = pattern.sub(_REDACTED_TEXT, result)
            else:
                result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)

        for pattern in self._additional_patterns:
            result = pattern.sub(_REDACTED_TEXT, result)

        return result


class StructuredLogFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class SecureRotatingFileHandler(RotatingFileHandler):
    """
    Rotating file handler that creates its directory and rejects
    path traversal in the log file name.
    """

    def __init__(
        self,
        filename: str | Path,
        mode: str = "a",
        maxBytes: int = 10 * 1024 * 1024,  # 10 MB default
        backupCount: int = 5,
        encoding: str = "utf-8",
    ) -> None:
        if ".." in Path(filename).parts:
            raise ValueError("Log path cannot contain path traversal sequences")

        log_path = Path(filename).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(log_path),
            mode=mode,
            maxBytes=maxBytes,
            backupCount=backupCount,
            encoding=encoding,
        )


def _build_handlers(
    log_file: Optional[Path],
    enable_console: bool,
    enable_json: bool,
    max_file_size: int,
    backup_count: int,
) -> list[logging.Handler]:
    secure_filter = SecureLogFilter()
    handlers: list[logging.Handler] = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        handlers.append(console_handler)

    if log_file is not None:
        file_handler = SecureRotatingFileHandler(
            filename=log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        if enable_json:
            file_handler.setFormatter(StructuredLogFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)

    for handler in handlers:
        handler.addFilter(secure_filter)

    return handlers


def get_secure_logger(
    name: str,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create a logger with automatic secret filtering.

    Args:
        name: Logger name (typically __name__)
        log_dir: Directory for log files (no file output if not provided)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Whether to output to stderr
        enable_file: Whether to output to a file in log_dir
        enable_json: Whether to use JSON format for file output
        max_file_size: Maximum log file size before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))

    log_file = log_dir / f"{name.replace('.', '_')}.log" if enable_file and log_dir else None
    for handler in _build_handlers(log_file, enable_console, enable_json, max_file_size, backup_count):
        logger.addHandler(handler)

    logger.propagate = False

    return logger


def configure_logging(config: "LoggingConfig") -> logging.Logger:
    """
    Configure the "cryptenvelope" logger tree from a LoggingConfig.

    Call once at application startup. Existing handlers on the package
    logger are replaced.

    Returns:
        The package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file = config.log_dir / "cryptenvelope.log" if config.enable_file and config.log_dir else None
    for handler in _build_handlers(
        log_file,
        config.enable_console,
        config.enable_json,
        config.max_file_size_bytes,
        config.backup_count,
    ):
        logger.addHandler(handler)

    logger.propagate = False

    return logger
