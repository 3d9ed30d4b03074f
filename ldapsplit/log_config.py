"""Logging setup for the command line tool.

Diagnostics go to stderr; an optional log file gets the same records through
a RotatingFileHandler. Every line carries a timestamp so a failed run can be
matched against directory server logs.
"""
from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Handlers installed by us, removed again on reconfiguration.
_file_handler: logging.Handler | None = None
_console_handler: logging.Handler | None = None


def _normalize_level(level: str) -> int:
    level_str = (level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    return getattr(logging, level_str, logging.INFO)


def setup_logging(
    level: str = "INFO",
    log_file: str = "",
    max_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure the root logger.

    - Console handler on stderr (stdout stays free for piping).
    - File handler only when ``log_file`` is given, rotated by size.
    - Calling again replaces the handlers installed by the previous call.
    """
    global _file_handler, _console_handler

    log_level = _normalize_level(level)
    root = logging.getLogger()

    if _file_handler and _file_handler in root.handlers:
        root.removeHandler(_file_handler)
        _file_handler.close()
    _file_handler = None
    if _console_handler and _console_handler in root.handlers:
        root.removeHandler(_console_handler)
    _console_handler = None

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    _console_handler = ch
    root.addHandler(ch)

    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(
            log_file,
            maxBytes=max(1, int(max_size_mb)) * 1024 * 1024,
            backupCount=max(0, int(backup_count)),
            encoding="utf-8",
        )
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        _file_handler = fh
        root.addHandler(fh)

    root.setLevel(log_level)

    # ldap3 logs every PDU at DEBUG through its own helpers
    logging.getLogger("ldap3").setLevel(max(log_level, logging.WARNING))

    logging.getLogger("ldapsplit").debug(
        "Logging configured: level=%s, file=%s", logging.getLevelName(log_level), log_file or "-",
    )
