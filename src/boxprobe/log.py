# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Logging setup for the boxprobe CLI and exporter."""

from __future__ import annotations

import json
import logging
import os

DEFAULT_LOG_LEVEL = os.getenv("BOXPROBE_LOG_LEVEL", "WARNING").upper()
DEFAULT_LOG_FORMAT = os.getenv("BOXPROBE_LOG_FORMAT", "logfmt").lower()
LOG_FORMATS = ("logfmt", "json")

# httpx logs every request at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, sort_keys=True)


def _formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return JSONFormatter()
    return logging.Formatter("ts=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)r")


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure standard logging for CLI/exporter use; an existing root handler is left in place."""
    effective_level = getattr(logging, (level or DEFAULT_LOG_LEVEL).upper(), logging.WARNING)
    effective_format = (fmt or DEFAULT_LOG_FORMAT).lower()
    if effective_format not in LOG_FORMATS:
        raise ValueError(f"unknown log format {effective_format!r}; expected one of {', '.join(LOG_FORMATS)}")

    handler = logging.StreamHandler()
    handler.setFormatter(_formatter(effective_format))
    logging.basicConfig(level=effective_level, handlers=[handler])

    library_level = logging.NOTSET if effective_level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


__all__ = ["DEFAULT_LOG_FORMAT", "DEFAULT_LOG_LEVEL", "JSONFormatter", "LOG_FORMATS", "setup_logging"]
