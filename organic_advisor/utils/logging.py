"""
Logging setup for the Organic Advisor CLI.

Call ``configure_logging(config)`` once at CLI entry.  Library modules only
ever do ``logger = logging.getLogger(__name__)``.

Console logs go to stderr so that command output on stdout (action cards,
``daily-action --json``) can be piped cleanly.  An optional file handler
mirrors the console.

With ``json_format = true`` each record is one JSON object per line::

    {"ts": "2025-07-15T08:00:00Z", "level": "WARNING",
     "logger": "organic_advisor.service", "msg": "...", "user_id": "farmer-42"}

Values passed through ``extra=`` (``user_id``, ``action_id``, ...) become
top-level keys.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from organic_advisor.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Third-party loggers that are too chatty at INFO (one line per HTTP request).
_QUIET_LOGGERS = ("httpx", "httpcore")

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: ``ts``, ``level``, ``logger``, ``msg`` + extras."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(LOG_DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        line.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


def build_handlers(config: "LoggingConfig") -> list[logging.Handler]:
    """Console (stderr) handler plus a file handler when ``log_file`` is set."""
    formatter: logging.Formatter = (
        JsonLineFormatter() if config.json_format
        else logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(config: "LoggingConfig") -> None:
    """Replace the root logger's handlers according to ``config``."""
    level = logging.getLevelName(config.level)
    logging.basicConfig(level=level, handlers=build_handlers(config), force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
