"""
Centralized Logging

Architectural Intent:
- Console logging for the ``keystone`` logger tree, human-readable or JSON
- Installs and deploys additionally keep a JSON run log under
  ``<workspace>/logs`` at DEBUG, whatever the console level
- Step-level records carry ``run_id`` and ``step`` (passed via ``extra=``)
  so the run log can be filtered per step
"""

import json
import logging
import sys
from datetime import datetime, UTC
from pathlib import Path
from typing import Optional

LOGGER_NAME = "keystone"
RUN_LOG_NAME = "keystone.log"
CONTEXT_FIELDS = ("run_id", "step")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with run/step context when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(
    level: int = logging.WARNING,
    json_format: bool = False,
) -> logging.Logger:
    """Reset the ``keystone`` logger to a single stderr handler.

    Args:
        level: Console level (see ``level_from_flags``).
        json_format: Emit JSONFormatter output instead of plain text.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(
        JSONFormatter()
        if json_format
        else logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    logger.addHandler(console)
    return logger


def attach_run_log(log_dir: Path | str) -> Path:
    """Append DEBUG-level JSON records to ``<log_dir>/keystone.log``."""
    path = Path(log_dir) / RUN_LOG_NAME
    path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(
            handler.baseFilename
        ) == path.absolute():
            return path

    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())
    logger.addHandler(file_handler)
    logger.setLevel(logging.DEBUG)
    return path


def level_from_flags(
    verbose: bool = False, debug: bool = False, default: str = "WARNING"
) -> int:
    """CLI flags win; otherwise the configured level name (unknown names mean WARNING)."""
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    return logging.getLevelNamesMapping().get(default.upper(), logging.WARNING)
