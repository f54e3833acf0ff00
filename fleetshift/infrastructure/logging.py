"""
Centralized Logging

Architectural Intent:
- Provides human-readable or structured JSON logging for all FleetShift
  components
- Centralizes log configuration to avoid scattered print() calls
- Supports configurable log levels via CLI flags (--verbose, --debug) and an
  optional debug log file that always records DEBUG
"""

import json
import logging
import os
import sys
from datetime import datetime, UTC
from typing import Optional

_HUMAN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure logging for the FleetShift application.

    Args:
        level: Console logging level (DEBUG, INFO, WARNING, etc.)
        json_format: If True, use JSON structured output. Otherwise human-readable.
        log_file: Optional path of a debug log that receives every record.
    """
    root = logging.getLogger("fleetshift")
    root.setLevel(logging.DEBUG if log_file else level)

    # Remove existing handlers
    for existing in list(root.handlers):
        root.removeHandler(existing)
        existing.close()

    formatter = JSONFormatter() if json_format else logging.Formatter(_HUMAN_FORMAT)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    if log_file:
        file_handler = logging.FileHandler(os.path.expanduser(log_file))
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
