"""
Structured JSON logging for the kycreview logger hierarchy.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .config import Settings

ROOT_LOGGER = "kycreview"

# Extra fields copied from log records when present
EXTRA_FIELDS = (
    "document_id",
    "workflow_type",
    "step_id",
    "role",
    "actor_id",
    "action",
    "verdict",
    "duration_ms",
    "success",
    "details",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """
    Install a single stream handler on the kycreview logger.

    Calling it again replaces the handler rather than adding another.
    """
    level = settings.log_level if settings else "INFO"
    use_json = settings.log_json if settings else True

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))

    for existing in list(logger.handlers):
        if getattr(existing, "_kycreview_handler", False):
            logger.removeHandler(existing)

    handler = logging.StreamHandler()
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    handler._kycreview_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
