"""JSON line logging for the GrowthLog service."""
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .paths import get_logs_dir

LOG_FILENAME = "growthlog.log.jsonl"

_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonLogFormatter(logging.Formatter):
    """Render records as one JSON object per line, keeping ``extra=`` fields."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": time.time(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED or key in payload:
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = repr(value)
            payload[key] = value
        return json.dumps(payload, ensure_ascii=False)


def _has_handler_for(logger: logging.Logger, path: Path) -> bool:
    return any(
        isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == path
        for handler in logger.handlers
    )


def configure_json_logging(
    working_dir: Path,
    name: str = "growthlog",
    *,
    level: int = logging.INFO,
    logs_dir: Optional[Path] = None,
) -> logging.Logger:
    """Attach a JSON line file handler to the ``growthlog`` logger tree once."""

    target_dir = logs_dir or get_logs_dir(working_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = (target_dir / LOG_FILENAME).resolve()
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not _has_handler_for(logger, log_path):
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(JsonLogFormatter())
        logger.addHandler(handler)
    return logger


def redact_secret(value: Optional[str]) -> str:
    if not value:
        return ""
    if len(value) <= 6:
        return "***"
    return f"{value[:3]}***{value[-2:]}"


__all__ = ["JsonLogFormatter", "LOG_FILENAME", "configure_json_logging", "redact_secret"]
