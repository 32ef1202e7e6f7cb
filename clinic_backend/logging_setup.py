from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler

from .config import LOG_DIR, LOG_LEVEL


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def setup_logger(level: str | None = None, log_dir: str | None = None) -> logging.Logger:
    """
    Configura il root logger (idempotente):
    - console sempre
    - file giornaliero (14 giorni) solo se è indicata una cartella
    """
    logger = logging.getLogger()
    logger.setLevel(level or LOG_LEVEL)

    if getattr(logger, "_clinic_configured", False):
        return logger

    console = logging.StreamHandler()
    console.setFormatter(JsonFormatter())
    logger.addHandler(console)

    log_dir = LOG_DIR if log_dir is None else log_dir
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handler = TimedRotatingFileHandler(
            filename=os.path.join(log_dir, "clinic_backend.log"),
            when="midnight",
            backupCount=14,
            encoding="utf-8",
        )
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    logger._clinic_configured = True  # type: ignore[attr-defined]
    return logger
