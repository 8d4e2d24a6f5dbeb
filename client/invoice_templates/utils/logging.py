# client/invoice_templates/utils/logging.py
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from pythonjsonlogger import jsonlogger
from invoice_templates.config import settings

SERVICE_NAME = os.getenv("SERVICE_NAME", "invoice-templates")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "false").lower() == "true"


class ContextFilter(logging.Filter):
    def filter(self, record):
        # Orchestrator runs pass these through `extra`; default to None if absent
        if not hasattr(record, "template_id"):
            record.template_id = None
        if not hasattr(record, "run_id"):
            record.run_id = None
        record.service = SERVICE_NAME
        return True


def build_formatter() -> jsonlogger.JsonFormatter:
    return jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(service)s %(name)s %(message)s "
        "%(exception)s %(template_id)s %(run_id)s",
        rename_fields={"levelname": "level"},
    )


# Library logger: records carry context fields, output is left to the host app
logger = logging.getLogger("invoice_templates")
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
logger.addFilter(ContextFilter())
logger.addHandler(logging.NullHandler())

_configured = False


def configure_logging(
    level: Optional[str] = None,
    to_file: Optional[bool] = None,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Attach JSON handlers to the package logger. Safe to call more than once.

    Args:
        level: log level name, defaults to LOG_LEVEL
        to_file: also write a rotating client.log, defaults to LOG_TO_FILE
        log_dir: directory for client.log, defaults to settings.log_dir
    """
    global _configured
    logger.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))
    if _configured:
        return logger

    formatter = build_formatter()
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if LOG_TO_FILE if to_file is None else to_file:
        directory = Path(log_dir or settings.log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            directory / "client.log",
            maxBytes=10_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # httpx logs every request at INFO; request summaries come from the client
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _configured = True
    return logger
