"""Logging setup: JSON records for deployed environments, plain text locally"""

import logging
import sys
from contextvars import ContextVar
from typing import Optional
from pythonjsonlogger import jsonlogger

from app.config import settings

# Bound by RequestIDMiddleware for the lifetime of an HTTP request
request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Bound by RecurringBillingProcessor.run_billing_cron_jobs for one job invocation
billing_run_id: ContextVar[Optional[str]] = ContextVar("billing_run_id", default=None)

_HANDLER_NAME = "rental-billing"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every request or statement at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds service identity and the active request / billing run to each record"""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["environment"] = settings.ENVIRONMENT
        log_record["app_name"] = settings.APP_NAME

        correlation_id = getattr(record, "correlation_id", None) or request_id.get()
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        run_id = billing_run_id.get()
        if run_id:
            log_record["billing_run_id"] = run_id


def _build_formatter() -> logging.Formatter:
    if settings.LOG_FORMAT == "json":
        return CustomJsonFormatter(fmt="%(asctime)s %(level)s %(name)s %(message)s", datefmt=_DATEFMT)
    return logging.Formatter(fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt=_DATEFMT)


def setup_logging() -> None:
    """
    Install the stdout handler on the root logger.

    Safe to call more than once: the API module and the standalone billing
    script both call it, and a second handler would duplicate every line.
    """
    root_logger = logging.getLogger()
    if any(h.get_name() == _HANDLER_NAME for h in root_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(_build_formatter())

    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
