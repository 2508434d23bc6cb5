"""
Structured JSON Logging with Correlation ID
JSON formatter for stdlib logging plus the structlog pipeline used by services
"""

import logging
import sys

import structlog
from pythonjsonlogger import jsonlogger

from prompt_manager.config import settings
from prompt_manager.middleware.correlation_id import get_correlation_id, add_correlation_id

SERVICE_NAME = "prompt-manager"


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with automatic correlation ID injection.

    Adds correlation_id, service and environment to every stdlib log record
    (SQLAlchemy, uvicorn, database bootstrap).
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['correlation_id'] = get_correlation_id()
        log_record['service'] = SERVICE_NAME
        log_record['environment'] = settings.environment


def configure_structlog():
    """
    Event-style JSON logging for the service layer.

    logger.info("prompt_created", prompt_id=...) renders as one JSON line
    with timestamp, level and correlation_id.
    """
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            add_correlation_id,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]
    )


def setup_logging(level: str = None):
    """
    Configure structured JSON logging to stdout.

    Sets up root logger with:
    - CorrelationJsonFormatter for machine-parseable JSON output
    - settings.log_level unless a level is passed
    - StreamHandler outputting to stdout

    Returns:
        logging.Handler: The configured handler (for testing)
    """
    handler = logging.StreamHandler(sys.stdout)

    formatter = CorrelationJsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={
            'asctime': 'timestamp',
            'levelname': 'level'
        }
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel((level or settings.log_level).upper())

    configure_structlog()

    return handler
