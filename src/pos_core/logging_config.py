"""
JSON logging for the ledger services.
"""

import logging
import sys

from pythonjsonlogger import jsonlogger

# Loggers that share the service handler besides the service logger itself.
LEDGER_LOGGERS = ("pos_core", "pos_api", "audit")


def configure_logging(app_name: str, log_level: str = "INFO") -> logging.Logger:
    """
    Send ledger logs to stdout as one JSON object per line.

    Every record carries ``service`` so that the settlement API and any
    workers can share a log sink. Calling this twice is harmless.

    Args:
        app_name: Service name stamped on every record
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    service_logger = logging.getLogger(app_name)
    service_logger.setLevel(level)
    if service_logger.handlers:
        return service_logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
            static_fields={"service": app_name},
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    )
    service_logger.addHandler(handler)

    for name in LEDGER_LOGGERS:
        module_logger = logging.getLogger(name)
        module_logger.setLevel(level)
        if not module_logger.handlers:
            module_logger.addHandler(handler)

    return service_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
