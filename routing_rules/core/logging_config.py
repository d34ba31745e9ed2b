# routing_rules/core/logging_config.py
"""
Logging setup for the routing rules core: one JSON object per line.

Library code only ever calls ``structlog.get_logger(__name__)``; whoever owns
the process (an API, a worker, the CLI) calls one of the configure functions
once at startup.
"""
import logging
import logging.config
import os
from typing import Any, Dict, List, Optional

import structlog
from routing_rules.core.config import settings

DEFAULT_SERVICE_NAME = "routing-rules"

# Third-party loggers kept quieter than our own.
QUIET_LIBRARIES: Dict[str, str] = {
    "pydicom": "WARNING",
}


def get_service_name() -> str:
    env_service = os.getenv('ROUTING_RULES_SERVICE_NAME')
    if env_service:
        return env_service
    return settings.SERVICE_NAME or DEFAULT_SERVICE_NAME


def get_log_level() -> str:
    """Get the log level from settings, defaulting to INFO."""
    return (getattr(settings, 'LOG_LEVEL', None) or "INFO").upper()


def _processors() -> List[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ),
        structlog.processors.JSONRenderer(),
    ]


def _dict_config(log_level: str, stream: str, disable_existing_loggers: bool) -> Dict[str, Any]:
    loggers: Dict[str, Any] = {
        "": {"handlers": ["console"], "level": log_level, "propagate": False},
    }
    for name, level in QUIET_LIBRARIES.items():
        loggers[name] = {"handlers": ["console"], "level": level, "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": disable_existing_loggers,
        "formatters": {"plain": {"format": "%(message)s"}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "plain", "stream": stream},
        },
        "loggers": loggers,
    }


def configure_json_logging(
    service_name: Optional[str] = None,
    log_level: Optional[str] = None,
    disable_existing_loggers: bool = False,
    stream: str = "ext://sys.stdout",
) -> structlog.BoundLogger:
    """
    Configure stdlib logging plus structlog for JSON output.

    Args:
        service_name: Bound onto the returned logger as ``service``
        log_level: Override log level (defaults to settings.LOG_LEVEL)
        disable_existing_loggers: Whether to disable existing loggers
        stream: logging.config stream reference for the console handler

    Returns:
        Configured structlog logger instance
    """
    log_level = str(log_level or get_log_level()).upper()
    if service_name is None:
        service_name = get_service_name()

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    logging.config.dictConfig(_dict_config(log_level, stream, disable_existing_loggers))

    structlog.configure(
        processors=_processors(),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger()
    if service_name:
        logger = logger.bind(service=service_name)
    return logger


def configure_cli_logging(log_level: str = "WARNING") -> structlog.BoundLogger:
    # stdout carries the command's JSON result, so diagnostics go to stderr.
    return configure_json_logging(
        service_name=f"{get_service_name()}-cli", log_level=log_level, stream="ext://sys.stderr",
    )
