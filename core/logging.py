"""
Structured logging for the SDK

The SDK only ever logs under the ``apisix`` logger namespace and installs a
NullHandler there. Applications that want the SDK's own JSON or text output
call ``setup_logging()`` explicitly; nothing is configured on import.
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from core.config import Settings

SDK_LOGGER = "apisix"

logging.getLogger(SDK_LOGGER).addHandler(logging.NullHandler())


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping every record with app and environment"""

    def __init__(self, *args, app_name: str = "apisix-sdk", environment: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.app_name = app_name
        self.environment = environment

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["app"] = self.app_name
        if self.environment:
            log_record["environment"] = self.environment
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


class _SDKHandler(logging.StreamHandler):
    """Marker type so repeated setup_logging() calls replace only their own handler"""


def setup_logging(settings: Optional[Settings] = None, stream=None) -> logging.Logger:
    """
    Attach a console handler to the SDK logger namespace

    The root logger and handlers installed by the host application are left
    untouched. Calling this again swaps the previously installed SDK handler.

    Args:
        settings: Level and format source; defaults to a fresh Settings()
        stream: Output stream, stdout by default

    Returns:
        The configured ``apisix`` logger
    """
    settings = settings or Settings()
    logger = logging.getLogger(SDK_LOGGER)
    logger.setLevel(getattr(logging, settings.log_level.upper()))

    for handler in [h for h in logger.handlers if isinstance(h, _SDKHandler)]:
        logger.removeHandler(handler)

    handler = _SDKHandler(stream or sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(
            CustomJsonFormatter(
                "%(timestamp)s %(level)s %(name)s %(message)s",
                app_name=settings.app_name,
                environment=settings.environment,
            )
        )
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    logger.addHandler(handler)
    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter to add context to all log messages"""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **context) -> "LoggerAdapter":
        """Create a new logger with additional context"""
        return LoggerAdapter(self.logger, {**self.extra, **context})


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger with bound context

    Example:
        logger = get_logger("apisix.client", domain="apisix", surface="admin")
        logger.info("Request completed", extra={"status_code": 200})
    """
    return LoggerAdapter(logging.getLogger(name), context)
