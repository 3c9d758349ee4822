"""Structured JSON logging configuration."""
import logging
import sys

from pythonjsonlogger import jsonlogger

from app.core.config import settings
from app.middleware.request_id import RequestIdLogFilter


def setup_logging() -> None:
    """Configure JSON structured logging for production, human-readable for dev."""
    if getattr(settings, 'APP_ENV', 'development') == "production":
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(request_id)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdLogFilter())
        logging.root.handlers = [handler]
        logging.root.setLevel(logging.INFO)
    else:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(name)s %(levelname)s [%(request_id)s] %(message)s",
        )
        for handler in logging.root.handlers:
            handler.addFilter(RequestIdLogFilter())
