# app/utils/my_logging.py
"""Logging configuration"""
import logging
import sys
from app.config.settings import get_settings

# Chatty third-party loggers, quiet unless LOG_LEVEL is DEBUG
NOISY_LOGGERS = [
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic",
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "google.auth.transport.requests",
    "urllib3",
    "celery.redirected",
    "uvicorn.access",
]


def setup_logging(verbose=True):
    """Configure application logging for the API and the worker"""
    settings = get_settings()

    if verbose:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
