"""
Logging configuration

All workflow modules log under the "fieldops" namespace; the stdout
handler is attached once to that namespace root so child loggers
propagate to it.
"""
import logging
import sys
from fieldops.config import get_settings

settings = get_settings()

ROOT_LOGGER_NAME = "fieldops"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging() -> logging.Logger:
    """Attach the stdout handler to the package root logger (idempotent)"""
    root = logging.getLogger(ROOT_LOGGER_NAME)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the fieldops namespace"""
    configure_logging()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
