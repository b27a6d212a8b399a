import logging
import os
from logging.config import dictConfig

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# httpx logs every request at INFO; only show it when HTTP debugging is on.
_HTTP_LOGGERS = ("httpx", "httpcore")


def configure_logging() -> None:
    """Configure portal logging from SAED_LOG_LEVEL and SAED_DEBUG_HTTP."""
    level = os.getenv("SAED_LOG_LEVEL", "INFO").upper()
    debug_http = os.getenv("SAED_DEBUG_HTTP", "0") == "1"
    http_level = "DEBUG" if debug_http else "WARNING"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "portal": {"format": DEFAULT_LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "portal",
                    "stream": "ext://sys.stderr",
                },
            },
            "loggers": {name: {"level": http_level} for name in _HTTP_LOGGERS},
            "root": {
                "handlers": ["console"],
                "level": level,
            },
        }
    )
    logging.getLogger(__name__).debug("Logging configured at %s (http=%s)", level, http_level)
