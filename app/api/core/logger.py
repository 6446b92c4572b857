import logging
import logging.config
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s %(module)s:%(lineno)d - %(message)s"


def build_log_config(level: str = "INFO") -> dict:
    """Return the dictConfig used by the API process and uvicorn workers."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            }
        },
        "loggers": {
            "uvicorn.error": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["console"], "level": level, "propagate": False},
            "app": {"handlers": ["console"], "level": level, "propagate": False},
        },
        "root": {"handlers": ["console"], "level": "WARNING"},
    }


def setup_logging(level: Optional[str] = None):
    """Configure logging; ``level`` defaults to DEBUG in debug mode, else INFO."""
    if level is None:
        from app.api.core.config import settings

        level = "DEBUG" if settings.DEBUG else "INFO"
    logging.config.dictConfig(build_log_config(level.upper()))
