"""Logging bootstrap for the preview service."""
import logging
from logging.config import dictConfig


def configure_logging(level: str = "INFO") -> None:
    """Send every logger to a single console handler at the given level."""

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": level,
                }
            },
            "root": {"level": level, "handlers": ["console"]},
        }
    )
    logging.getLogger(__name__).debug("Logging configured at %s", level)


__all__ = ["configure_logging"]
