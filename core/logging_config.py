import logging.config

from core.config import settings


def build_logging_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "root": {"handlers": ["console"], "level": level},
    }


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once at process start."""
    logging.config.dictConfig(build_logging_config(level or settings.LOG_LEVEL))
