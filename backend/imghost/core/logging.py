import logging.config

from imghost.core.config import get_settings


def configure_logging(level: str | None = None) -> None:
    """Install the process-wide log format. Safe to call more than once."""
    settings = get_settings()
    logging.config.dictConfig(
        {
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
            "root": {
                "handlers": ["console"],
                "level": (level or settings.log_level).upper(),
            },
            "loggers": {
                # SQL echo is noisy at INFO
                "sqlalchemy.engine": {"level": "WARNING"},
                "botocore": {"level": "WARNING"},
            },
        }
    )
