import logging
import logging.config

from qc_checkin.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging once for the API process.
    """
    lvl = (level or settings.LOG_LEVEL).upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "root": {"level": lvl, "handlers": ["console"]},
        "loggers": {
            # SQL echo stays off unless explicitly debugging
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    })
    logging.getLogger(__name__).debug("Logging configured at %s", lvl)
