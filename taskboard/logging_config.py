from logging.config import dictConfig

from .config import settings


def setup_logging(level: str | None = None) -> None:
    level = level or settings.log_level
    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
            }
        },
        "handlers": {
            "console": {
                "level": level,
                "class": "logging.StreamHandler",
                "formatter": "standard",
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": level,
                "propagate": True
            },
            "uvicorn": {
                "handlers": ["console"],
                "level": level,
                "propagate": False
            },
            "uvicorn.error": {
                "handlers": ["console"],
                "level": level,
                "propagate": False
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": level,
                "propagate": False
            },
        }
    })
