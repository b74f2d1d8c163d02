import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "/tmp/bundle_transfer.log")

HANDLERS = ["console", "file"]
# Transport libraries only report problems
QUIET_LIBRARIES = ("httpx", "httpcore", "websockets")

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stdout,
        },
        "file": {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": LOG_FILE,
            "mode": "a",
        },
    },
    "loggers": {
        "bundle_transfer": {"level": LOG_LEVEL, "handlers": HANDLERS, "propagate": False},
        **{name: {"level": "WARNING", "handlers": HANDLERS, "propagate": False} for name in QUIET_LIBRARIES},
    },
    "root": {
        "level": "WARNING",
        "handlers": HANDLERS,
    },
}


def setup_logging():
    """Console plus LOG_FILE; the package logs at LOG_LEVEL."""
    logging.config.dictConfig(LOGGING_CONFIG)
