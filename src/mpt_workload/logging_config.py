import logging
import logging.config
import os
import sys

# Third-party loggers and the floor we hold them to
LIBRARY_LEVELS = {
    "xrpl": "WARNING",
    "httpx": "WARNING",
    "websockets": "WARNING",
    "fastapi": "INFO",
    "uvicorn.error": "INFO",
    "uvicorn.access": "WARNING",
}


def build_logging_config(level: str = "INFO", log_file: str | None = "/tmp/mpt_workload.log") -> dict:
    """dictConfig for the CLI and the service. An empty ``log_file`` means console only."""
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stdout,
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": log_file,
            "mode": "a",
        }
    names = list(handlers)

    loggers = {
        lib: {"level": lvl, "handlers": names, "propagate": False}
        for lib, lvl in LIBRARY_LEVELS.items()
    }
    loggers["mpt_workload"] = {"level": level.upper(), "handlers": names, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": "WARNING", "handlers": names},
    }


def setup_logging():
    """ Apply the logging configuration, LOG_LEVEL and LOG_FILE from the environment. """
    logging.config.dictConfig(
        build_logging_config(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FILE", "/tmp/mpt_workload.log"))
    )
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
