"""Process logging: uvicorn keeps its own loggers, app modules log through the root."""

import copy
import logging.config
from typing import Any, Dict

from uvicorn.config import LOGGING_CONFIG as UVICORN_LOGGING_CONFIG

APP_LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"
APP_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_logging_config(level: str = "INFO") -> Dict[str, Any]:
    level = level.upper()
    config = copy.deepcopy(UVICORN_LOGGING_CONFIG)

    config["formatters"]["app"] = {"format": APP_LOG_FORMAT, "datefmt": APP_DATE_FORMAT}
    config["handlers"]["app"] = {
        "class": "logging.StreamHandler",
        "formatter": "app",
        "stream": "ext://sys.stdout",
    }
    # uvicorn's loggers don't propagate, so root only carries meetsession (and library) records
    config["root"] = {"handlers": ["app"], "level": level}
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        config["loggers"][name]["level"] = level
    return config


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(build_logging_config(level))
