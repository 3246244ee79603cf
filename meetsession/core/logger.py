# Module loggers. Handlers and format are installed once by configure_logging().

import logging


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
