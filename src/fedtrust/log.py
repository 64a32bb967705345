"""Logging setup for the fedtrust logger tree."""

import logging

from pythonjsonlogger.json import JsonFormatter

LOGGER_NAME = "fedtrust"


def setup_structured_logging(level: str = "INFO", json_output: bool = True) -> logging.Logger:
    """Configure the `fedtrust` logger. JSON lines by default, plain text otherwise."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        if json_output:
            formatter = JsonFormatter(
                fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"asctime": "timestamp", "levelname": "level"},
            )
        else:
            formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
