from __future__ import annotations

import logging.config
from copy import deepcopy
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "hengpai"

LOGGING_CONFIG: dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "rich": {"format": "%(message)s", "datefmt": "[%X]"},
    },
    "handlers": {
        "console": {
            "()": "hengpai.logging_utils.build_console_handler",
            "formatter": "rich",
        },
    },
    "loggers": {
        PACKAGE_LOGGER: {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}


def build_console_handler() -> RichHandler:
    """Rich handler on stderr so progress output on stdout stays clean."""
    return RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )


def build_log_config(debug: bool = False) -> dict[str, Any]:
    config = deepcopy(LOGGING_CONFIG)
    if debug:
        config["loggers"][PACKAGE_LOGGER]["level"] = "DEBUG"
    return config


def configure_logging(debug: bool = False) -> None:
    logging.config.dictConfig(build_log_config(debug))
