from __future__ import annotations

import logging

from rich.logging import RichHandler

from hengpai.logging_utils import LOGGING_CONFIG, PACKAGE_LOGGER, build_log_config, configure_logging


def test_debug_flag_lowers_package_level_without_touching_base() -> None:
    config = build_log_config(debug=True)
    assert config["loggers"][PACKAGE_LOGGER]["level"] == "DEBUG"
    assert LOGGING_CONFIG["loggers"][PACKAGE_LOGGER]["level"] == "INFO"


def test_configure_logging_installs_rich_handler() -> None:
    configure_logging(debug=False)
    logger = logging.getLogger(PACKAGE_LOGGER)
    assert logger.level == logging.INFO
    assert any(isinstance(handler, RichHandler) for handler in logger.handlers)
    configure_logging(debug=True)
    assert logger.level == logging.DEBUG
