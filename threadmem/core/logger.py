import logging
import sys
import os
from threadmem.core.config import settings

ROOT_LOGGER = "threadmem"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_root_logger() -> logging.Logger:
    """Attach handlers to the package root once; component loggers propagate to it."""
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(settings.LOG_LEVEL.upper())
    if root.handlers:
        return root

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    log_file = settings.LOG_FILE
    if log_file and os.path.isdir(os.path.dirname(log_file) or "."):
        try:
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            root.warning(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
    return root


class Logger:
    """Per-component logger named threadmem.<component>."""

    def __init__(self, name: str):
        configure_root_logger()
        self.name = name
        self.logger = logging.getLogger(f"{ROOT_LOGGER}.{name}")

    def info(self, msg: str):
        self.logger.info(msg)

    def warn(self, msg: str):
        self.logger.warning(msg)

    def error(self, msg: str, exc: Exception = None):
        self.logger.error(msg, exc_info=exc)

    def debug(self, msg: str):
        self.logger.debug(msg)
