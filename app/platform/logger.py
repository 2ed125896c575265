import logging
import os
from logging.handlers import RotatingFileHandler

from app.platform.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

log_dir = os.path.join(os.getcwd(), "logs")
os.makedirs(log_dir, exist_ok=True)

log_file_path = os.path.join(log_dir, "waitlist.log")


def log_level() -> int:
    return logging.DEBUG if settings.DEBUG and settings.ENVIRONMENT == "local" else logging.INFO


def configure_logging():
    """Root logging for the API process; module loggers propagate here."""
    logging.basicConfig(level=log_level(), format=LOG_FORMAT)


def get_logger(name: str):
    """
    Logger for infrastructure services that also writes to logs/waitlist.log
    (rotating, 10 MB x 5).
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(log_level())
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(log_file_path, maxBytes=10_000_000, backupCount=5)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
