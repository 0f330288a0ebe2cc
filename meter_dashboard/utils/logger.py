# meter_dashboard/utils/logger.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler


def setup_logger(name="meter_dashboard", log_dir="logs", level="INFO"):
    """
    Configure the package logger: console (stdout) plus a rotating file.
    One log file, max 5MB, 3 backups. Safe to call more than once.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "app.log"), maxBytes=5 * 1024 * 1024, backupCount=3
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
