# logger.py
"""
Logging for FOMS
One "FOMS" logger: a per-day file under FOMS_LOG_DIR and the console.
Service modules log every save, rollback and backfill through the helpers below.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

LOGS_DIR = Path(os.getenv("FOMS_LOG_DIR", "logs"))
CONSOLE_LEVEL = os.getenv("FOMS_LOG_LEVEL", "INFO").upper()

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: str = "FOMS") -> logging.Logger:
    """Attach file + console handlers once; Streamlit reruns reuse them."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    day_file = LOGS_DIR / f"foms_{datetime.now():%Y-%m-%d}.log"
    file_handler = logging.FileHandler(day_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(getattr(logging, CONSOLE_LEVEL, logging.INFO))
    console.setFormatter(formatter)
    logger.addHandler(console)

    return logger


logger = setup_logger()


def log_info(message: str):
    logger.info(message)


def log_warning(message: str):
    logger.warning(message)


def log_error(message: str, exc_info=False):
    logger.error(message, exc_info=exc_info)


def log_debug(message: str):
    logger.debug(message)
