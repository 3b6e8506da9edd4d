"""
Logging setup - console plus rotating file (50MB per file, keep 7)
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import settings

NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "apscheduler",
)


def configure_logging(log_name: str = "orderbridge", log_dir: Optional[str] = None, level: int = logging.INFO) -> None:
    """Configure root logging for the API process or the standalone scheduler"""
    log_dir = log_dir or settings.LOGS_PATH
    os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, f"{log_name}.log"),
        maxBytes=50 * 1024 * 1024,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    ))

    # Disable noisy loggers BEFORE basicConfig
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.basicConfig(level=level, handlers=[file_handler, console_handler], force=True)
