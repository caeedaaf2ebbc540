"""
Centralized logging configuration for the application.
Logs to both console and rotating file.
"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from datetime import datetime

from buspass.core.config import settings

LOGS_DIR = Path(settings.LOG_DIR)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = LOGS_DIR / f"buspass_{datetime.now().strftime('%Y%m%d')}.log"


def setup_logger(name: str = "buspass") -> logging.Logger:
    """
    Setup and configure application logger.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers on re-import
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # 10MB per file, keep 5 backups
    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


logger = setup_logger()


def log_request(endpoint: str, method: str, user: str = "anonymous"):
    """Log incoming request"""
    logger.info(f"Request: {method} {endpoint} - User: {user}")


def log_success(endpoint: str, message: str, user: str = "anonymous"):
    """Log successful operation"""
    logger.info(f"Success: {endpoint} - {message} - User: {user}")


def log_error(endpoint: str, error: Exception, user: str = "anonymous"):
    """Log error with full traceback"""
    logger.error(f"Error: {endpoint} - User: {user} - {type(error).__name__}: {str(error)}", exc_info=True)


def log_warning(endpoint: str, message: str, user: str = "anonymous"):
    """Log warning"""
    logger.warning(f"Warning: {endpoint} - {message} - User: {user}")


def log_auth_attempt(username: str, success: bool, reason: str = ""):
    """Log authentication attempt"""
    if success:
        logger.info(f"Auth Success: Admin '{username}' logged in successfully")
    else:
        logger.warning(f"Auth Failed: Admin '{username}' - Reason: {reason}")


def log_search(source: str, destination: str, date: str, total_items: int):
    """Log a completed journey search"""
    logger.info(f"Search: '{source}' -> '{destination}' on {date} - {total_items} bus(es) matched")


def log_booking(booking_code: str, action: str, user: str, amount: float = None):
    """Log a booking state change"""
    suffix = f" - Amount: {amount:.2f}" if amount is not None else ""
    logger.info(f"Booking {action}: {booking_code} - User: {user}{suffix}")


def log_pass(reference: str, action: str, user: str):
    """Log a pass application or pass state change"""
    logger.info(f"Pass {action}: {reference} - User: {user}")
