r"""
Logging configuration with 7-day rolling file retention
Writes to the platform log directory (%APPDATA%\FieldCapture\logs on Windows)
"""
import os
import sys
import logging
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime, timedelta

from app_config import LOG_FILE
from utils_paths import get_log_dir


def cleanup_old_logs(log_dir, days_to_keep=7):
    """
    Remove log files older than specified days

    Args:
        log_dir: Directory containing log files
        days_to_keep: Number of days to retain (default: 7)
    """
    if not os.path.exists(log_dir):
        return

    cutoff_date = datetime.now() - timedelta(days=days_to_keep)

    try:
        for filename in os.listdir(log_dir):
            file_path = os.path.join(log_dir, filename)

            # Only process files, not directories
            if not os.path.isfile(file_path):
                continue

            file_mtime = datetime.fromtimestamp(os.path.getmtime(file_path))

            if file_mtime < cutoff_date:
                try:
                    os.remove(file_path)
                    print(f"Removed old log file: {filename}")
                except OSError as e:
                    print(f"Failed to remove {filename}: {e}")

    except OSError as e:
        print(f"Error during log cleanup: {e}")


def setup_logging(log_dir=None, console_level=logging.INFO):
    """
    Configure application logging with file rotation and cleanup

    Sets up:
    - Console logging (INFO level) - the service's progress/status lines
    - File logging with daily rotation (DEBUG level)
    - Automatic cleanup of logs older than 7 days

    Args:
        log_dir: Override the log directory (defaults to the platform log dir)
        console_level: Level for the console handler
    """
    # Silence noisy third-party loggers FIRST
    for logger_name in ['urllib3', 'requests', 'urllib3.connectionpool']:
        noisy_logger = logging.getLogger(logger_name)
        noisy_logger.setLevel(logging.CRITICAL)
        noisy_logger.propagate = False

    log_dir = log_dir or get_log_dir()
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, LOG_FILE)

    cleanup_old_logs(log_dir, days_to_keep=7)

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)  # Capture everything, handlers filter

    # Remove any existing handlers (in case setup_logging is called multiple times)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_format = logging.Formatter(
        '[%(asctime)s] %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    # File handler - Daily rotation, keep 7 days
    try:
        file_handler = TimedRotatingFileHandler(
            log_file,
            when='midnight',
            interval=1,
            backupCount=7,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '[%(asctime)s] %(levelname)-8s [%(threadName)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

        logger.info(f"Logging initialized - Log file: {log_file}")
        logger.info("Log rotation: Daily, keeping 7 days")

    except OSError as e:
        # If file logging fails, at least we have console
        logger.error(f"Failed to initialize file logging: {e}")
        logger.warning("Continuing with console logging only")

    return logger

