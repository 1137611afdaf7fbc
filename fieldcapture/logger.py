"""
Thread-safe application logger shared by every service component
"""
import logging
import threading

from app_config import APP_NAME


class AppLogger:
    """Thread-safe logger facade with an optional error callback (Discord alerts)"""

    def __init__(self, name=APP_NAME):
        # Handlers live on the root logger (see logging_config.setup_logging)
        self.file_logger = logging.getLogger(name)
        self.error_callback = None
        self._callback_guard = threading.local()

    def set_error_callback(self, callback):
        """Set callback for error messages (used for Discord alerts)"""
        self.error_callback = callback

    def log(self, message, level="INFO"):
        """Log a message at the named level and forward errors to the callback"""
        log_level = getattr(logging, level, logging.INFO)
        self.file_logger.log(log_level, message)

        if level == "ERROR" and self.error_callback:
            # An error raised while alerting must not re-enter the callback
            if getattr(self._callback_guard, 'active', False):
                return
            self._callback_guard.active = True
            try:
                self.error_callback(message)
            except Exception as e:
                self.file_logger.warning(f"Error in alert callback: {e}")
            finally:
                self._callback_guard.active = False

    def info(self, message):
        """Log info message"""
        self.log(message, "INFO")

    def error(self, message):
        """Log error message"""
        self.log(message, "ERROR")

    def warning(self, message):
        """Log warning message"""
        self.log(message, "WARNING")

    def debug(self, message):
        """Log debug message"""
        self.log(message, "DEBUG")


# Singleton pattern to ensure only one logger instance
_logger_instance = None


def get_app_logger():
    """Get or create the singleton logger instance"""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = AppLogger()
    return _logger_instance


# Global logger instance (singleton)
app_logger = get_app_logger()
