"""
Application Configuration - Central place for app identity
Change these values when renaming the application
"""

# Application Identity
APP_NAME = "FieldCapture"
APP_DISPLAY_NAME = "Field Capture Service"
APP_SUBTITLE = "Unattended scheduled camera capture"
APP_DESCRIPTION = "Runs a tethered field camera on an operating schedule and retrieves every frame from its memory card"

# Directory names (used for AppData paths)
APP_DATA_FOLDER = APP_NAME  # %LOCALAPPDATA%\{APP_DATA_FOLDER}

# File names
MAIN_CONFIG_FILE = "config.json"
LOG_FILE = "capture.log"


def get_window_title(version: str = None) -> str:
    """Get formatted title line with optional version"""
    if version:
        return f"{APP_DISPLAY_NAME} v{version}"
    return APP_DISPLAY_NAME


def get_user_agent() -> str:
    """Get user agent string for HTTP requests"""
    from version import __version__
    return f"{APP_NAME}/{__version__}"
