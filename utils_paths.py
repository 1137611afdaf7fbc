"""
Path utilities for user data, config and log directories
Resolves paths correctly whether running from source or as bundled EXE
"""
import os
import sys

from app_config import APP_DATA_FOLDER


def get_app_data_dir():
    r"""
    Get application data directory (for logs, user config, etc.)

    Returns:
        Path to %LOCALAPPDATA%\{APP_DATA_FOLDER} on Windows,
        ~/.local/share/{APP_DATA_FOLDER} (XDG) elsewhere
    """
    from fieldcapture.platform import get_user_data_dir
    return str(get_user_data_dir(APP_DATA_FOLDER))


def get_config_dir():
    """Get the directory holding config.json"""
    from fieldcapture.platform import get_user_config_dir
    return str(get_user_config_dir(APP_DATA_FOLDER))


def get_log_dir():
    r"""
    Get log directory path

    Returns:
        Path to %APPDATA%\{APP_DATA_FOLDER}\logs on Windows,
        the platform log directory elsewhere
    """
    from fieldcapture.platform import get_user_log_dir
    return str(get_user_log_dir(APP_DATA_FOLDER))


def get_exe_dir():
    """
    Get the directory where the EXE is installed/running from.

    Returns:
        Absolute path to the directory containing the executable (or script in dev mode)
    """
    if getattr(sys, 'frozen', False):
        # Running as compiled executable
        return os.path.dirname(sys.executable)
    else:
        # Running from source
        return os.path.dirname(os.path.abspath(__file__))
