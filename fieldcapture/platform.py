"""
Cross-Platform Utilities for Field Capture Service

Provides OS detection and platform-specific path resolution for:
- Windows
- macOS (Darwin)
- Linux

This module centralizes all platform-specific logic to enable
cross-platform support while maintaining a clean codebase.
"""
import os
import platform as py_platform
from pathlib import Path
from typing import Optional, List
from enum import Enum


class Platform(Enum):
    """Supported operating systems"""
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    UNKNOWN = "unknown"


# Detect current platform at module load
_system = py_platform.system().lower()
if _system == "windows":
    CURRENT_PLATFORM = Platform.WINDOWS
elif _system == "darwin":
    CURRENT_PLATFORM = Platform.MACOS
elif _system == "linux":
    CURRENT_PLATFORM = Platform.LINUX
else:
    CURRENT_PLATFORM = Platform.UNKNOWN


def is_windows() -> bool:
    """Check if running on Windows"""
    return CURRENT_PLATFORM == Platform.WINDOWS


def is_macos() -> bool:
    """Check if running on macOS"""
    return CURRENT_PLATFORM == Platform.MACOS


def get_platform_name() -> str:
    """Get human-readable platform name"""
    names = {
        Platform.WINDOWS: "Windows",
        Platform.MACOS: "macOS",
        Platform.LINUX: "Linux",
        Platform.UNKNOWN: "Unknown",
    }
    return names.get(CURRENT_PLATFORM, "Unknown")


# =============================================================================
# User Data Directories
# =============================================================================

def get_user_data_dir(app_name: str) -> Path:
    """
    Get the appropriate user data directory for the current platform.

    Windows: %LOCALAPPDATA%/app_name
    macOS: ~/Library/Application Support/app_name
    Linux: ~/.local/share/app_name (XDG standard)

    Args:
        app_name: Application name (used as folder name)

    Returns:
        Path to user data directory (created if doesn't exist)
    """
    if is_windows():
        base = os.environ.get('LOCALAPPDATA')
        if not base:
            base = os.environ.get('APPDATA', str(Path.home()))
        data_dir = Path(base) / app_name
    elif is_macos():
        data_dir = Path.home() / "Library" / "Application Support" / app_name
    else:
        xdg_data = os.environ.get('XDG_DATA_HOME')
        if xdg_data:
            data_dir = Path(xdg_data) / app_name
        else:
            data_dir = Path.home() / ".local" / "share" / app_name

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_user_config_dir(app_name: str) -> Path:
    """
    Get the appropriate user config directory for the current platform.

    Windows/macOS: same as the data directory
    Linux: ~/.config/app_name (XDG standard)
    """
    if is_windows() or is_macos():
        return get_user_data_dir(app_name)

    xdg_config = os.environ.get('XDG_CONFIG_HOME')
    if xdg_config:
        config_dir = Path(xdg_config) / app_name
    else:
        config_dir = Path.home() / ".config" / app_name

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_user_log_dir(app_name: str) -> Path:
    """
    Get the appropriate user log directory for the current platform.

    Windows: %APPDATA%/app_name/logs
    macOS: ~/Library/Logs/app_name
    Linux: ~/.local/share/app_name/logs (or $XDG_DATA_HOME/app_name/logs)
    """
    if is_windows():
        appdata = os.environ.get('APPDATA')
        if appdata:
            log_dir = Path(appdata) / app_name / 'logs'
        else:
            log_dir = get_user_data_dir(app_name) / 'logs'
    elif is_macos():
        log_dir = Path.home() / "Library" / "Logs" / app_name
    else:
        log_dir = get_user_data_dir(app_name) / 'logs'

    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


# =============================================================================
# Canon EDSDK Library Paths
# =============================================================================

def get_edsdk_library_name() -> str:
    """
    Get the EDSDK library name for the current platform.

    Windows: EDSDK.dll
    macOS: EDSDK.framework binary
    Linux: libEDSDK.so
    """
    if is_windows():
        return "EDSDK.dll"
    elif is_macos():
        return "EDSDK"
    else:
        return "libEDSDK.so"


def get_edsdk_search_paths() -> List[str]:
    """
    Get list of paths to search for the EDSDK library.

    Returns:
        List of paths to check for the SDK library
    """
    from utils_paths import get_exe_dir

    sdk_name = get_edsdk_library_name()
    paths = [os.path.join(get_exe_dir(), sdk_name), sdk_name]

    if is_windows():
        program_files = os.environ.get('PROGRAMFILES', r'C:\Program Files')
        program_files_x86 = os.environ.get('PROGRAMFILES(X86)', r'C:\Program Files (x86)')

        paths.extend([
            os.path.join(program_files, 'FieldCapture', '_internal', sdk_name),
            os.path.join(program_files_x86, 'FieldCapture', '_internal', sdk_name),
            os.path.join(program_files, 'Canon', 'EDSDK', 'Dll', sdk_name),
        ])
    elif is_macos():
        paths.extend([
            '/Library/Frameworks/EDSDK.framework/EDSDK',
            os.path.expanduser('~/Library/Frameworks/EDSDK.framework/EDSDK'),
        ])
    else:
        paths.extend([
            f'/usr/lib/{sdk_name}',
            f'/usr/local/lib/{sdk_name}',
            f'/usr/lib/aarch64-linux-gnu/{sdk_name}',
            f'/usr/lib/arm-linux-gnueabihf/{sdk_name}',
            os.path.expanduser(f'~/.local/lib/{sdk_name}'),
        ])

    return paths


def find_edsdk() -> Optional[str]:
    """
    Search for the EDSDK library on the system.

    Returns:
        Path to SDK library if found, None otherwise
    """
    for path in get_edsdk_search_paths():
        if os.path.isfile(path):
            return path
    return None


def get_platform_info() -> dict:
    """Platform summary for the startup banner"""
    return {
        'platform': get_platform_name(),
        'release': py_platform.release(),
        'python': py_platform.python_version(),
        'machine': py_platform.machine(),
        'edsdk_path': find_edsdk(),
    }
