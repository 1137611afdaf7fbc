"""
Configuration management for Field Capture Service
"""
import copy
import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from app_config import MAIN_CONFIG_FILE
from .errors import ConfigurationError

DEFAULT_CONFIG = {
    # Site / schedule
    "site_name": "Waveland",
    "base_directory": os.path.join(os.path.expanduser("~"), "FieldCaptureImages"),
    "start_hour": 6,    # inclusive
    "end_hour": 18,     # exclusive
    "sequence_interval_minutes": 60,
    "frames_per_sequence": 50,
    "frame_delay_seconds": 10,

    # Device backend
    "device": {
        "backend": "edsdk",     # "edsdk" | "simulated"
        "sdk_path": "",         # EDSDK library, empty = search default locations
        "simulated_root": "",   # storage root for the simulated camera
    },

    # Empirically tuned USB/camera timings (seconds unless noted)
    "timing": {
        "session_settle_seconds": 3.0,
        "event_poll_interval_seconds": 0.05,
        "event_poll_error_backoff_seconds": 1.0,
        "pre_capture_event_polls": 10,
        "pre_capture_event_poll_interval_seconds": 0.01,
        "capture_settle_seconds": 5.0,
        "frame_ready_margin_seconds": 2.0,
        "post_format_settle_seconds": 2.0,
        "keep_alive_wait_seconds": 3.0,
        "keep_alive_margin_minutes": 5.0,
        "tick_period_seconds": 60.0,
    },

    # Session initialization retries
    "retry": {
        "max_attempts": 5,
        "base_delay_seconds": 3.0,
        "step_seconds": 1.0,
        "max_delay_seconds": 10.0,
    },

    # Vendor utilities that grab the camera's USB session
    "interference": {
        "enabled": True,
        "process_names": [
            "EOS Utility",
            "EOSUPNPSV",
            "Canon EOS Utility",
            "CameraWindow_DVC",
            "CameraWindow_LaunchOnly",
        ],
        "timeout_seconds": 5.0,
        "settle_seconds": 2.0,
    },

    # Discord alerts
    "discord": {
        "enabled": False,
        "webhook_url": "",
        "embed_color_hex": "#0EA5E9",
        "post_errors": False,
        "post_startup_shutdown": False,
        "post_sequence_summary": False,
        "username_override": "",
        "avatar_url": "",
    },
}


class Config:
    def __init__(self, config_path=None):
        if config_path is None:
            from utils_paths import get_config_dir
            config_path = os.path.join(get_config_dir(), MAIN_CONFIG_FILE)

        self.config_path = config_path
        self.data = self.load()

    def load(self):
        """Load configuration from JSON file or return defaults"""
        config = copy.deepcopy(DEFAULT_CONFIG)
        if not os.path.exists(self.config_path):
            return config

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Could not read config file {self.config_path}: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {self.config_path} must contain a JSON object")

        # Deep merge for nested sections like timing, discord
        for key, value in loaded.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value

        return config

    def save(self):
        """Save current configuration to JSON file"""
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.config_path)), exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2)
            return True
        except OSError as e:
            from .logger import app_logger
            app_logger.error(f"Error saving config: {e}")
            return False

    def get(self, key, default=None):
        """Get configuration value"""
        return self.data.get(key, default)

    def set(self, key, value):
        """Set configuration value"""
        self.data[key] = value

    def get_section(self, key) -> Dict[str, Any]:
        """Get a nested section (always a dict)"""
        section = self.data.get(key)
        return section if isinstance(section, dict) else {}


# =============================================================================
# Validated settings
# =============================================================================

def _number(section: Dict[str, Any], key: str, kind=float, minimum=None):
    """Coerce a config value, raising ConfigurationError with the key name"""
    try:
        value = kind(section[key])
    except KeyError:
        raise ConfigurationError(f"Missing configuration value: {key}")
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {section[key]!r}")
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class RetryPolicy:
    """Session initialization attempts and the delay between them"""
    max_attempts: int = 5
    base_delay_seconds: float = 3.0
    step_seconds: float = 1.0
    max_delay_seconds: float = 10.0

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (0-based), capped"""
        return min(self.base_delay_seconds + attempt * self.step_seconds, self.max_delay_seconds)

    @classmethod
    def from_dict(cls, section: Dict[str, Any]) -> 'RetryPolicy':
        merged = {**DEFAULT_CONFIG['retry'], **(section or {})}
        return cls(
            max_attempts=_number(merged, 'max_attempts', int, minimum=1),
            base_delay_seconds=_number(merged, 'base_delay_seconds', minimum=0),
            step_seconds=_number(merged, 'step_seconds', minimum=0),
            max_delay_seconds=_number(merged, 'max_delay_seconds', minimum=0),
        )


@dataclass(frozen=True)
class TimingSettings:
    """Settle delays and loop periods used across the engine"""
    session_settle_seconds: float = 3.0
    event_poll_interval_seconds: float = 0.05
    event_poll_error_backoff_seconds: float = 1.0
    pre_capture_event_polls: int = 10
    pre_capture_event_poll_interval_seconds: float = 0.01
    capture_settle_seconds: float = 5.0
    frame_ready_margin_seconds: float = 2.0
    post_format_settle_seconds: float = 2.0
    keep_alive_wait_seconds: float = 3.0
    keep_alive_margin_minutes: float = 5.0
    tick_period_seconds: float = 60.0

    @classmethod
    def from_dict(cls, section: Dict[str, Any]) -> 'TimingSettings':
        merged = {**DEFAULT_CONFIG['timing'], **(section or {})}
        values = {}
        for name in cls.__dataclass_fields__:
            kind = int if name == 'pre_capture_event_polls' else float
            values[name] = _number(merged, name, kind, minimum=0)
        if values['tick_period_seconds'] <= 0:
            raise ConfigurationError("tick_period_seconds must be > 0")
        return cls(**values)


@dataclass(frozen=True)
class InterferenceSettings:
    enabled: bool = True
    process_names: List[str] = field(default_factory=list)
    timeout_seconds: float = 5.0
    settle_seconds: float = 2.0

    @classmethod
    def from_dict(cls, section: Dict[str, Any]) -> 'InterferenceSettings':
        merged = {**DEFAULT_CONFIG['interference'], **(section or {})}
        names = merged.get('process_names') or []
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise ConfigurationError("interference.process_names must be a list of strings")
        return cls(
            enabled=bool(merged.get('enabled', True)),
            process_names=list(names),
            timeout_seconds=_number(merged, 'timeout_seconds', minimum=0),
            settle_seconds=_number(merged, 'settle_seconds', minimum=0),
        )


@dataclass(frozen=True)
class CaptureSettings:
    """Validated view of the configuration consumed by the engine"""
    site_name: str
    base_directory: str
    start_hour: int
    end_hour: int
    sequence_interval_minutes: int
    frames_per_sequence: int
    frame_delay_seconds: float
    backend: str = "edsdk"
    sdk_path: Optional[str] = None
    simulated_root: Optional[str] = None
    timing: TimingSettings = field(default_factory=TimingSettings)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    interference: InterferenceSettings = field(default_factory=InterferenceSettings)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigurationError if any value is outside its allowed range"""
        if not self.site_name or not str(self.site_name).strip():
            raise ConfigurationError("site_name must not be empty")
        if not self.base_directory:
            raise ConfigurationError("base_directory must not be empty")
        if not (0 <= self.start_hour < self.end_hour <= 24):
            raise ConfigurationError(
                f"Operating hours must satisfy 0 <= start_hour < end_hour <= 24 "
                f"(got start_hour={self.start_hour}, end_hour={self.end_hour})"
            )
        if self.sequence_interval_minutes <= 0:
            raise ConfigurationError("sequence_interval_minutes must be > 0")
        if self.frames_per_sequence < 1:
            raise ConfigurationError("frames_per_sequence must be >= 1")
        if self.frame_delay_seconds < 0:
            raise ConfigurationError("frame_delay_seconds must be >= 0")

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.sequence_interval_minutes)

    @property
    def capture_directory(self) -> Path:
        """Where downloaded frames land: <base_directory>/<site_name>"""
        return Path(self.base_directory) / self.site_name

    @classmethod
    def from_config(cls, config) -> 'CaptureSettings':
        """
        Build validated settings from a Config (or any object with get()).

        Raises:
            ConfigurationError: on missing or out-of-range values
        """
        data = {key: config.get(key) for key in (
            'site_name', 'base_directory', 'start_hour', 'end_hour',
            'sequence_interval_minutes', 'frames_per_sequence', 'frame_delay_seconds',
        )}
        missing = [key for key, value in data.items() if value is None]
        if missing:
            raise ConfigurationError(f"Missing configuration value(s): {', '.join(missing)}")

        device = config.get('device') or {}
        return cls(
            site_name=str(data['site_name']),
            base_directory=str(data['base_directory']),
            start_hour=_number(data, 'start_hour', int),
            end_hour=_number(data, 'end_hour', int),
            sequence_interval_minutes=_number(data, 'sequence_interval_minutes', int),
            frames_per_sequence=_number(data, 'frames_per_sequence', int),
            frame_delay_seconds=_number(data, 'frame_delay_seconds', float),
            backend=str(device.get('backend') or 'edsdk').lower(),
            sdk_path=device.get('sdk_path') or None,
            simulated_root=device.get('simulated_root') or None,
            timing=TimingSettings.from_dict(config.get('timing') or {}),
            retry=RetryPolicy.from_dict(config.get('retry') or {}),
            interference=InterferenceSettings.from_dict(config.get('interference') or {}),
        )
