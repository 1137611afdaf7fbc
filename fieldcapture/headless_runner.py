"""
Headless runner for Field Capture Service
Runs the unattended capture schedule as a console/service process

Usage:
    python main.py                      # Run until Ctrl+C
    python main.py --auto-stop 3600     # Run for 1 hour
    python main.py --simulate           # Dry run without a camera
"""
import signal
import threading
import traceback
from datetime import datetime
from typing import Optional

from .config import CaptureSettings, Config
from .device import DeviceCapability, create_device
from .discord_alerts import DiscordAlerts
from .errors import REMEDIATION_CHECKLIST, ConfigurationError, InitializationError
from .keep_alive import KeepAliveCycle
from .logger import app_logger
from .reconciliation import FileReconciliationEngine
from .scheduler import CaptureScheduler
from .sequence_runner import SequenceRunner
from .session_manager import SessionManager, SessionState
from .platform import get_platform_info
from app_config import get_window_title
from version import __version__

EXIT_OK = 0
EXIT_FAILURE = 1


class HeadlessRunner:
    """Runs the capture engine without a GUI

    Loads config, acquires the camera, and drives the scheduler until a
    signal, the auto-stop timer or stop() ends the run.
    """

    def __init__(self, config: Optional[Config] = None, device: Optional[DeviceCapability] = None,
                 auto_stop: Optional[float] = None, install_signal_handlers: bool = True):
        """
        Args:
            config: Loaded Config (default location when None)
            device: Device backend override (default: from config)
            auto_stop: Stop after this many seconds (None = run forever)
            install_signal_handlers: Register SIGINT/SIGTERM for graceful shutdown
        """
        self.config = config
        self.device = device
        self.auto_stop = auto_stop
        self.running = False
        self._shutdown_event = threading.Event()
        self._auto_stop_timer: Optional[threading.Timer] = None

        self.settings: Optional[CaptureSettings] = None
        self.alerts: Optional[DiscordAlerts] = None
        self.session: Optional[SessionManager] = None
        self.reconciliation: Optional[FileReconciliationEngine] = None
        self.scheduler: Optional[CaptureScheduler] = None

        if install_signal_handlers:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals (Ctrl+C, kill)"""
        app_logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.stop()

    def _log(self, message: str):
        app_logger.info(message)

    # =========================================================================
    # Startup
    # =========================================================================

    def _load_config(self) -> None:
        """Load and validate configuration (raises ConfigurationError)"""
        if self.config is None:
            self.config = Config()
        self.settings = CaptureSettings.from_config(self.config)

        s = self.settings
        self._log(f"  Config file: {self.config.config_path}")
        self._log(f"  Site: {s.site_name}")
        self._log(f"  Output Dir: {s.capture_directory}")
        self._log(f"  Operating hours: {s.start_hour:02d}:00-{s.end_hour:02d}:00")
        self._log(f"  Interval: {s.sequence_interval_minutes} min")
        self._log(f"  Frames per sequence: {s.frames_per_sequence} (delay {s.frame_delay_seconds:g}s)")
        self._log(f"  Camera backend: {self.device.backend_name if self.device else s.backend}")

    def _build_engine(self) -> None:
        s = self.settings
        if self.device is None:
            self.device = create_device(s.backend, s)

        self.session = SessionManager(self.device, s)
        self.reconciliation = FileReconciliationEngine(self.session, s.capture_directory)
        runner = SequenceRunner(self.session, self.reconciliation, s.timing, stop_event=self._shutdown_event)
        keep_alive = KeepAliveCycle(self.session, self.reconciliation, s.timing, stop_event=self._shutdown_event)
        self.scheduler = CaptureScheduler(
            s, runner, keep_alive, self.reconciliation,
            stop_event=self._shutdown_event, alerts=self.alerts,
        )

    def _init_camera(self) -> None:
        """Acquire the camera session (raises InitializationError)"""
        self._log("Initializing camera...")
        if self.session.initialize() != SessionState.READY:
            raise InitializationError(
                f"Camera could not be initialized after {self.settings.retry.max_attempts} attempts"
            )
        self.session.add_item_created_listener(self.reconciliation.request_scan)

    def _report_initialization_failure(self, error: InitializationError) -> None:
        app_logger.error(f"✗ {error}")
        app_logger.info("Please check:")
        for i, item in enumerate(REMEDIATION_CHECKLIST, 1):
            app_logger.info(f"  {i}. {item}")
        if self.alerts:
            self.alerts.send_initialization_failure(self.settings.retry.max_attempts)

    # =========================================================================
    # Run
    # =========================================================================

    def start(self) -> int:
        """Run until stopped; returns the process exit code"""
        self._log("=" * 60)
        self._log(f"{get_window_title(__version__)} - Headless Mode")
        self._log("=" * 60)
        info = get_platform_info()
        self._log(f"  Platform: {info['platform']} {info['release']} ({info['machine']}), Python {info['python']}")

        try:
            self._log("Loading configuration...")
            self._load_config()

            self.alerts = DiscordAlerts(self.config)
            if self.alerts.is_enabled():
                app_logger.set_error_callback(self.alerts.send_error_message)

            self._build_engine()
            self._init_camera()

            self.alerts.send_startup_message()

            self.running = True
            self.scheduler.start()

            if self.auto_stop and self.auto_stop > 0:
                self._log(f"Auto-stop scheduled in {self.auto_stop} seconds")
                self._auto_stop_timer = threading.Timer(self.auto_stop, self.stop)
                self._auto_stop_timer.daemon = True
                self._auto_stop_timer.start()
            else:
                self._log("Running until Ctrl+C or kill signal...")

            while self.running and not self._shutdown_event.is_set():
                self._shutdown_event.wait(1.0)

            return EXIT_OK

        except ConfigurationError as e:
            app_logger.error(f"✗ Configuration error: {e}")
            return EXIT_FAILURE
        except InitializationError as e:
            self._report_initialization_failure(e)
            return EXIT_FAILURE
        except Exception as e:
            app_logger.error(f"ERROR: {e}")
            app_logger.debug(traceback.format_exc())
            return EXIT_FAILURE
        finally:
            self._cleanup()

    def stop(self):
        """Stop headless capture"""
        self._log("Stopping capture...")
        self.running = False
        self._shutdown_event.set()

    def _cleanup(self):
        """Shut down in dependency order: scheduler, scan worker, session"""
        self._log("Cleaning up resources...")

        if self._auto_stop_timer:
            self._auto_stop_timer.cancel()

        scheduler_stopped = True
        try:
            if self.scheduler:
                scheduler_stopped = self.scheduler.stop()
        except Exception as e:
            self._log(f"Error stopping scheduler: {e}")

        try:
            if self.reconciliation:
                self.reconciliation.shutdown(wait=True)
        except Exception as e:
            self._log(f"Error stopping scan worker: {e}")

        try:
            if self.session and not scheduler_stopped:
                # Burst thread may still be using the camera handle
                app_logger.error("✗ Capture thread still busy, camera session left open; process exit will release it")
            elif self.session:
                if self.reconciliation:
                    self.session.remove_item_created_listener(self.reconciliation.request_scan)
                self.session.close()
        except Exception as e:
            self._log(f"Error closing camera session: {e}")

        was_running = self.running or self._shutdown_event.is_set()
        if self.alerts and was_running and self.scheduler:
            last = self.scheduler.state.last_capture_time
            summary = f"Last sequence: {last:%Y-%m-%d %H:%M:%S}" if last else "No sequence captured."
            self.alerts.send_shutdown_message(summary)

        app_logger.set_error_callback(None)
        self._log(f"Headless session complete at {datetime.now():%Y-%m-%d %H:%M:%S}.")
        self._log("=" * 60)


def run_headless(config: Optional[Config] = None, auto_stop: Optional[float] = None,
                 device: Optional[DeviceCapability] = None) -> int:
    """
    Run Field Capture Service in headless mode

    Args:
        config: Loaded Config (default location when None)
        auto_stop: Stop after this many seconds (None = run forever)
        device: Device backend override

    Returns:
        Process exit code (0 on normal shutdown, 1 on fatal error)
    """
    runner = HeadlessRunner(config=config, device=device, auto_stop=auto_stop)
    return runner.start()
