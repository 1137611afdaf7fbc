"""
Device session lifecycle for the capture service.

Handles session acquisition with bounded retry, the event pump that keeps
device notifications flowing, item-created subscribers and the capture
trigger used by the sequence runner and keep-alive cycle.
"""
import threading
import time
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from .config import CaptureSettings
from .device import COMMAND_TAKE_PICTURE, PROPERTY_SAVE_TO, SAVE_TO_CAMERA, DeviceCapability, DeviceError
from .errors import DeviceCommandError
from .interference import terminate_competing_software
from .logger import app_logger


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


# States in which the session handle may be used for device calls
USABLE_STATES = (SessionState.READY, SessionState.DEGRADED)


@dataclass
class DeviceSession:
    state: SessionState = SessionState.UNINITIALIZED
    handle: Any = None
    retry_count: int = 0


class SessionManager:
    """
    Owns the device session.

    Other components never hold the raw handle; they read `handle`, which is
    None whenever the session is not usable.
    """

    def __init__(self, device: DeviceCapability, settings: CaptureSettings,
                 interference_hook: Optional[Callable[[], Any]] = None):
        self.device = device
        self.settings = settings
        self.timing = settings.timing
        self.retry = settings.retry

        if interference_hook is None:
            interference_hook = self._terminate_competing_software
        self.interference_hook = interference_hook

        self.session = DeviceSession()
        self._state_lock = threading.Lock()

        self._listeners: List[Callable[[], None]] = []
        self._listeners_lock = threading.Lock()

        self._pump_stop = threading.Event()
        self._pump_thread: Optional[threading.Thread] = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self.session.state

    def _set_state(self, state: SessionState) -> None:
        with self._state_lock:
            previous = self.session.state
            self.session.state = state
        if previous != state:
            app_logger.debug(f"[SESSION] {previous.value} -> {state.value}")

    @property
    def handle(self) -> Any:
        """Session handle, or None unless the session is Ready or Degraded"""
        with self._state_lock:
            if self.session.state in USABLE_STATES:
                return self.session.handle
            return None

    @property
    def is_usable(self) -> bool:
        return self.handle is not None

    def mark_degraded(self, reason: str) -> None:
        if self.state == SessionState.READY:
            app_logger.warning(f"[SESSION] ⚠ Session degraded: {reason}")
            self._set_state(SessionState.DEGRADED)

    def mark_ready(self) -> None:
        if self.state == SessionState.DEGRADED:
            app_logger.info("[SESSION] ✓ Session healthy again")
            self._set_state(SessionState.READY)

    # =========================================================================
    # Initialization
    # =========================================================================

    def _terminate_competing_software(self) -> int:
        interference = self.settings.interference
        if not interference.enabled:
            return 0
        return terminate_competing_software(
            interference.process_names,
            timeout=interference.timeout_seconds,
            settle_seconds=interference.settle_seconds,
        )

    def initialize(self) -> SessionState:
        """
        Acquire the device, retrying with bounded backoff.

        Returns:
            SessionState.READY or SessionState.UNAVAILABLE
        """
        self._set_state(SessionState.INITIALIZING)
        attempts = self.retry.max_attempts

        for attempt in range(attempts):
            self.session.retry_count = attempt
            app_logger.info(f"[CAMERA INIT] Attempt {attempt + 1}/{attempts}")

            try:
                self.interference_hook()
            except Exception as e:
                app_logger.warning(f"[CAMERA INIT] ⚠ Interference cleanup failed: {e}")

            if self._attempt_session():
                self._set_state(SessionState.READY)
                app_logger.info("[CAMERA INIT] ✓ Camera session ready")
                self._start_event_pump()
                return SessionState.READY

            if attempt < attempts - 1:
                delay = self.retry.delay_for(attempt)
                app_logger.info(f"[CAMERA INIT] Retrying in {delay:g} seconds...")
                time.sleep(delay)

        app_logger.error(f"[CAMERA INIT] ✗ Camera unavailable after {attempts} attempts")
        self._set_state(SessionState.UNAVAILABLE)
        return SessionState.UNAVAILABLE

    def _attempt_session(self) -> bool:
        """One open → settle → configure → subscribe pass"""
        handle = None
        try:
            handle = self.device.open_session()
            app_logger.info("[CAMERA INIT] Session opened, waiting for camera to settle...")
            time.sleep(self.timing.session_settle_seconds)

            try:
                self.device.set_property(handle, PROPERTY_SAVE_TO, SAVE_TO_CAMERA)
                app_logger.info("[CAMERA INIT] ✓ Images will be saved to the memory card")
            except DeviceError as e:
                app_logger.warning(f"[CAMERA INIT] ⚠ Could not set save target, continuing: {e}")

            self.device.set_item_created_handler(handle, self._dispatch_item_created)

        except DeviceError as e:
            app_logger.warning(f"[CAMERA INIT] ✗ Attempt failed: {e}")
            if handle is not None:
                self._close_handle(handle)
            return False

        with self._state_lock:
            self.session.handle = handle
        return True

    def _close_handle(self, handle: Any) -> None:
        try:
            self.device.close_session(handle)
        except Exception as e:
            app_logger.debug(f"[CLEANUP] close_session failed: {e}")

    # =========================================================================
    # Notifications
    # =========================================================================

    def add_item_created_listener(self, callback: Callable[[], None]) -> None:
        with self._listeners_lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def remove_item_created_listener(self, callback: Callable[[], None]) -> None:
        with self._listeners_lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _dispatch_item_created(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        app_logger.debug(f"[EVENTS] New item on camera, notifying {len(listeners)} listener(s)")
        for callback in listeners:
            try:
                callback()
            except Exception as e:
                app_logger.error(f"[EVENTS] Item-created listener failed: {e}")

    def _start_event_pump(self) -> None:
        self._pump_stop.clear()
        self._pump_thread = threading.Thread(target=self._pump_loop, name="event_pump", daemon=True)
        self._pump_thread.start()

    def _pump_loop(self) -> None:
        interval = self.timing.event_poll_interval_seconds
        backoff = self.timing.event_poll_error_backoff_seconds

        while not self._pump_stop.is_set():
            if not self.is_usable:
                self._pump_stop.wait(backoff)
                continue
            try:
                self.device.poll_events()
            except Exception as e:
                app_logger.warning(f"[EVENTS] ⚠ Event poll failed: {e}")
                self._pump_stop.wait(backoff)
                continue
            self._pump_stop.wait(interval)

    # =========================================================================
    # Capture
    # =========================================================================

    def _drain_events(self) -> None:
        for _ in range(self.timing.pre_capture_event_polls):
            try:
                self.device.poll_events()
            except DeviceError as e:
                app_logger.debug(f"[CAPTURE] Event drain poll failed: {e}")
            time.sleep(self.timing.pre_capture_event_poll_interval_seconds)

    def _send_take_picture(self, handle: Any) -> None:
        try:
            self.device.send_command(handle, COMMAND_TAKE_PICTURE)
        except DeviceError as e:
            raise DeviceCommandError(f"Take picture rejected: {e}") from e

    def trigger_capture(self) -> bool:
        """
        Drain pending events, then fire the shutter.

        Returns:
            True if the device accepted the command
        """
        handle = self.handle
        if handle is None:
            app_logger.error(f"[CAPTURE] ✗ No usable camera session (state: {self.state.value})")
            return False

        try:
            self._drain_events()
            self._send_take_picture(handle)
            return True
        except DeviceCommandError as e:
            app_logger.error(f"[CAPTURE] ✗ {e}")
            return False
        except Exception as e:
            app_logger.error(f"[CAPTURE] ✗ Unexpected capture error: {e}")
            app_logger.debug(traceback.format_exc())
            return False

    # =========================================================================
    # Shutdown
    # =========================================================================

    def close(self) -> None:
        """Stop the event pump, unsubscribe and close the session (idempotent)"""
        self._pump_stop.set()
        if self._pump_thread and self._pump_thread.is_alive() and self._pump_thread is not threading.current_thread():
            self._pump_thread.join(timeout=5.0)
        self._pump_thread = None

        with self._state_lock:
            handle = self.session.handle
            self.session.handle = None
            self.session.state = SessionState.UNINITIALIZED

        if handle is None:
            return

        try:
            self.device.set_item_created_handler(handle, None)
        except Exception as e:
            app_logger.debug(f"[CLEANUP] Could not unregister item handler: {e}")

        self._close_handle(handle)
        app_logger.info("[CLEANUP] ✓ Camera session closed")
