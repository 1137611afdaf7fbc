"""
Keep-alive between bursts: a throwaway capture keeps the camera awake and
exercises the session, then the test shot is deleted from the card.
"""
import threading
from typing import Optional

from .config import TimingSettings
from .logger import app_logger


class KeepAliveCycle:
    def __init__(self, session, reconciliation, timing: Optional[TimingSettings] = None,
                 stop_event: Optional[threading.Event] = None):
        self.session = session
        self.reconciliation = reconciliation
        self.timing = timing or TimingSettings()
        self.stop_event = stop_event or threading.Event()

    def run(self) -> bool:
        """
        Capture, wait, delete the latest file.

        Returns:
            True if the capture was accepted
        """
        app_logger.info("[KEEP_ALIVE] Taking keep-alive shot")

        with self.reconciliation.suspend_scans():
            if not self.session.trigger_capture():
                self.session.mark_degraded("keep-alive capture rejected")
                app_logger.warning("[KEEP_ALIVE] ⚠ Keep-alive capture failed")
                return False

            self.session.mark_ready()
            if self.timing.keep_alive_wait_seconds > 0:
                self.stop_event.wait(self.timing.keep_alive_wait_seconds)
            self.reconciliation.delete_latest_file()

        return True
