"""
Burst capture: formats the card, then fires N frames with fixed pacing.

A failed frame is logged and skipped; the burst only stops early when the
service is shutting down.
"""
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .config import TimingSettings
from .logger import app_logger


@dataclass
class SequenceState:
    session_time: datetime
    frames_requested: int
    frames_attempted: int = 0
    frames_completed: int = 0
    in_progress: bool = False


@dataclass(frozen=True)
class SequenceResult:
    attempted: int
    completed: int
    session_time: Optional[datetime] = None
    aborted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.completed > 0


class SequenceRunner:
    """Runs one burst against the session and reconciliation engine"""

    def __init__(self, session, reconciliation, timing: Optional[TimingSettings] = None,
                 stop_event: Optional[threading.Event] = None,
                 should_continue: Optional[Callable[[], bool]] = None):
        """
        Args:
            session: SessionManager used to trigger captures
            reconciliation: FileReconciliationEngine (card reset, image count)
            timing: Settle delays
            stop_event: Set on shutdown; interrupts every wait
            should_continue: Checked before each frame
        """
        self.session = session
        self.reconciliation = reconciliation
        self.timing = timing or TimingSettings()
        self.stop_event = stop_event or threading.Event()
        self.should_continue = should_continue or (lambda: True)
        self.state: Optional[SequenceState] = None

    def _wait(self, seconds: float) -> bool:
        """Sleep unless stopped; True if the wait ran to completion"""
        if seconds <= 0:
            return not self.stop_event.is_set()
        return not self.stop_event.wait(seconds)

    def _keep_going(self) -> bool:
        return not self.stop_event.is_set() and self.should_continue()

    def run(self, frame_count: int, inter_frame_delay: float,
            session_time: Optional[datetime] = None) -> SequenceResult:
        state = SequenceState(
            session_time=session_time or datetime.now(),
            frames_requested=frame_count,
            in_progress=True,
        )
        self.state = state
        aborted = False

        app_logger.info(
            f"[SEQUENCE] Starting burst of {frame_count} frame(s) "
            f"at {state.session_time:%Y-%m-%d %H:%M:%S}"
        )

        try:
            if not self.reconciliation.clear_and_reset_tracking():
                app_logger.warning("[SEQUENCE] ⚠ Card format failed, continuing burst")
            if not self._wait(self.timing.post_format_settle_seconds):
                aborted = True

            for frame in range(1, frame_count + 1):
                if aborted or not self._keep_going():
                    aborted = True
                    break

                state.frames_attempted += 1
                if not self.session.trigger_capture():
                    app_logger.error(f"[SEQUENCE] ✗ Frame {frame}/{frame_count} failed")
                else:
                    state.frames_completed += 1
                    app_logger.info(f"[SEQUENCE] ✓ Frame {frame}/{frame_count} captured")
                    if not self._wait(self.timing.capture_settle_seconds):
                        aborted = True
                        break
                    count = self.reconciliation.count_images()
                    if count >= 0:
                        app_logger.debug(f"[SEQUENCE] {count} image(s) on card")

                if frame < frame_count:
                    if not self._wait(inter_frame_delay + self.timing.frame_ready_margin_seconds):
                        aborted = True
                        break
        finally:
            state.in_progress = False

        result = SequenceResult(
            attempted=state.frames_attempted,
            completed=state.frames_completed,
            session_time=state.session_time,
            aborted=aborted,
        )
        marker = "✓" if result.completed == result.attempted and not aborted else "⚠"
        app_logger.info(
            f"[SEQUENCE] {marker} Burst finished: {result.completed}/{result.attempted} frames"
            + (" (stopped early)" if aborted else "")
        )
        return result
