"""
Capture scheduling: decides once a minute whether to start a burst, run a
keep-alive shot or just wait.

At most one burst runs at a time. The burst runs on its own worker thread so
the tick thread stays responsive; its completion callback is the only place
that clears the in-progress flag.
"""
import threading
import traceback
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .config import CaptureSettings
from .logger import app_logger
from .sequence_runner import SequenceResult


class TickDecision(Enum):
    SKIPPED_IN_PROGRESS = "skipped_in_progress"
    OUTSIDE_HOURS = "outside_hours"
    SEQUENCE_STARTED = "sequence_started"
    KEEP_ALIVE = "keep_alive"
    WAITING = "waiting"


@dataclass
class ScheduleState:
    last_capture_time: Optional[datetime] = None
    sequence_in_progress: bool = False
    last_success_time: Optional[datetime] = None
    last_result: Optional[SequenceResult] = None


class CaptureScheduler:
    """Minute-tick scheduler with a single-flight burst guard"""

    def __init__(self, settings: CaptureSettings, runner, keep_alive, reconciliation,
                 stop_event: Optional[threading.Event] = None, alerts=None):
        """
        Args:
            settings: Validated capture settings
            runner: SequenceRunner executing bursts
            keep_alive: KeepAliveCycle run between bursts
            reconciliation: FileReconciliationEngine (fallback sweep)
            stop_event: Shared shutdown event
            alerts: Optional DiscordAlerts for burst summaries
        """
        self.settings = settings
        self.runner = runner
        self.keep_alive = keep_alive
        self.reconciliation = reconciliation
        self.stop_event = stop_event or threading.Event()
        self.alerts = alerts

        self.state = ScheduleState()
        self._lock = threading.Lock()

        self.running = False
        self._tick_thread: Optional[threading.Thread] = None
        self._burst_thread: Optional[threading.Thread] = None

        # A burst keeps going only while it still owns the guard
        self.runner.should_continue = self._burst_may_continue

    # =========================================================================
    # Gating
    # =========================================================================

    def is_within_operating_hours(self, now: datetime) -> bool:
        return self.settings.start_hour <= now.hour < self.settings.end_hour

    @property
    def keep_alive_margin(self) -> timedelta:
        return timedelta(minutes=self.settings.timing.keep_alive_margin_minutes)

    @property
    def sequence_in_progress(self) -> bool:
        with self._lock:
            return self.state.sequence_in_progress

    def _burst_may_continue(self) -> bool:
        if self.stop_event.is_set():
            return False
        with self._lock:
            return self.state.sequence_in_progress

    def tick(self, now: Optional[datetime] = None) -> TickDecision:
        """Evaluate the schedule once"""
        now = now or datetime.now()

        with self._lock:
            if self.state.sequence_in_progress:
                app_logger.debug("[SCHEDULER] Burst in progress, tick skipped")
                return TickDecision.SKIPPED_IN_PROGRESS

            if not self.is_within_operating_hours(now):
                app_logger.debug(
                    f"[SCHEDULER] {now:%H:%M} outside operating hours "
                    f"({self.settings.start_hour:02d}:00-{self.settings.end_hour:02d}:00)"
                )
                return TickDecision.OUTSIDE_HOURS

            last = self.state.last_capture_time
            if last is None or now - last >= self.settings.interval:
                self.state.sequence_in_progress = True
                start_burst = True
            else:
                start_burst = False
                remaining = last + self.settings.interval - now
                has_success = self.state.last_success_time is not None

        if start_burst:
            self._start_burst(now)
            return TickDecision.SEQUENCE_STARTED

        if has_success and remaining > self.keep_alive_margin:
            app_logger.debug(f"[SCHEDULER] Next burst in {remaining}, running keep-alive")
            try:
                self.keep_alive.run()
            except Exception as e:
                app_logger.error(f"[SCHEDULER] Keep-alive error: {e}")
                app_logger.debug(traceback.format_exc())
            return TickDecision.KEEP_ALIVE

        app_logger.debug(f"[SCHEDULER] Next burst in {remaining}")
        return TickDecision.WAITING

    # =========================================================================
    # Bursts
    # =========================================================================

    def _start_burst(self, admitted_at: datetime) -> None:
        app_logger.info(f"[SCHEDULER] Starting capture sequence ({admitted_at:%H:%M:%S})")
        self._burst_thread = threading.Thread(
            target=self._run_burst, args=(admitted_at,), name="burst", daemon=True
        )
        self._burst_thread.start()

    def _run_burst(self, admitted_at: datetime) -> None:
        result = None
        try:
            result = self.runner.run(
                self.settings.frames_per_sequence,
                self.settings.frame_delay_seconds,
                session_time=admitted_at,
            )
        except Exception as e:
            app_logger.error(f"[SCHEDULER] ✗ Capture sequence crashed: {e}")
            app_logger.debug(traceback.format_exc())
        finally:
            self._on_burst_complete(admitted_at, result)

    def _on_burst_complete(self, admitted_at: datetime, result: Optional[SequenceResult]) -> None:
        downloaded = 0
        if self.stop_event.is_set():
            app_logger.info("[SCHEDULER] Shutting down, fallback sweep skipped")
        else:
            try:
                # Catch frames whose item-created notification never arrived
                downloaded = self.reconciliation.scan_and_download(
                    should_continue=lambda: not self.stop_event.is_set()
                )
            except Exception as e:
                app_logger.error(f"[SCHEDULER] Fallback sweep failed: {e}")

        with self._lock:
            self.state.sequence_in_progress = False
            self.state.last_capture_time = admitted_at
            self.state.last_result = result
            if result is not None and result.succeeded:
                self.state.last_success_time = datetime.now()

        next_due = admitted_at + self.settings.interval
        app_logger.info(f"[SCHEDULER] Next sequence due at {next_due:%H:%M:%S}")

        if self.alerts and result is not None:
            self.alerts.send_sequence_summary(result, downloaded)

    def join_burst(self, timeout: Optional[float] = None) -> bool:
        """Wait for the running burst; True if none is left running"""
        thread = self._burst_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # =========================================================================
    # Tick loop
    # =========================================================================

    def start(self) -> None:
        """Start ticking (first tick immediately)"""
        if self.running:
            return
        self.running = True
        self._tick_thread = threading.Thread(target=self._loop, name="scheduler", daemon=True)
        self._tick_thread.start()
        app_logger.info(
            f"[SCHEDULER] ✓ Scheduler started: {self.settings.frames_per_sequence} frames every "
            f"{self.settings.sequence_interval_minutes} min, "
            f"{self.settings.start_hour:02d}:00-{self.settings.end_hour:02d}:00"
        )

    def _loop(self) -> None:
        period = self.settings.timing.tick_period_seconds
        while self.running and not self.stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                app_logger.error(f"[SCHEDULER] Tick error: {e}")
                app_logger.debug(traceback.format_exc())
            self.stop_event.wait(period)

    def stop(self, timeout: float = 30.0) -> bool:
        """
        Stop ticking, cancel any running burst and wait for both threads.

        Returns:
            True once no scheduler thread is left running; False if one is
            still busy after the timeout and may yet touch the device
        """
        self.running = False
        self.stop_event.set()
        with self._lock:
            self.state.sequence_in_progress = False

        stopped = True
        for thread in (self._tick_thread, self._burst_thread):
            if thread and thread.is_alive() and thread is not threading.current_thread():
                thread.join(timeout)
                if thread.is_alive():
                    app_logger.warning(f"[SCHEDULER] ⚠ {thread.name} thread did not stop within {timeout}s")
                    stopped = False

        self._tick_thread = None
        app_logger.info("[SCHEDULER] Scheduler stopped")
        return stopped
