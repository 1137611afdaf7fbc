"""
Cleanup of vendor utilities that compete for the camera's USB session.

Canon's EOS Utility (and its UPnP helper) grab the camera as soon as it is
connected, which makes EdsOpenSession fail with "port in use". Called before
every session attempt.
"""
import os
import time
from typing import Iterable, List

import psutil

from .logger import app_logger


def _normalize(name: str) -> str:
    name = (name or '').strip().lower()
    if name.endswith('.exe'):
        name = name[:-4]
    return name


def find_competing_processes(process_names: Iterable[str]) -> List[psutil.Process]:
    """Running processes whose name (without .exe, case-insensitive) is listed"""
    wanted = {_normalize(n) for n in process_names if n}
    if not wanted:
        return []

    current_pid = os.getpid()
    found = []
    for proc in psutil.process_iter(['pid', 'name']):
        try:
            if proc.pid == current_pid:
                continue
            if _normalize(proc.info.get('name')) in wanted:
                found.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return found


def terminate_competing_software(process_names: Iterable[str], timeout: float = 5.0,
                                 settle_seconds: float = 2.0) -> int:
    """
    Terminate listed vendor utilities, force-killing any that ignore the request.

    Args:
        process_names: Process names to look for
        timeout: Seconds to wait for graceful exit before kill()
        settle_seconds: Pause after any termination so the USB port is released

    Returns:
        Number of processes terminated
    """
    procs = find_competing_processes(process_names)
    if not procs:
        return 0

    terminated = []
    for proc in procs:
        try:
            app_logger.warning(f"[CAMERA INIT] ⚠ Closing competing software: {proc.info.get('name')} (pid {proc.pid})")
            proc.terminate()
            terminated.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            app_logger.debug(f"[CAMERA INIT] Could not terminate pid {proc.pid}: {e}")

    if not terminated:
        return 0

    gone, alive = psutil.wait_procs(terminated, timeout=timeout)
    for proc in alive:
        try:
            app_logger.warning(f"[CAMERA INIT] Force killing unresponsive pid {proc.pid}")
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    if alive:
        psutil.wait_procs(alive, timeout=1.0)

    if settle_seconds > 0:
        time.sleep(settle_seconds)

    return len(terminated)
