"""
Simulated Camera Adapter

Provides a camera-like device backed by a local directory. Each
subdirectory of the root is a memory card; captures write a small JPEG
into DCIM/100SIMUL and raise an item-created event on the next poll.
Used for dry runs (--simulate) and end-to-end tests.
"""
import os
import re
import shutil
import threading
from pathlib import Path
from typing import Any, List, Optional

from ..interface import (
    COMMAND_PRESS_SHUTTER_BUTTON,
    COMMAND_TAKE_PICTURE,
    PROPERTY_SAVE_TO,
    DeviceCapability,
    DeviceError,
    ItemCreatedCallback,
    ItemInfo,
)
from ...logger import app_logger

DEFAULT_VOLUME = "CARD1"
IMAGE_FOLDER = os.path.join("DCIM", "100SIMUL")

# Smallest well-formed JPEG body: SOI + EOI around a comment segment
_PLACEHOLDER_JPEG = b"\xff\xd8\xff\xfe\x00\x13simulated capture\xff\xd9"

_IMAGE_NAME = re.compile(r"IMG_(\d{4})\.JPG$", re.IGNORECASE)


class SimulatedDevice(DeviceCapability):
    """Directory-backed stand-in for a tethered camera"""

    backend_name = "simulated"

    def __init__(self, root: Optional[str] = None):
        if root:
            self.root = Path(root)
        else:
            from utils_paths import get_app_data_dir
            self.root = Path(get_app_data_dir()) / "simulated_camera"

        self._lock = threading.Lock()
        self._pending_events = 0
        self._callback: Optional[ItemCreatedCallback] = None
        self._session_open = False
        self._last_number = 0
        self.properties = {}

    # =========================================================================
    # Session
    # =========================================================================

    def open_session(self) -> Any:
        try:
            volumes = [p for p in self.root.iterdir() if p.is_dir()] if self.root.exists() else []
            if not volumes:
                (self.root / DEFAULT_VOLUME / IMAGE_FOLDER).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DeviceError(f"Simulated camera root unavailable: {e}") from e

        self._session_open = True
        app_logger.info(f"[CAMERA INIT] Simulated camera at {self.root}")
        return self.root

    def close_session(self, handle: Any) -> None:
        with self._lock:
            self._session_open = False
            self._callback = None
            self._pending_events = 0

    def _require_session(self) -> None:
        if not self._session_open:
            raise DeviceError("Session not open")

    # =========================================================================
    # Commands and properties
    # =========================================================================

    def send_command(self, handle: Any, command: int, param: int = 0) -> None:
        self._require_session()
        if command not in (COMMAND_TAKE_PICTURE, COMMAND_PRESS_SHUTTER_BUTTON):
            raise DeviceError(f"Unsupported command 0x{command:08X}")

        folder = self._image_folder()
        self._last_number = max(self._last_number, self._highest_number(folder)) + 1
        path = folder / f"IMG_{self._last_number:04d}.JPG"
        try:
            path.write_bytes(_PLACEHOLDER_JPEG)
        except OSError as e:
            raise DeviceError(f"Simulated capture failed: {e}") from e

        with self._lock:
            self._pending_events += 1

    def set_property(self, handle: Any, property_id: int, value: int) -> None:
        self._require_session()
        if property_id != PROPERTY_SAVE_TO:
            raise DeviceError(f"Unsupported property 0x{property_id:08X}")
        self.properties[property_id] = value

    def _image_folder(self) -> Path:
        volumes = sorted(p for p in self.root.iterdir() if p.is_dir())
        if not volumes:
            raise DeviceError("No card inserted")
        folder = volumes[0] / IMAGE_FOLDER
        folder.mkdir(parents=True, exist_ok=True)
        return folder

    @staticmethod
    def _highest_number(folder: Path) -> int:
        # File numbering continues across downloads and formats, like the camera
        numbers = [int(m.group(1)) for m in (_IMAGE_NAME.match(p.name) for p in folder.iterdir()) if m]
        return max(numbers, default=0)

    # =========================================================================
    # Storage
    # =========================================================================

    def enumerate_volumes(self, handle: Any) -> List[Any]:
        self._require_session()
        try:
            return sorted(p for p in self.root.iterdir() if p.is_dir())
        except OSError as e:
            raise DeviceError(f"Cannot list volumes: {e}") from e

    def enumerate_children(self, item_ref: Any) -> List[Any]:
        try:
            return sorted(Path(item_ref).iterdir())
        except OSError as e:
            raise DeviceError(f"Cannot list {item_ref}: {e}") from e

    def get_item_info(self, item_ref: Any) -> ItemInfo:
        path = Path(item_ref)
        try:
            is_folder = path.is_dir()
            size = 0 if is_folder else path.stat().st_size
        except OSError as e:
            raise DeviceError(f"Cannot stat {path}: {e}") from e
        return ItemInfo(name=path.name, size=size, is_folder=is_folder)

    def download(self, item_ref: Any, size: int, destination: str) -> None:
        try:
            with open(item_ref, 'rb') as src, open(destination, 'xb') as dst:
                dst.write(src.read(size))
        except OSError as e:
            raise DeviceError(f"Download of {item_ref} failed: {e}") from e

    def complete_download(self, item_ref: Any) -> None:
        if not Path(item_ref).exists():
            raise DeviceError(f"{item_ref} no longer exists")

    def delete_item(self, item_ref: Any) -> None:
        try:
            Path(item_ref).unlink()
        except OSError as e:
            raise DeviceError(f"Delete of {item_ref} failed: {e}") from e

    def format_volume(self, volume_ref: Any) -> None:
        volume = Path(volume_ref)
        try:
            for child in volume.iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            (volume / IMAGE_FOLDER).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DeviceError(f"Format of {volume.name} failed: {e}") from e

    # =========================================================================
    # Events
    # =========================================================================

    def poll_events(self) -> None:
        with self._lock:
            pending, self._pending_events = self._pending_events, 0
            callback = self._callback

        if callback is None:
            return
        for _ in range(pending):
            callback()

    def set_item_created_handler(self, handle: Any, callback: Optional[ItemCreatedCallback]) -> None:
        with self._lock:
            self._callback = callback
