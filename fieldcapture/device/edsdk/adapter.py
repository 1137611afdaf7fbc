"""
Canon EDSDK device backend.

Wraps the ctypes binding in sdk.py behind DeviceCapability. SDK calls are
serialized with a re-entrant lock because the library is not safe to call
from the scheduler, burst and event-pump threads at the same time.
"""
import os
import threading
import time
from ctypes import byref, c_uint32
from typing import Any, List, Optional

from ..interface import DeviceCapability, DeviceError, ItemCreatedCallback, ItemInfo
from ...logger import app_logger
from . import sdk


class EdsdkDevice(DeviceCapability):
    """Canon EOS camera via the EDSDK shared library"""

    backend_name = "edsdk"

    def __init__(self, sdk_path: Optional[str] = None):
        self.sdk_path = sdk_path
        self._lib = None
        self._sdk_initialized = False
        self._lock = threading.RLock()

        # ctypes callback objects must stay referenced while registered
        self._item_created_callback: Optional[ItemCreatedCallback] = None
        self._object_handler = None
        self._state_handler = None

        self.device_description: Optional[str] = None

    def log(self, message: str) -> None:
        app_logger.info(message)

    # =========================================================================
    # SDK plumbing
    # =========================================================================

    def _call(self, name: str, *args) -> None:
        """Invoke an SDK function and raise DeviceError on a non-OK result"""
        with self._lock:
            err = getattr(self._lib, name)(*args)
        if err != sdk.EDS_ERR_OK:
            raise DeviceError(f"{name} failed", code=err)

    def _ensure_sdk(self) -> None:
        if self._lib is None:
            try:
                self._lib = sdk.load_library(self.sdk_path)
            except OSError as e:
                raise DeviceError(f"Could not load EDSDK: {e}") from e

        with self._lock:
            if self._sdk_initialized:
                # Clear state left by a previous failed attempt
                self._lib.EdsTerminateSDK()
                self._sdk_initialized = False
                time.sleep(1.0)

            self._call('EdsInitializeSDK')
            self._sdk_initialized = True

    def _child_count(self, ref) -> int:
        count = c_uint32(0)
        self._call('EdsGetChildCount', ref, byref(count))
        return count.value

    def _child_at(self, ref, index: int):
        child = sdk.EdsBaseRef()
        self._call('EdsGetChildAtIndex', ref, index, byref(child))
        return child

    # =========================================================================
    # Session
    # =========================================================================

    def open_session(self) -> Any:
        self._ensure_sdk()

        camera_list = sdk.EdsBaseRef()
        self._call('EdsGetCameraList', byref(camera_list))
        try:
            count = self._child_count(camera_list)
            if count == 0:
                raise DeviceError("No cameras found")
            self.log(f"[CAMERA INIT] Found {count} camera(s)")

            camera = self._child_at(camera_list, 0)
        finally:
            self.release(camera_list)

        try:
            info = sdk.EdsDeviceInfo()
            self._call('EdsGetDeviceInfo', camera, byref(info))
            self.device_description = sdk.decode_name(info.szDeviceDescription)
            self.log(f"[CAMERA INIT] Camera found: {self.device_description}")

            self._call('EdsOpenSession', camera)
        except DeviceError as e:
            self.release(camera)
            if e.code == sdk.EDS_ERR_COMM_PORT_IS_IN_USE:
                raise DeviceError("Camera USB session is held by another application", code=e.code) from e
            raise

        return camera

    def close_session(self, handle: Any) -> None:
        with self._lock:
            if handle:
                err = self._lib.EdsCloseSession(handle)
                if err != sdk.EDS_ERR_OK:
                    app_logger.warning(f"[CLEANUP] EdsCloseSession returned 0x{err:08X}")
                self._lib.EdsRelease(handle)
            if self._sdk_initialized:
                self._lib.EdsTerminateSDK()
                self._sdk_initialized = False

        self._object_handler = None
        self._state_handler = None

    # =========================================================================
    # Commands and properties
    # =========================================================================

    def send_command(self, handle: Any, command: int, param: int = 0) -> None:
        self._call('EdsSendCommand', handle, command, param)

    def set_property(self, handle: Any, property_id: int, value: int) -> None:
        data = c_uint32(value)
        self._call('EdsSetPropertyData', handle, property_id, 0, 4, byref(data))

    # =========================================================================
    # Storage
    # =========================================================================

    def enumerate_volumes(self, handle: Any) -> List[Any]:
        return self.enumerate_children(handle)

    def enumerate_children(self, item_ref: Any) -> List[Any]:
        return [self._child_at(item_ref, i) for i in range(self._child_count(item_ref))]

    def get_item_info(self, item_ref: Any) -> ItemInfo:
        info = sdk.EdsDirectoryItemInfo()
        self._call('EdsGetDirectoryItemInfo', item_ref, byref(info))
        return ItemInfo(
            name=sdk.decode_name(info.szFileName),
            size=int(info.size),
            is_folder=bool(info.isFolder),
        )

    def download(self, item_ref: Any, size: int, destination: str) -> None:
        stream = sdk.EdsBaseRef()
        path = os.fsencode(destination)
        self._call(
            'EdsCreateFileStream', path,
            sdk.kEdsFileCreateDisposition_CreateNew, sdk.kEdsAccess_Write, byref(stream),
        )
        try:
            self._call('EdsDownload', item_ref, size, stream)
        finally:
            self.release(stream)

    def complete_download(self, item_ref: Any) -> None:
        self._call('EdsDownloadComplete', item_ref)

    def delete_item(self, item_ref: Any) -> None:
        self._call('EdsDeleteDirectoryItem', item_ref)

    def format_volume(self, volume_ref: Any) -> None:
        self._call('EdsFormatVolume', volume_ref)

    def release(self, ref: Any) -> None:
        if ref and self._lib is not None:
            with self._lock:
                self._lib.EdsRelease(ref)

    # =========================================================================
    # Events
    # =========================================================================

    def poll_events(self) -> None:
        # EdsGetEvent dispatches registered handlers on this thread
        self._call('EdsGetEvent')

    def set_item_created_handler(self, handle: Any, callback: Optional[ItemCreatedCallback]) -> None:
        self._item_created_callback = callback

        if callback is None:
            self._call('EdsSetObjectEventHandler', handle, sdk.kEdsObjectEvent_All,
                       sdk.EdsObjectEventHandler(), None)
            self._object_handler = None
            return

        self._object_handler = sdk.EdsObjectEventHandler(self._on_object_event)
        self._state_handler = sdk.EdsStateEventHandler(self._on_state_event)
        self._call('EdsSetObjectEventHandler', handle, sdk.kEdsObjectEvent_All,
                   self._object_handler, None)
        self._call('EdsSetCameraStateEventHandler', handle, sdk.kEdsStateEvent_Shutdown,
                   self._state_handler, None)

    def _on_object_event(self, event, ref, context):
        try:
            if event == sdk.kEdsObjectEvent_DirItemCreated and self._item_created_callback:
                self._item_created_callback()
        except Exception as e:
            app_logger.error(f"[EVENTS] Error handling object event: {e}")
        finally:
            # Object event references are owned by the receiver
            self.release(ref)
        return sdk.EDS_ERR_OK

    def _on_state_event(self, event, event_data, context):
        app_logger.warning(f"[EVENTS] Camera state event 0x{event:08X} (data {event_data})")
        return sdk.EDS_ERR_OK
