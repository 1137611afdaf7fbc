"""
Device Capability Abstraction Layer

Defines the narrow interface the capture engine uses to talk to a camera.
Every backend (vendor SDK, simulated) implements DeviceCapability; nothing
above this layer touches the SDK directly.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional


# Commands understood by send_command()
COMMAND_TAKE_PICTURE = 0x00000000
COMMAND_PRESS_SHUTTER_BUTTON = 0x00000004

# Property IDs / values understood by set_property()
PROPERTY_SAVE_TO = 0x0000000B
SAVE_TO_CAMERA = 1
SAVE_TO_HOST = 2
SAVE_TO_BOTH = SAVE_TO_CAMERA | SAVE_TO_HOST


class DeviceError(Exception):
    """
    Raised by a backend when a device call fails.

    Attributes:
        code: Vendor error code (None when the failure is not an SDK code)
    """

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code

    def __str__(self) -> str:
        message = super().__str__()
        if self.code is None:
            return message
        return f"{message} (error 0x{self.code:08X})"


@dataclass(frozen=True)
class ItemInfo:
    """Directory entry on the camera's storage"""
    name: str
    size: int
    is_folder: bool = False


ItemCreatedCallback = Callable[[], None]


class DeviceCapability(ABC):
    """
    Abstract base class for camera backends.

    References returned by enumerate_volumes()/enumerate_children() are
    opaque to callers and must be handed back to release() once used.

    Lifecycle:
        1. open_session() - acquire the camera, returns a session handle
        2. set_property() / set_item_created_handler() - prepare the session
        3. send_command(), enumerate_*(), download(), ... - normal operation
        4. poll_events() - called periodically to dispatch device events
        5. close_session(handle) - release the camera
    """

    #: Short backend name used by the factory and in log lines
    backend_name = "abstract"

    # =========================================================================
    # Session
    # =========================================================================

    @abstractmethod
    def open_session(self) -> Any:
        """
        Acquire the first attached camera and open a session on it.

        Returns:
            Opaque session handle

        Raises:
            DeviceError: no camera found or the session could not be opened
        """

    @abstractmethod
    def close_session(self, handle: Any) -> None:
        """Close the session and release the camera"""

    # =========================================================================
    # Commands and properties
    # =========================================================================

    @abstractmethod
    def send_command(self, handle: Any, command: int, param: int = 0) -> None:
        """Send a camera command (e.g. COMMAND_TAKE_PICTURE)"""

    @abstractmethod
    def set_property(self, handle: Any, property_id: int, value: int) -> None:
        """Set a 32-bit camera property (e.g. PROPERTY_SAVE_TO)"""

    # =========================================================================
    # Storage
    # =========================================================================

    @abstractmethod
    def enumerate_volumes(self, handle: Any) -> List[Any]:
        """List storage volumes (memory cards) of the camera"""

    @abstractmethod
    def enumerate_children(self, item_ref: Any) -> List[Any]:
        """List entries of a volume or folder"""

    @abstractmethod
    def get_item_info(self, item_ref: Any) -> ItemInfo:
        """Name, size and folder flag of a directory entry"""

    @abstractmethod
    def download(self, item_ref: Any, size: int, destination: str) -> None:
        """
        Stream `size` bytes of the item into a newly created local file.

        The destination must not exist; backends create it exclusively.
        """

    @abstractmethod
    def complete_download(self, item_ref: Any) -> None:
        """Acknowledge a finished download to the camera"""

    @abstractmethod
    def delete_item(self, item_ref: Any) -> None:
        """Delete a file from the camera's storage"""

    @abstractmethod
    def format_volume(self, volume_ref: Any) -> None:
        """Format (erase) a storage volume"""

    def release(self, ref: Any) -> None:
        """Release a reference obtained from enumeration (no-op by default)"""

    # =========================================================================
    # Events
    # =========================================================================

    @abstractmethod
    def poll_events(self) -> None:
        """Dispatch pending device events (best effort, called periodically)"""

    @abstractmethod
    def set_item_created_handler(self, handle: Any, callback: Optional[ItemCreatedCallback]) -> None:
        """
        Register the callback fired when a new file appears on the card.

        Passing None unregisters the current handler.
        """
