"""
Device capability layer for Field Capture Service.

Backends:
    device/
    ├── interface.py   # DeviceCapability ABC, ItemInfo, DeviceError
    ├── factory.py     # create_device(), get_available_backends()
    ├── edsdk/         # Canon EDSDK via ctypes
    └── simulated/     # Directory-backed camera (dry runs, tests)

Usage:
    from fieldcapture.device import create_device

    device = create_device('edsdk', settings)
    handle = device.open_session()
"""

from .interface import (
    COMMAND_TAKE_PICTURE,
    PROPERTY_SAVE_TO,
    SAVE_TO_CAMERA,
    DeviceCapability,
    DeviceError,
    ItemInfo,
)

from .factory import (
    create_device,
    get_available_backends,
)

__all__ = [
    'COMMAND_TAKE_PICTURE',
    'PROPERTY_SAVE_TO',
    'SAVE_TO_CAMERA',
    'DeviceCapability',
    'DeviceError',
    'ItemInfo',
    'create_device',
    'get_available_backends',
]
