"""
ctypes binding for the subset of the Canon EDSDK used by the capture service.

Only the functions, structures and constants the EdsdkDevice adapter needs are
declared here. The library is loaded lazily by load_library().
"""
import ctypes
import os
from ctypes import (
    POINTER, Structure, c_char, c_char_p, c_int32, c_uint32, c_uint64, c_void_p,
)
from typing import Optional

from ...platform import find_edsdk, get_edsdk_library_name, is_windows

EDS_ERR_OK = 0x00000000
EDS_ERR_DEVICE_BUSY = 0x00000081
EDS_ERR_SESSION_NOT_OPEN = 0x00002003
EDS_ERR_COMM_PORT_IS_IN_USE = 0x000000C0  # 192, another app owns the USB session

EDS_MAX_NAME = 256

# File stream creation
kEdsFileCreateDisposition_CreateNew = 0
kEdsAccess_Write = 1

# Object events
kEdsObjectEvent_All = 0x00000200
kEdsObjectEvent_DirItemCreated = 0x00000204

# State events
kEdsStateEvent_Shutdown = 0x00000301


class EdsDeviceInfo(Structure):
    _fields_ = [
        ('szPortName', c_char * EDS_MAX_NAME),
        ('szDeviceDescription', c_char * EDS_MAX_NAME),
        ('deviceSubType', c_uint32),
        ('reserved', c_uint32),
    ]


class EdsDirectoryItemInfo(Structure):
    _fields_ = [
        ('size', c_uint64),
        ('isFolder', c_int32),
        ('groupID', c_uint32),
        ('option', c_uint32),
        ('szFileName', c_char * EDS_MAX_NAME),
        ('format', c_uint32),
        ('dateTime', c_uint32),
    ]


# EDSCALLBACK is __stdcall on Windows
_CALLBACK_FACTORY = getattr(ctypes, 'WINFUNCTYPE', ctypes.CFUNCTYPE) if is_windows() else ctypes.CFUNCTYPE

EdsObjectEventHandler = _CALLBACK_FACTORY(c_uint32, c_uint32, c_void_p, c_void_p)
EdsStateEventHandler = _CALLBACK_FACTORY(c_uint32, c_uint32, c_uint32, c_void_p)

EdsBaseRef = c_void_p

# name -> argtypes; every function returns an EdsError (uint32)
_PROTOTYPES = {
    'EdsInitializeSDK': [],
    'EdsTerminateSDK': [],
    'EdsGetCameraList': [POINTER(EdsBaseRef)],
    'EdsGetChildCount': [EdsBaseRef, POINTER(c_uint32)],
    'EdsGetChildAtIndex': [EdsBaseRef, c_int32, POINTER(EdsBaseRef)],
    'EdsRelease': [EdsBaseRef],
    'EdsGetDeviceInfo': [EdsBaseRef, POINTER(EdsDeviceInfo)],
    'EdsOpenSession': [EdsBaseRef],
    'EdsCloseSession': [EdsBaseRef],
    'EdsSetPropertyData': [EdsBaseRef, c_uint32, c_int32, c_uint32, c_void_p],
    'EdsSendCommand': [EdsBaseRef, c_uint32, c_int32],
    'EdsGetDirectoryItemInfo': [EdsBaseRef, POINTER(EdsDirectoryItemInfo)],
    'EdsDownload': [EdsBaseRef, c_uint64, EdsBaseRef],
    'EdsDownloadComplete': [EdsBaseRef],
    'EdsDeleteDirectoryItem': [EdsBaseRef],
    'EdsFormatVolume': [EdsBaseRef],
    'EdsCreateFileStream': [c_char_p, c_uint32, c_uint32, POINTER(EdsBaseRef)],
    'EdsSetObjectEventHandler': [EdsBaseRef, c_uint32, EdsObjectEventHandler, c_void_p],
    'EdsSetCameraStateEventHandler': [EdsBaseRef, c_uint32, EdsStateEventHandler, c_void_p],
    'EdsGetEvent': [],
}


def load_library(sdk_path: Optional[str] = None):
    """
    Load the EDSDK shared library and declare prototypes.

    Args:
        sdk_path: Explicit library path, or None to search default locations

    Returns:
        ctypes library object

    Raises:
        OSError: library not found or not loadable
    """
    path = sdk_path if sdk_path and os.path.exists(sdk_path) else find_edsdk()
    if path is None:
        raise OSError(f"{get_edsdk_library_name()} not found - set device.sdk_path in config")

    loader = ctypes.WinDLL if is_windows() else ctypes.CDLL
    lib = loader(path)

    for name, argtypes in _PROTOTYPES.items():
        func = getattr(lib, name)
        func.argtypes = argtypes
        func.restype = c_uint32

    return lib


def decode_name(raw: bytes) -> str:
    """Decode a fixed-size ANSI name field"""
    return raw.split(b'\x00', 1)[0].decode('mbcs' if is_windows() else 'latin-1', errors='replace')
