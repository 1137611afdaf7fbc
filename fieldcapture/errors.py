"""
Error taxonomy for the capture service.

Only InitializationError and ConfigurationError are allowed to end the
process. Everything else is caught at the operation that raised it and
reduced to a False return plus a log line.
"""


class CaptureServiceError(Exception):
    """Base class for capture service errors"""


class ConfigurationError(CaptureServiceError):
    """Configuration file is missing values or has values out of range"""


class InitializationError(CaptureServiceError):
    """Device could not be acquired after every retry attempt (fatal)"""


class DeviceCommandError(CaptureServiceError):
    """A single command (capture, property set) was rejected by the device"""


class EnumerationError(CaptureServiceError):
    """Listing volumes or folders on the device failed"""


class DownloadError(CaptureServiceError):
    """Creating the local file or streaming the item failed"""


class DeviceCleanupError(CaptureServiceError):
    """Deleting an item or formatting a volume on the device failed"""


# Shown when the device cannot be acquired at startup
REMEDIATION_CHECKLIST = (
    "Camera is connected via USB (try another cable or port)",
    "Camera is powered ON and the battery/DC coupler is supplying power",
    "Camera mode dial is set to M (Manual) and USB mode is PC Remote",
    "EOS Utility and other Canon software are completely closed",
    "Turn the camera OFF, wait 5 seconds, turn it ON and restart the service",
)
