"""
Device Factory

Factory module for creating device backends based on configuration.
Provides a unified way to instantiate the correct camera backend.
"""
from typing import Any, Dict, List, Optional, Type

from .interface import DeviceCapability


# Available backends registry
_BACKENDS: Dict[str, Type[DeviceCapability]] = {}


def _register_backends():
    """Register available device backends (lazy loading)"""
    if _BACKENDS:
        return  # Already registered

    # Canon EDSDK (ctypes binding, library loaded on first session)
    from .edsdk import EdsdkDevice
    _BACKENDS['edsdk'] = EdsdkDevice
    _BACKENDS['canon'] = EdsdkDevice  # Alias

    # Directory-backed camera for dry runs
    from .simulated import SimulatedDevice
    _BACKENDS['simulated'] = SimulatedDevice
    _BACKENDS['sim'] = SimulatedDevice  # Alias


def get_available_backends() -> List[str]:
    """
    Get list of available device backend names.

    Returns:
        List of backend names that can be used with create_device() (no aliases)
    """
    _register_backends()

    names = []
    seen_classes = set()
    for name, cls in _BACKENDS.items():
        if cls not in seen_classes:
            seen_classes.add(cls)
            names.append(name)

    return sorted(names)


def create_device(backend: str, settings: Optional[Any] = None) -> DeviceCapability:
    """
    Create a device backend.

    Args:
        backend: Backend name ('edsdk', 'simulated' or an alias)
        settings: CaptureSettings supplying sdk_path / simulated_root

    Raises:
        ValueError: unknown backend name
    """
    _register_backends()

    key = (backend or '').strip().lower()
    if key not in _BACKENDS:
        available = ', '.join(get_available_backends())
        raise ValueError(f"Unknown camera backend: {backend!r} (available: {available})")

    cls = _BACKENDS[key]
    if cls.backend_name == 'edsdk':
        return cls(sdk_path=getattr(settings, 'sdk_path', None))
    return cls(root=getattr(settings, 'simulated_root', None))
