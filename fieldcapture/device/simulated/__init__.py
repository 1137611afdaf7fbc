"""
Simulated camera backend for Field Capture Service.

Provides a directory-backed camera for dry runs without hardware.
"""

from .adapter import SimulatedDevice

__all__ = ['SimulatedDevice']
