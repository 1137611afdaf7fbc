"""
Canon EDSDK backend for Field Capture Service.

Provides Canon EOS support through a ctypes binding of the EDSDK library.
"""

from .adapter import EdsdkDevice

__all__ = [
    'EdsdkDevice',
]
