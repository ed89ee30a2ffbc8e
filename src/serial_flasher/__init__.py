"""
Serial Flasher - firmware flashing sessions for serial-attached microcontrollers

Connect, reset, erase and program ESP boards over USB serial.
"""

__version__ = "0.1.0"

from serial_flasher.core import FlashSession, SessionListener, SessionState, OperationResult
from serial_flasher.config import FlasherSettings, load_settings

__all__ = [
    "FlashSession",
    "SessionListener",
    "SessionState",
    "OperationResult",
    "FlasherSettings",
    "load_settings",
    "__version__",
]
