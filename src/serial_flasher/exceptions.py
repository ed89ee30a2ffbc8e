"""
Exception hierarchy for Serial Flasher.

Connection, transport and engine failures are turned into
OperationResult failures by the session. IllegalStateError is the one
exception that is meant to reach the caller: it signals that a UI
invoked an action the current session state does not allow.
"""

from typing import Optional


class FlasherError(Exception):
    """Base exception for all Serial Flasher errors"""
    pass


class IllegalStateError(FlasherError):
    """
    Raised when a session action is invoked in a state that forbids it.

    Attributes:
        action: Name of the rejected action
        state: Session state at the time of the call
    """
    def __init__(self, action: str, state: str, message: Optional[str] = None):
        self.action = action
        self.state = state
        super().__init__(message or f"'{action}' is not allowed while session is {state}")


class DeviceSelectionCancelled(FlasherError):
    """No device was selected (user cancelled or nothing attached)"""
    pass


class TransportError(FlasherError):
    """Serial transport could not be opened, read or written"""
    pass


class EngineError(FlasherError):
    """Flashing engine failed to identify, erase or write"""
    pass


class ChecksumMismatchError(EngineError):
    """
    Flash contents did not match the image after writing.

    Attributes:
        address: Flash address of the image
        expected: Digest computed locally
        actual: Digest reported by the chip
    """
    def __init__(self, address: int, expected: str, actual: str):
        self.address = address
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"MD5 of file does not match data in flash at 0x{address:08X} "
            f"(file {expected}, flash {actual})"
        )
