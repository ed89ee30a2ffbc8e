"""
Standardized warning and message system for Serial Flasher.

Provides structured warning items with stable codes that both CLI and
Streamlit can display consistently.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Dict, Any

from .results import ErrorKind, OperationResult


class MessageLevel(Enum):
    """Severity level for messages."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


# Standard warning codes for consistent messaging across CLI and UI
class WarningCode(Enum):
    """Stable warning codes for known conditions."""
    # Device/connection warnings
    W_DEVICE_NOT_FOUND = "W_DEVICE_NOT_FOUND"
    W_SELECTION_CANCELLED = "W_SELECTION_CANCELLED"
    W_SERIAL_ERROR = "W_SERIAL_ERROR"
    W_SERIAL_TIMEOUT = "W_SERIAL_TIMEOUT"
    W_HANDSHAKE_FAILED = "W_HANDSHAKE_FAILED"
    W_CHIP_UNSUPPORTED = "W_CHIP_UNSUPPORTED"

    # Image table warnings
    W_INVALID_OFFSET = "W_INVALID_OFFSET"
    W_DUPLICATE_OFFSET = "W_DUPLICATE_OFFSET"
    W_MISSING_FILE = "W_MISSING_FILE"
    W_IMAGE_OVERLAP = "W_IMAGE_OVERLAP"

    # Operation warnings
    W_CHECKSUM_MISMATCH = "W_CHECKSUM_MISMATCH"
    W_ERASE_FAILED = "W_ERASE_FAILED"
    W_WRITE_FAILED = "W_WRITE_FAILED"
    W_RESET_FAILED = "W_RESET_FAILED"
    W_DISCONNECTED = "W_DISCONNECTED"

    # Generic
    W_UNKNOWN = "W_UNKNOWN"


# Default remediation hints for each warning code
WARNING_REMEDIATIONS: Dict[WarningCode, str] = {
    WarningCode.W_DEVICE_NOT_FOUND:
        "Check the USB cable, then run the 'ports' command to list serial devices.",
    WarningCode.W_SELECTION_CANCELLED:
        "Select a serial port to connect to.",
    WarningCode.W_SERIAL_ERROR:
        "Close other serial apps (monitors, IDEs) holding the port. Check USB driver.",
    WarningCode.W_SERIAL_TIMEOUT:
        "Hold BOOT while pressing RESET to enter download mode, then retry.",
    WarningCode.W_HANDSHAKE_FAILED:
        "Chip did not answer the bootloader sync. Retry; the port stays selected.",
    WarningCode.W_CHIP_UNSUPPORTED:
        "The attached chip is not supported by the installed esptool version.",
    WarningCode.W_INVALID_OFFSET:
        "Use decimal (4096), hex (0x1000), or suffix (1000h) offsets.",
    WarningCode.W_DUPLICATE_OFFSET:
        "Each image needs its own flash offset.",
    WarningCode.W_MISSING_FILE:
        "Choose a binary file for every row, or remove the row.",
    WarningCode.W_IMAGE_OVERLAP:
        "Later rows overwrite earlier ones where regions overlap.",
    WarningCode.W_CHECKSUM_MISMATCH:
        "Flash contents differ from the file. Erase the chip and program again.",
    WarningCode.W_ERASE_FAILED:
        "Erase did not complete. The device is still connected; retry erase.",
    WarningCode.W_WRITE_FAILED:
        "Programming did not complete. The device is still connected; retry program.",
    WarningCode.W_RESET_FAILED:
        "Could not toggle the reset line. Press the board's RESET button instead.",
    WarningCode.W_DISCONNECTED:
        "The session was disconnected while the action was running.",
    WarningCode.W_UNKNOWN:
        "Check logs for more details.",
}


@dataclass
class WarningItem:
    """
    Structured warning message with stable code.

    Attributes:
        level: Severity (INFO, WARN, ERROR)
        code: Stable warning code for programmatic handling
        title: Short, user-facing title
        detail: Longer explanation of the issue
        remediation: Suggested action to resolve the issue
    """
    level: MessageLevel
    code: WarningCode
    title: str
    detail: str = ""
    remediation: str = ""

    def __post_init__(self):
        """Set default remediation if not provided."""
        if not self.remediation and self.code in WARNING_REMEDIATIONS:
            self.remediation = WARNING_REMEDIATIONS[self.code]

    @classmethod
    def info(cls, code: WarningCode, title: str, detail: str = "") -> "WarningItem":
        """Create an INFO-level warning."""
        return cls(MessageLevel.INFO, code, title, detail)

    @classmethod
    def warn(cls, code: WarningCode, title: str, detail: str = "") -> "WarningItem":
        """Create a WARN-level warning."""
        return cls(MessageLevel.WARN, code, title, detail)

    @classmethod
    def error(cls, code: WarningCode, title: str, detail: str = "") -> "WarningItem":
        """Create an ERROR-level warning."""
        return cls(MessageLevel.ERROR, code, title, detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON/display."""
        return {
            "level": self.level.value,
            "code": self.code.value,
            "title": self.title,
            "detail": self.detail,
            "remediation": self.remediation,
        }

    def to_cli_string(self, verbose: bool = False) -> str:
        """Format for CLI output."""
        icons = {
            MessageLevel.INFO: "ℹ️ ",
            MessageLevel.WARN: "⚠️ ",
            MessageLevel.ERROR: "❌",
        }
        icon = icons.get(self.level, "")

        if verbose:
            lines = [f"{icon} [{self.code.value}] {self.title}"]
            if self.detail:
                lines.append(f"   {self.detail}")
            if self.remediation:
                lines.append(f"   → {self.remediation}")
            return "\n".join(lines)
        return f"{icon} {self.title}"


def classify_error(message: str, kind: ErrorKind) -> WarningCode:
    """
    Pick a warning code for an error message.

    Validation messages have fixed wording, so they map exactly; other
    kinds fall back to keyword detection.
    """
    msg_lower = message.lower()

    if kind == ErrorKind.VALIDATION:
        if "not a valid address" in msg_lower:
            return WarningCode.W_INVALID_OFFSET
        if "already in use" in msg_lower:
            return WarningCode.W_DUPLICATE_OFFSET
        if "no file selected" in msg_lower:
            return WarningCode.W_MISSING_FILE
        return WarningCode.W_UNKNOWN

    if kind == ErrorKind.DISCONNECTED:
        return WarningCode.W_DISCONNECTED

    if "no serial devices" in msg_lower or "no device" in msg_lower:
        return WarningCode.W_DEVICE_NOT_FOUND
    if "cancel" in msg_lower:
        return WarningCode.W_SELECTION_CANCELLED
    if "md5" in msg_lower or "checksum" in msg_lower:
        return WarningCode.W_CHECKSUM_MISMATCH
    if "timeout" in msg_lower or "timed out" in msg_lower:
        return WarningCode.W_SERIAL_TIMEOUT
    if "autodetect" in msg_lower or "unsupported" in msg_lower:
        return WarningCode.W_CHIP_UNSUPPORTED
    if "failed to connect" in msg_lower or "sync" in msg_lower:
        return WarningCode.W_HANDSHAKE_FAILED
    if "port" in msg_lower or "serial" in msg_lower:
        return WarningCode.W_SERIAL_ERROR
    return WarningCode.W_UNKNOWN


_OPERATION_CODES = {
    "erase_all": WarningCode.W_ERASE_FAILED,
    "program_images": WarningCode.W_WRITE_FAILED,
    "reset_device": WarningCode.W_RESET_FAILED,
}


def result_to_warnings(result: OperationResult) -> List[WarningItem]:
    """
    Convert Result object's warnings and errors to WarningItem list.

    Args:
        result: OperationResult from a session action

    Returns:
        List of WarningItem objects
    """
    items = []

    for msg in result.warnings:
        code = WarningCode.W_IMAGE_OVERLAP if "overlap" in msg.lower() else WarningCode.W_UNKNOWN
        items.append(WarningItem.warn(code, msg))

    kind = result.kind or ErrorKind.OPERATION
    for err in result.errors:
        code = classify_error(err, kind)
        if code == WarningCode.W_UNKNOWN and kind == ErrorKind.OPERATION:
            code = _OPERATION_CODES.get(result.operation, WarningCode.W_UNKNOWN)
        level = MessageLevel.INFO if kind == ErrorKind.DISCONNECTED else MessageLevel.ERROR
        items.append(WarningItem(level, code, err))

    return items
