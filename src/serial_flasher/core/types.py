"""
Shared value types for the flashing session.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple, Optional, Union

ImageData = Union[bytes, bytearray, memoryview]


class SessionState(Enum):
    """Connection state of a FlashSession."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    BUSY = "busy"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ImageRow(NamedTuple):
    """One row of the image table as the user entered it."""
    offset: str
    data: Optional[ImageData] = None


@dataclass(frozen=True)
class FlashImage:
    """A validated (offset, data) pair ready to be written."""
    offset: int
    data: ImageData

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass(frozen=True)
class ProgressReport:
    """Progress of a single image while it is being written."""
    file_index: int
    bytes_written: int
    bytes_total: int

    @property
    def percent(self) -> float:
        if not self.bytes_total:
            return 100.0
        return (self.bytes_written / self.bytes_total) * 100


@dataclass
class ValidationResult:
    """
    Outcome of validating the image table.

    Attributes:
        ok: True when every row passed
        images: Validated images in input order (empty on failure)
        error: Human-readable message for the first failing row
        row: 1-based index of the failing row
    """
    ok: bool
    images: List[FlashImage] = field(default_factory=list)
    error: str = ""
    row: Optional[int] = None

    def __bool__(self) -> bool:
        return self.ok
