"""
Flashing engine contract.

The session only talks to a FlashingEngine; the wire protocol (SLIP
framing, stub upload, erase/write opcodes, flash MD5) belongs to the
implementation (see esptool_engine).
"""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

from serial_flasher.core.images import md5_hex
from serial_flasher.core.types import FlashImage, ImageData

FLASH_SIZE_KEEP = "keep"

ProgressCallback = Callable[[int, int, int], None]
HashFunction = Callable[[ImageData], str]


@dataclass(frozen=True)
class FlashOptions:
    """
    Options for a multi-image flash write.

    Attributes:
        flash_size: Flash size policy; "keep" leaves image headers untouched
        erase_all: Erase the whole chip before writing
        compress: Send deflate-compressed blocks
        report_progress: Called with (file_index, bytes_written, bytes_total)
        calculate_hash: Digest function used to verify each image
    """
    flash_size: str = FLASH_SIZE_KEEP
    erase_all: bool = False
    compress: bool = True
    report_progress: Optional[ProgressCallback] = None
    calculate_hash: HashFunction = md5_hex


class FlashingEngine(Protocol):
    """What the session needs from a flashing engine."""

    def identify(self) -> str:
        """Handshake with the chip and return its name."""
        ...

    def erase_all(self) -> None:
        """Erase the entire flash."""
        ...

    def write_images(self, images: Sequence[FlashImage], options: FlashOptions) -> None:
        """Write each image at its offset, reporting progress."""
        ...
