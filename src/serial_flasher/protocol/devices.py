"""
Serial device discovery and selection.

A DeviceHandle is the port the user picked; it outlives a failed
connection attempt so a retry does not ask again. Selectors are plain
callables returning a DeviceHandle, or raising DeviceSelectionCancelled.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import serial.tools.list_ports

from serial_flasher.exceptions import DeviceSelectionCancelled

logger = logging.getLogger(__name__)

# USB vendor IDs of bridges found on ESP boards:
# Espressif native USB, CP210x, CH34x, FTDI, PL2303
PREFERRED_VIDS = {0x303A, 0x10C4, 0x1A86, 0x0403, 0x067B}


@dataclass(frozen=True)
class DeviceHandle:
    """A selected serial device."""
    port: str
    description: str = ""
    vid: Optional[int] = None
    pid: Optional[int] = None
    serial_number: str = ""

    @property
    def usb_id(self) -> str:
        if self.vid is None or self.pid is None:
            return "-"
        return f"{self.vid:04X}:{self.pid:04X}"

    @property
    def is_preferred(self) -> bool:
        return self.vid in PREFERRED_VIDS

    def __str__(self) -> str:
        if self.description and self.description != "n/a":
            return f"{self.port} ({self.description})"
        return self.port


DeviceSelector = Callable[[], DeviceHandle]


def list_devices() -> List[DeviceHandle]:
    """Enumerate attached serial ports, preferred bridges first."""
    devices = [
        DeviceHandle(
            port=info.device,
            description=info.description or "",
            vid=info.vid,
            pid=info.pid,
            serial_number=info.serial_number or "",
        )
        for info in serial.tools.list_ports.comports()
    ]
    return sorted(devices, key=lambda device: (not device.is_preferred, device.port))


def auto_select_device(devices: Sequence[DeviceHandle]) -> DeviceHandle:
    """
    Pick the most likely target board.

    Raises:
        DeviceSelectionCancelled: If no devices are attached
    """
    if not devices:
        raise DeviceSelectionCancelled("No serial devices found")
    preferred = [device for device in devices if device.is_preferred]
    chosen = (preferred or list(devices))[0]
    logger.info(f"Auto-selected {chosen}")
    return chosen


def fixed_selector(port: str) -> DeviceSelector:
    """Selector for a port given up front (e.g. --port)."""
    def select() -> DeviceHandle:
        for device in list_devices():
            if device.port == port:
                return device
        return DeviceHandle(port=port)
    return select


def auto_selector() -> DeviceSelector:
    """Selector that picks the first preferred attached device."""
    return lambda: auto_select_device(list_devices())


def prompt_selector(choose: Callable[[List[DeviceHandle]], Optional[int]]) -> DeviceSelector:
    """
    Selector that asks the user to pick a device.

    Args:
        choose: Given the device list, returns the chosen index or None
            when the user cancels

    Returns:
        Selector raising DeviceSelectionCancelled on cancel or bad index
    """
    def select() -> DeviceHandle:
        devices = list_devices()
        if not devices:
            raise DeviceSelectionCancelled("No serial devices found")
        index = choose(devices)
        if index is None:
            raise DeviceSelectionCancelled("Device selection cancelled")
        if not 0 <= index < len(devices):
            raise DeviceSelectionCancelled(f"No device at index {index}")
        return devices[index]
    return select
