"""Device layer - serial transport, device selection and flashing engine."""

from .transport import SerialTransport
from .devices import (
    DeviceHandle,
    DeviceSelector,
    list_devices,
    auto_select_device,
    auto_selector,
    fixed_selector,
    prompt_selector,
)
from .engine import (
    FlashingEngine,
    FlashOptions,
    FLASH_SIZE_KEEP,
)

__all__ = [
    # Transport
    "SerialTransport",
    # Devices
    "DeviceHandle",
    "DeviceSelector",
    "list_devices",
    "auto_select_device",
    "auto_selector",
    "fixed_selector",
    "prompt_selector",
    # Engine
    "FlashingEngine",
    "FlashOptions",
    "FLASH_SIZE_KEEP",
]
