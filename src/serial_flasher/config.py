"""
Runtime settings for Serial Flasher.

Defaults can be overridden with SERIAL_FLASHER_* environment variables,
and the CLI overrides both with its own options.
"""

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

ENV_PREFIX = "SERIAL_FLASHER_"

DEFAULT_BAUD_RATE = 115200
DEFAULT_CONNECT_MODE = "default-reset"
DEFAULT_CONNECT_ATTEMPTS = 7
DEFAULT_RESET_PULSE_SECONDS = 0.1
DEFAULT_SERIAL_TIMEOUT = 3.0

CONNECT_MODES = ("default-reset", "usb-reset", "no-reset", "no-reset-no-sync")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class FlasherSettings:
    """
    Connection and engine settings.

    Attributes:
        baud_rate: Serial baud rate used for the bootloader handshake
        connect_mode: esptool reset sequence used when connecting
        connect_attempts: Handshake attempts before giving up
        reset_pulse_seconds: How long the reset line is held asserted
        serial_timeout: Read/write timeout of the serial port
        trace: Log every serial packet (debug logging)
    """
    baud_rate: int = DEFAULT_BAUD_RATE
    connect_mode: str = DEFAULT_CONNECT_MODE
    connect_attempts: int = DEFAULT_CONNECT_ATTEMPTS
    reset_pulse_seconds: float = DEFAULT_RESET_PULSE_SECONDS
    serial_timeout: float = DEFAULT_SERIAL_TIMEOUT
    trace: bool = False

    def __post_init__(self):
        if self.baud_rate <= 0:
            raise ValueError(f"Baud rate must be positive, got {self.baud_rate}")
        if self.connect_mode not in CONNECT_MODES:
            raise ValueError(
                f"Unknown connect mode '{self.connect_mode}'. "
                f"Choose one of: {', '.join(CONNECT_MODES)}"
            )
        if self.connect_attempts < 0:
            raise ValueError("Connect attempts cannot be negative (0 means retry forever)")
        if self.reset_pulse_seconds <= 0:
            raise ValueError("Reset pulse must be longer than zero seconds")
        if self.serial_timeout <= 0:
            raise ValueError("Serial timeout must be longer than zero seconds")

    def with_overrides(self, **overrides) -> "FlasherSettings":
        """Copy with the given non-None fields replaced."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (1/0, true/false), got '{value}'")


def _parse_number(name: str, value: str, cast):
    try:
        return cast(value.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{value}'")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> FlasherSettings:
    """
    Build settings from environment variables.

    Recognized variables:
        SERIAL_FLASHER_BAUD, SERIAL_FLASHER_CONNECT_MODE,
        SERIAL_FLASHER_CONNECT_ATTEMPTS, SERIAL_FLASHER_RESET_PULSE,
        SERIAL_FLASHER_TIMEOUT, SERIAL_FLASHER_TRACE

    Raises:
        ValueError: If a variable holds an invalid value
    """
    env = os.environ if environ is None else environ
    overrides = {}

    def lookup(suffix: str) -> Optional[str]:
        return env.get(ENV_PREFIX + suffix)

    if lookup("BAUD") is not None:
        overrides["baud_rate"] = _parse_number(ENV_PREFIX + "BAUD", lookup("BAUD"), int)
    if lookup("CONNECT_MODE") is not None:
        overrides["connect_mode"] = lookup("CONNECT_MODE").strip()
    if lookup("CONNECT_ATTEMPTS") is not None:
        overrides["connect_attempts"] = _parse_number(
            ENV_PREFIX + "CONNECT_ATTEMPTS", lookup("CONNECT_ATTEMPTS"), int
        )
    if lookup("RESET_PULSE") is not None:
        overrides["reset_pulse_seconds"] = _parse_number(
            ENV_PREFIX + "RESET_PULSE", lookup("RESET_PULSE"), float
        )
    if lookup("TIMEOUT") is not None:
        overrides["serial_timeout"] = _parse_number(ENV_PREFIX + "TIMEOUT", lookup("TIMEOUT"), float)
    if lookup("TRACE") is not None:
        overrides["trace"] = _parse_bool(ENV_PREFIX + "TRACE", lookup("TRACE"))

    return FlasherSettings(**overrides)
