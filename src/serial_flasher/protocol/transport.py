"""
Serial Transport Layer

Owns the open serial connection to the target board.

This module provides:
- Serial port open/close with control lines released
- Raw byte read/write
- Control line (reset) toggling
"""

import logging
from typing import Optional

try:
    import serial
except ImportError:
    raise ImportError("PySerial required: pip install pyserial")

from serial_flasher.config import DEFAULT_BAUD_RATE, DEFAULT_SERIAL_TIMEOUT
from serial_flasher.exceptions import TransportError

logger = logging.getLogger(__name__)


class SerialTransport:
    """
    Serial transport for USB/CDC and USB-UART bridge boards.

    Handles:
    - Serial port management
    - Raw read/write for the flashing engine
    - RTS control line used to pulse the chip's reset (EN) pin

    Example:
        transport = SerialTransport(port="/dev/ttyUSB0")
        transport.open()
        transport.set_control_line(True)
        transport.set_control_line(False)
        transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUD_RATE,
        timeout: float = DEFAULT_SERIAL_TIMEOUT,
    ):
        """
        Initialize transport layer.

        Args:
            port: Serial port (e.g., "/dev/ttyUSB0", "COM3")
            baudrate: Serial baud rate (default 115200)
            timeout: Read/write timeout in seconds (default 3.0)
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.ser: Optional[serial.Serial] = None

    @property
    def is_open(self) -> bool:
        return bool(self.ser and self.ser.is_open)

    @property
    def serial(self) -> "serial.Serial":
        """
        The underlying pyserial object, for engines that drive it directly.

        Raises:
            TransportError: If the port is not open
        """
        if not self.is_open:
            raise TransportError("Serial port not open")
        return self.ser

    def open(self) -> None:
        """
        Open serial port with DTR/RTS released.

        Control lines are set before opening so the board is not held in
        reset or boot mode by the act of opening the port.

        Raises:
            TransportError: If port cannot be opened
        """
        ser = serial.Serial()
        ser.port = self.port
        ser.baudrate = self.baudrate
        ser.timeout = self.timeout
        ser.write_timeout = self.timeout
        ser.dtr = False
        ser.rts = False
        try:
            ser.open()
        except serial.SerialException as e:
            raise TransportError(f"Cannot open port {self.port}: {e}")

        self.ser = ser
        logger.debug(f"Opened {self.port} at {self.baudrate} bps (timeout={self.timeout}s)")

    def close(self) -> None:
        """Close serial port. Safe to call more than once."""
        if self.ser and self.ser.is_open:
            self.ser.close()
            logger.debug(f"Closed {self.port}")
        self.ser = None

    def set_control_line(self, asserted: bool) -> None:
        """
        Drive the RTS line, which resets the chip on common dev boards.

        Raises:
            TransportError: If the port is not open or the line cannot be set
        """
        ser = self.serial
        try:
            ser.rts = asserted
        except serial.SerialException as e:
            raise TransportError(f"Cannot set RTS on {self.port}: {e}")
        logger.debug(f"RTS {'asserted' if asserted else 'released'} on {self.port}")

    def write(self, data: bytes) -> None:
        """
        Send raw bytes.

        Raises:
            TransportError: If write fails or is incomplete
        """
        ser = self.serial
        try:
            written = ser.write(data)
        except serial.SerialException as e:
            raise TransportError(f"Write error: {e}")
        if written != len(data):
            raise TransportError(f"Incomplete write: sent {written}/{len(data)} bytes")
        logger.debug(f">>> {data.hex().upper()}")

    def read(self, size: int) -> bytes:
        """
        Receive up to size bytes.

        Raises:
            TransportError: If read fails or nothing arrives before the timeout
        """
        ser = self.serial
        try:
            data = ser.read(size)
        except serial.SerialException as e:
            raise TransportError(f"Read error: {e}")
        if not data:
            raise TransportError("Device did not respond (timeout)")
        logger.debug(f"<<< {data.hex().upper()}")
        return data

    def __enter__(self) -> "SerialTransport":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
