"""
FlashingEngine for Espressif chips, built on esptool's loader.

Mirrors esptool's own write_flash loop, but reports progress per block
through a callback and verifies with a caller-supplied hash function.
"""

import logging
import zlib
from typing import Optional, Sequence

from esptool.cmds import detect_chip
from esptool.loader import DEFAULT_TIMEOUT, ERASE_WRITE_TIMEOUT_PER_MB, timeout_per_mb
from esptool.util import FatalError

from serial_flasher.config import FlasherSettings
from serial_flasher.core.images import pad_image
from serial_flasher.core.types import FlashImage
from serial_flasher.exceptions import ChecksumMismatchError, EngineError
from serial_flasher.protocol.engine import FLASH_SIZE_KEEP, FlashOptions
from serial_flasher.protocol.transport import SerialTransport

logger = logging.getLogger(__name__)


class EsptoolEngine:
    """
    Esptool-backed flashing engine bound to an open SerialTransport.

    Example:
        transport = SerialTransport("/dev/ttyUSB0")
        transport.open()
        engine = EsptoolEngine(transport)
        chip = engine.identify()
        engine.write_images([FlashImage(0x0, data)], FlashOptions())
    """

    def __init__(self, transport: SerialTransport, settings: Optional[FlasherSettings] = None):
        self.transport = transport
        self.settings = settings or FlasherSettings()
        self._esp = None

    @property
    def loader(self):
        """The connected esptool loader (stub if it could be started)."""
        if self._esp is None:
            raise EngineError("Chip not identified yet; call identify() first")
        return self._esp

    def identify(self) -> str:
        """
        Sync with the ROM bootloader, detect the chip and start the stub.

        Raises:
            EngineError: If the chip does not answer or is not supported
        """
        try:
            esp = detect_chip(
                self.transport.serial,
                self.settings.baud_rate,
                self.settings.connect_mode,
                trace_enabled=self.settings.trace,
                connect_attempts=self.settings.connect_attempts,
            )
            description = esp.get_chip_description()
            logger.info(f"Detected {description}")

            if esp.secure_download_mode:
                logger.warning("Secure Download Mode enabled; stub flasher not started")
            else:
                esp = esp.run_stub()
                logger.info("Stub flasher running")
        except FatalError as e:
            raise EngineError(str(e))

        self._esp = esp
        return description

    def erase_all(self) -> None:
        """Erase the entire flash (can take tens of seconds)."""
        esp = self.loader
        logger.info("Erasing flash (this may take a while)...")
        try:
            esp.erase_flash()
        except FatalError as e:
            raise EngineError(f"Erase failed: {e}")
        logger.info("Flash erased")

    def write_images(self, images: Sequence[FlashImage], options: FlashOptions) -> None:
        """
        Write images in order, verifying each one against the chip's MD5.

        Raises:
            EngineError: On protocol failure or unsupported options
            ChecksumMismatchError: If flash contents differ after writing
        """
        esp = self.loader
        if options.flash_size != FLASH_SIZE_KEEP:
            raise EngineError(
                f"Unsupported flash size policy '{options.flash_size}'; only 'keep' is supported"
            )

        try:
            if options.erase_all:
                esp.erase_flash()

            for index, image in enumerate(images):
                self._write_image(esp, index, image, options)

            if esp.IS_STUB:
                # Stub stays in flasher mode; ROM would exit and run user code
                esp.flash_begin(0, 0)
                if options.compress:
                    esp.flash_defl_finish(False)
                else:
                    esp.flash_finish(False)
        except FatalError as e:
            raise EngineError(f"Write failed: {e}")

    def _write_image(self, esp, index: int, image: FlashImage, options: FlashOptions) -> None:
        # Flash writes are word aligned
        data = pad_image(image.data)
        size = len(data)
        expected = options.calculate_hash(data).lower()

        if options.compress:
            payload = zlib.compress(data, 9)
            esp.flash_defl_begin(size, len(payload), image.offset)
            decompress = zlib.decompressobj()
        else:
            payload = data
            esp.flash_begin(size, image.offset)

        logger.info(
            f"Writing {size:,} bytes at 0x{image.offset:08X}"
            + (f" ({len(payload):,} compressed)" if options.compress else "")
        )

        seq = 0
        written = 0
        while payload:
            block = payload[:esp.FLASH_WRITE_SIZE]
            payload = payload[esp.FLASH_WRITE_SIZE:]
            if options.compress:
                block_size = len(decompress.decompress(block))
                timeout = max(DEFAULT_TIMEOUT, timeout_per_mb(ERASE_WRITE_TIMEOUT_PER_MB, block_size))
                esp.flash_defl_block(block, seq, timeout=timeout)
            else:
                block_size = len(block)
                block = block + b"\xff" * (esp.FLASH_WRITE_SIZE - len(block))
                esp.flash_block(block, seq)
            written += block_size
            seq += 1
            if options.report_progress:
                options.report_progress(index, written, size)

        actual = esp.flash_md5sum(image.offset, size).lower()
        if actual != expected:
            raise ChecksumMismatchError(image.offset, expected, actual)
        logger.info(f"Hash of data verified at 0x{image.offset:08X}")
