"""Tests for the esptool-backed engine, with the loader mocked out."""

import hashlib
import zlib
from unittest.mock import MagicMock, call, patch

import pytest
from esptool.util import FatalError

from serial_flasher.config import FlasherSettings
from serial_flasher.core.types import FlashImage
from serial_flasher.exceptions import ChecksumMismatchError, EngineError
from serial_flasher.protocol.engine import FlashOptions
from serial_flasher.protocol.esptool_engine import EsptoolEngine


def _loader(stub=True):
    esp = MagicMock()
    esp.IS_STUB = stub
    esp.FLASH_WRITE_SIZE = 0x400
    esp.secure_download_mode = False
    esp.get_chip_description.return_value = "ESP32-S3 (QFN56) (revision v0.2)"
    return esp


@pytest.fixture
def rom():
    return _loader(stub=False)


@pytest.fixture
def stub(rom):
    stub = _loader(stub=True)
    rom.run_stub.return_value = stub
    return stub


@pytest.fixture
def engine(rom, stub):
    transport = MagicMock()
    with patch("serial_flasher.protocol.esptool_engine.detect_chip", return_value=rom) as detect:
        engine = EsptoolEngine(transport, FlasherSettings(baud_rate=460800, trace=True))
        engine.detect = detect
        yield engine


class TestIdentify:
    def test_identify_runs_stub(self, engine, rom, stub):
        chip = engine.identify()

        assert chip == "ESP32-S3 (QFN56) (revision v0.2)"
        assert engine.loader is stub
        engine.detect.assert_called_once_with(
            engine.transport.serial,
            460800,
            "default-reset",
            trace_enabled=True,
            connect_attempts=7,
        )

    def test_secure_download_mode_skips_stub(self, engine, rom):
        rom.secure_download_mode = True

        engine.identify()

        rom.run_stub.assert_not_called()
        assert engine.loader is rom

    def test_handshake_failure(self, engine):
        engine.detect.side_effect = FatalError("Failed to connect to Espressif device: No serial data received.")

        with pytest.raises(EngineError, match="Failed to connect"):
            engine.identify()

    def test_loader_before_identify(self):
        with pytest.raises(EngineError, match="identify"):
            EsptoolEngine(MagicMock()).loader


class TestEraseAll:
    def test_erase(self, engine, stub):
        engine.identify()
        engine.erase_all()
        stub.erase_flash.assert_called_once()

    def test_erase_failure(self, engine, stub):
        engine.identify()
        stub.erase_flash.side_effect = FatalError("Timed out waiting for packet header")

        with pytest.raises(EngineError, match="Erase failed"):
            engine.erase_all()


class TestWriteImages:
    def test_compressed_write(self, engine, stub):
        """Data is padded to a word, deflated and verified."""
        engine.identify()
        data = b"\x01" * 10
        padded = data + b"\xff\xff"
        stub.flash_md5sum.return_value = hashlib.md5(padded).hexdigest()
        reports = []

        engine.write_images(
            [FlashImage(0x10000, data)],
            FlashOptions(report_progress=lambda *args: reports.append(args)),
        )

        compressed = zlib.compress(padded, 9)
        stub.flash_defl_begin.assert_called_once_with(12, len(compressed), 0x10000)
        assert stub.flash_defl_block.call_args[0][0] == compressed
        stub.flash_md5sum.assert_called_once_with(0x10000, 12)
        assert reports == [(0, 12, 12)]
        assert stub.method_calls[-2:] == [call.flash_begin(0, 0), call.flash_defl_finish(False)]

    def test_uncompressed_blocks(self, engine, stub):
        """Each block is reported and the last one is padded to block size."""
        engine.identify()
        data = (bytes(range(256)) * 12)[:3000]
        stub.flash_md5sum.return_value = hashlib.md5(data).hexdigest()
        reports = []

        engine.write_images(
            [FlashImage(0x0, data)],
            FlashOptions(compress=False, report_progress=lambda *args: reports.append(args)),
        )

        assert reports == [(0, 1024, 3000), (0, 2048, 3000), (0, 3000, 3000)]
        assert stub.flash_block.call_count == 3
        last_block = stub.flash_block.call_args_list[-1][0][0]
        assert len(last_block) == 0x400
        assert last_block.endswith(b"\xff")
        stub.flash_finish.assert_called_once_with(False)

    def test_images_written_in_order(self, engine, stub):
        engine.identify()
        first = b"\x00" * 4
        second = b"\x11" * 4
        stub.flash_md5sum.side_effect = [hashlib.md5(first).hexdigest(), hashlib.md5(second).hexdigest()]

        engine.write_images([FlashImage(0x1000, first), FlashImage(0x8000, second)], FlashOptions())

        offsets = [c[0][2] for c in stub.flash_defl_begin.call_args_list]
        assert offsets == [0x1000, 0x8000]

    def test_checksum_mismatch(self, engine, stub):
        engine.identify()
        stub.flash_md5sum.return_value = "0" * 32

        with pytest.raises(ChecksumMismatchError) as excinfo:
            engine.write_images([FlashImage(0x2000, b"\xAB" * 8)], FlashOptions())

        assert excinfo.value.address == 0x2000
        assert "does not match data in flash at 0x00002000" in str(excinfo.value)

    def test_custom_hash_function(self, engine, stub):
        engine.identify()
        stub.flash_md5sum.return_value = "CAFE"

        engine.write_images(
            [FlashImage(0x0, b"\x00" * 4)],
            FlashOptions(calculate_hash=lambda data: "cafe"),
        )

    def test_erase_before_write(self, engine, stub):
        engine.identify()
        stub.flash_md5sum.return_value = hashlib.md5(b"\x00" * 4).hexdigest()

        engine.write_images([FlashImage(0x0, b"\x00" * 4)], FlashOptions(erase_all=True))

        assert stub.method_calls[0] == call.erase_flash()

    def test_flash_size_must_be_kept(self, engine):
        engine.identify()
        with pytest.raises(EngineError, match="keep"):
            engine.write_images([], FlashOptions(flash_size="4MB"))

    def test_protocol_failure(self, engine, stub):
        engine.identify()
        stub.flash_defl_begin.side_effect = FatalError("Invalid head of packet (0x65)")

        with pytest.raises(EngineError, match="Write failed"):
            engine.write_images([FlashImage(0x0, b"\x00" * 4)], FlashOptions())
