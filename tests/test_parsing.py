"""Tests for offset and image argument parsing, and image loading."""

import hashlib

import pytest

from serial_flasher.core.images import (
    DEFAULT_IMAGE_NAME,
    default_rows,
    load_image_file,
    md5_hex,
    pad_image,
    rows_from_args,
)
from serial_flasher.core.parsing import format_offset, parse_offset, split_image_arg
from serial_flasher.core.types import ImageRow


class TestParseOffset:
    """Test offset parsing from various input formats."""

    def test_parse_offset_none(self):
        """None input returns None."""
        assert parse_offset(None) is None

    def test_parse_offset_empty_string(self):
        """Empty string returns None."""
        assert parse_offset("") is None
        assert parse_offset("  ") is None

    def test_parse_offset_decimal(self):
        assert parse_offset("4096") == 4096
        assert parse_offset("0") == 0

    def test_parse_offset_hex_prefix(self):
        assert parse_offset("0x1000") == 0x1000
        assert parse_offset("0X10000") == 0x10000
        assert parse_offset("0xabCD") == 0xABCD

    def test_parse_offset_hex_suffix(self):
        assert parse_offset("1000h") == 0x1000
        assert parse_offset("FFH") == 0xFF

    def test_parse_offset_whitespace(self):
        assert parse_offset("  0x20  ") == 0x20

    def test_parse_offset_invalid(self):
        for value in ("abc", "0x", "h", "0xZZ", "12.5", "ten"):
            with pytest.raises(ValueError):
                parse_offset(value)

    def test_parse_offset_negative(self):
        with pytest.raises(ValueError, match="negative"):
            parse_offset("-1")


class TestFormatOffset:
    def test_format_offset(self):
        assert format_offset(0) == "0x00000000"
        assert format_offset(0x10000) == "0x00010000"


class TestSplitImageArg:
    def test_split(self):
        assert split_image_arg("0x1000=app.bin") == ("0x1000", "app.bin")

    def test_split_keeps_equals_in_path(self):
        assert split_image_arg("0=build/a=b.bin") == ("0", "build/a=b.bin")

    def test_split_invalid(self):
        for value in ("app.bin", "=app.bin", "0x1000=", ""):
            with pytest.raises(ValueError, match="OFFSET=PATH"):
                split_image_arg(value)


class TestImages:
    def test_md5_hex(self):
        assert md5_hex(b"abc") == hashlib.md5(b"abc").hexdigest()
        assert md5_hex(memoryview(b"abc")) == md5_hex(bytearray(b"abc"))

    def test_pad_image(self):
        assert pad_image(b"\x01" * 5) == b"\x01" * 5 + b"\xff" * 3
        assert pad_image(bytearray(b"\x01" * 8)) == b"\x01" * 8
        assert pad_image(b"") == b""

    def test_load_image_file(self, tmp_path):
        path = tmp_path / "app.bin"
        path.write_bytes(b"\x01\x02")
        assert load_image_file(str(path)) == b"\x01\x02"

    def test_load_missing_file(self, tmp_path):
        assert load_image_file(str(tmp_path / "missing.bin")) is None

    def test_rows_from_args(self, tmp_path):
        path = tmp_path / "app.bin"
        path.write_bytes(b"\xAA")

        rows = rows_from_args([f"0x10000={path}", f"0x20000={tmp_path / 'missing.bin'}"])

        assert rows == [ImageRow("0x10000", b"\xAA"), ImageRow("0x20000", None)]

    def test_rows_from_args_invalid(self):
        with pytest.raises(ValueError):
            rows_from_args(["app.bin"])

    def test_default_rows(self, tmp_path):
        (tmp_path / DEFAULT_IMAGE_NAME).write_bytes(b"\x00" * 4)
        assert default_rows(str(tmp_path)) == [ImageRow("0x0", b"\x00" * 4)]

    def test_default_rows_missing(self, tmp_path):
        assert default_rows(str(tmp_path)) == [ImageRow("0x0", None)]
