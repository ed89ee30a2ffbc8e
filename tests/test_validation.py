"""Tests for image table validation."""

from serial_flasher.core.types import FlashImage, ImageRow
from serial_flasher.core.validation import find_overlaps, validate_image_rows


class TestValidateImageRows:
    """Rows are checked in order and the first failure wins."""

    def test_valid_rows_in_order(self):
        """Decimal and hex offsets are parsed; order is preserved."""
        a = b"\x01\x02"
        b = b"\x03\x04\x05"

        result = validate_image_rows([("0", a), ("0x1000", b)])

        assert result.ok
        assert result
        assert result.images == [FlashImage(0, a), FlashImage(4096, b)]
        assert result.error == ""
        assert result.row is None

    def test_data_passes_through_unchanged(self):
        data = bytearray(b"\xde\xad\xbe\xef")
        result = validate_image_rows([ImageRow("0x10000", data)])
        assert result.images[0].data is data

    def test_empty_table_is_valid(self):
        result = validate_image_rows([])
        assert result.ok
        assert result.images == []

    def test_h_suffix_offset(self):
        result = validate_image_rows([("8000h", b"\x00")])
        assert result.images[0].offset == 0x8000

    def test_invalid_offset(self):
        result = validate_image_rows([("abc", b"\x00")])

        assert not result.ok
        assert not result
        assert result.error == "Offset field in row 1 is not a valid address!"
        assert result.row == 1
        assert result.images == []

    def test_empty_offset_is_invalid(self):
        result = validate_image_rows([("0x0", b"\x00"), ("   ", b"\x00")])
        assert result.error == "Offset field in row 2 is not a valid address!"

    def test_none_offset_is_invalid(self):
        result = validate_image_rows([(None, b"\x00")])
        assert result.error == "Offset field in row 1 is not a valid address!"

    def test_negative_offset_is_invalid(self):
        result = validate_image_rows([("-16", b"\x00")])
        assert result.error == "Offset field in row 1 is not a valid address!"

    def test_duplicate_offset(self):
        """Different spellings of the same address are duplicates."""
        result = validate_image_rows([("0x1000", b"\x00"), ("4096", b"\x01")])

        assert result.error == "Offset field in row 2 is already in use!"
        assert result.row == 2

    def test_missing_file(self):
        result = validate_image_rows([("0x0", None)])
        assert result.error == "No file selected for row 1!"

    def test_empty_file_counts_as_missing(self):
        result = validate_image_rows([("0x0", b"")])
        assert result.error == "No file selected for row 1!"

    def test_row_without_data_field(self):
        """A bare offset row has no file bound to it."""
        result = validate_image_rows([("0x0",)])
        assert result.error == "No file selected for row 1!"

    def test_offset_checked_before_file(self):
        """Invalid offset is reported even when the file is missing too."""
        result = validate_image_rows([("zz", None)])
        assert result.error == "Offset field in row 1 is not a valid address!"

    def test_duplicate_checked_before_file(self):
        result = validate_image_rows([("0x0", b"\x00"), ("0", None)])
        assert result.error == "Offset field in row 2 is already in use!"

    def test_first_failing_row_wins(self):
        rows = [
            ("0x0", b"\x00"),
            ("0x1000", None),
            ("bogus", b"\x00"),
        ]
        result = validate_image_rows(rows)
        assert result.error == "No file selected for row 2!"

    def test_validation_is_repeatable(self):
        rows = [("0x0", b"\x00"), ("0x0", b"\x01")]
        assert validate_image_rows(rows) == validate_image_rows(rows)


class TestFindOverlaps:
    def test_no_overlap_when_adjacent(self):
        images = [FlashImage(0, b"\x00" * 16), FlashImage(16, b"\x00" * 16)]
        assert find_overlaps(images) == []

    def test_overlap_detected_regardless_of_order(self):
        low = FlashImage(0x1000, b"\x00" * 0x100)
        high = FlashImage(0x1080, b"\x00" * 0x10)
        assert find_overlaps([high, low]) == [(low, high)]

    def test_containing_image_overlaps_every_inner_image(self):
        outer = FlashImage(0, b"\x00" * 100)
        first = FlashImage(10, b"\x00")
        second = FlashImage(50, b"\x00")
        assert find_overlaps([outer, first, second]) == [(outer, first), (outer, second)]
