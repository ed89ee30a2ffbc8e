"""
Image set validation.

Checks the rows of the image table before a flash job is dispatched.
Runs without a transport or engine and has no side effects.
"""

from typing import Iterable, List, Set, Tuple, Union

from .parsing import parse_offset
from .types import FlashImage, ImageRow, ValidationResult

# Row 0 is the table header; user rows are numbered from 1.
FIRST_ROW = 1

INVALID_OFFSET = "Offset field in row {row} is not a valid address!"
DUPLICATE_OFFSET = "Offset field in row {row} is already in use!"
MISSING_FILE = "No file selected for row {row}!"


def validate_image_rows(rows: Iterable[Union[ImageRow, Tuple]]) -> ValidationResult:
    """
    Validate image table rows, stopping at the first failure.

    For each row, in order:
        1. The offset must parse to a non-negative integer
        2. The offset must not appear in an earlier row
        3. The row must have non-empty data bound to it

    Args:
        rows: (offset_string, data) pairs; data may be None

    Returns:
        ValidationResult with the ordered images on success, or the
        message and row number of the first failing row.
    """
    seen: Set[int] = set()
    images: List[FlashImage] = []

    for row_number, row in enumerate(rows, start=FIRST_ROW):
        offset_text, data = ImageRow(*row)

        try:
            offset = parse_offset(offset_text)
        except ValueError:
            offset = None
        if offset is None:
            return _failure(INVALID_OFFSET, row_number)

        if offset in seen:
            return _failure(DUPLICATE_OFFSET, row_number)
        seen.add(offset)

        if data is None or len(data) == 0:
            return _failure(MISSING_FILE, row_number)

        images.append(FlashImage(offset=offset, data=data))

    return ValidationResult(ok=True, images=images)


def _failure(template: str, row: int) -> ValidationResult:
    return ValidationResult(ok=False, error=template.format(row=row), row=row)


def find_overlaps(images: Iterable[FlashImage]) -> List[Tuple[FlashImage, FlashImage]]:
    """
    Find images whose flash regions overlap.

    Overlap is not a validation failure (the engine writes images in
    order, so later rows win), but UIs surface it as a warning.
    """
    ordered = sorted(images, key=lambda image: image.offset)
    overlaps = []
    for index, first in enumerate(ordered):
        for second in ordered[index + 1:]:
            if second.offset >= first.end:
                break
            overlaps.append((first, second))
    return overlaps
