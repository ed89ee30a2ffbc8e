"""
Binary image sources and checksums.

Images are flat binary blobs written at an absolute flash address; no
container format is parsed here.
"""

import hashlib
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .parsing import split_image_arg
from .types import ImageData, ImageRow

logger = logging.getLogger(__name__)

# Image programmed at offset 0 when no table rows are supplied
DEFAULT_IMAGE_NAME = "zephyr.bin"
DEFAULT_IMAGE_OFFSET = "0x0"


def md5_hex(data: ImageData) -> str:
    """Lowercase hex MD5 digest, the format the flasher stub reports."""
    return hashlib.md5(bytes(data)).hexdigest()


def pad_image(data: ImageData) -> bytes:
    """Pad to a whole flash word with erased (0xff) bytes, as written and verified."""
    data = bytes(data)
    if len(data) % 4:
        data += b"\xff" * (4 - len(data) % 4)
    return data



def load_image_file(path: str) -> Optional[bytes]:
    """
    Read a binary image from disk.

    Returns:
        File contents, or None if the file does not exist. A missing file
        leaves the row without data, which the validator reports by row.
    """
    image_path = Path(path)
    if not image_path.is_file():
        logger.warning(f"Image file not found: {path}")
        return None
    data = image_path.read_bytes()
    logger.debug(f"Loaded {len(data):,} bytes from {path}")
    return data


def rows_from_args(args: Iterable[str]) -> List[ImageRow]:
    """
    Build image table rows from OFFSET=PATH arguments.

    Raises:
        ValueError: If an argument is not in OFFSET=PATH format
    """
    rows = []
    for arg in args:
        offset, path = split_image_arg(arg)
        rows.append(ImageRow(offset, load_image_file(path)))
    return rows


def default_rows(directory: str = ".") -> List[ImageRow]:
    """Single row for the default image in a directory."""
    path = Path(directory) / DEFAULT_IMAGE_NAME
    return [ImageRow(DEFAULT_IMAGE_OFFSET, load_image_file(str(path)))]
