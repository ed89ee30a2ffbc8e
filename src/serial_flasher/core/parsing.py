"""
Centralized parsing helpers for offsets and image arguments.

Both CLI and Streamlit must import these helpers rather than re-implement.
"""

from typing import Optional, Tuple


def parse_offset(value: Optional[str]) -> Optional[int]:
    """
    Parse a flash offset from string, supporting multiple formats.

    This is the single source of truth for offset parsing.

    Accepts:
        - Decimal: "4096"
        - Hex with 0x prefix: "0x1000" or "0X1000"
        - Hex with h suffix: "1000h" or "1000H"

    Returns:
        Parsed integer offset, or None if value is None or empty.

    Raises:
        ValueError: If value cannot be parsed or is negative.
    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    try:
        # Hex with 0x/0X prefix
        if value.lower().startswith("0x"):
            parsed = int(value, 16)
        # Hex with h/H suffix
        elif value.lower().endswith("h"):
            parsed = int(value[:-1], 16)
        # Decimal
        else:
            parsed = int(value)
    except ValueError:
        raise ValueError(
            f"Invalid offset '{value}'. Use decimal (4096), hex (0x1000), or suffix (1000h)."
        )

    if parsed < 0:
        raise ValueError(f"Invalid offset '{value}'. Flash offsets cannot be negative.")
    return parsed


def format_offset(offset: int) -> str:
    """Format an offset the way it is shown in tables and logs."""
    return f"0x{offset:08X}"


def split_image_arg(value: str) -> Tuple[str, str]:
    """
    Split an image argument in OFFSET=PATH format.

    Args:
        value: Argument like "0x1000=app.bin"

    Returns:
        Tuple of (offset_string, path_string). The offset is not parsed here,
        so that the image set validator can report it with its row number.

    Raises:
        ValueError: If the '=' separator or either side is missing
    """
    offset, sep, path = value.partition("=")
    if not sep or not offset.strip() or not path.strip():
        raise ValueError(
            f"Invalid image argument '{value}'. Use OFFSET=PATH, e.g. 0x1000=app.bin."
        )
    return offset.strip(), path.strip()
