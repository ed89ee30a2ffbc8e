"""
Core module for Serial Flasher.

This module provides the single source of truth for:
- Offset parsing (parsing.py)
- Image table validation (validation.py)
- Result objects (results.py)
- The connect/erase/program/disconnect session (session.py)
- Standardized warnings/messages (messages.py)

Both CLI and Streamlit UI should call into this module rather than
implementing their own logic.
"""

from .types import (
    SessionState,
    ImageRow,
    FlashImage,
    ProgressReport,
    ValidationResult,
)
from .parsing import parse_offset, format_offset, split_image_arg
from .images import md5_hex, pad_image, load_image_file, rows_from_args, default_rows
from .validation import validate_image_rows, find_overlaps
from .results import ErrorKind, OperationResult
from .messages import (
    MessageLevel,
    WarningCode,
    WarningItem,
    classify_error,
    result_to_warnings,
)
from .session import FlashSession, SessionListener

__all__ = [
    # Types
    "SessionState",
    "ImageRow",
    "FlashImage",
    "ProgressReport",
    "ValidationResult",
    # Parsing
    "parse_offset",
    "format_offset",
    "split_image_arg",
    # Images
    "md5_hex",
    "pad_image",
    "load_image_file",
    "rows_from_args",
    "default_rows",
    # Validation
    "validate_image_rows",
    "find_overlaps",
    # Results
    "ErrorKind",
    "OperationResult",
    # Messages
    "MessageLevel",
    "WarningCode",
    "WarningItem",
    "classify_error",
    "result_to_warnings",
    # Session
    "FlashSession",
    "SessionListener",
]
