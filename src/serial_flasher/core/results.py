"""
Result objects for session actions.

Provides a unified result structure that both CLI and Streamlit can use
to display operation outcomes consistently.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Any, Optional


class ErrorKind(Enum):
    """Category of a failed action."""
    CONNECTION = "connection"  # Selection, port open or handshake failed
    VALIDATION = "validation"  # Image table rejected before touching the device
    OPERATION = "operation"  # Erase/write/reset failed; session still connected
    DISCONNECTED = "disconnected"  # Session was disconnected while the action ran


@dataclass
class OperationResult:
    """
    Unified result object for all session actions.

    CLI prints a readable summary; Streamlit uses the same data to render UI.

    Attributes:
        ok: Whether the action completed successfully
        operation: Name of the action (e.g., "connect", "program_images")
        kind: Failure category, None on success
        chip: Chip identity at the time the action finished
        bytes_len: Number of bytes written
        hashes: Digest per image, keyed by offset
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure
        metadata: Additional action-specific data
        logs: Captured log lines from the action
    """
    ok: bool
    operation: str
    kind: Optional[ErrorKind] = None
    chip: str = ""
    bytes_len: int = 0
    hashes: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.ok

    @property
    def message(self) -> str:
        """First error message, or empty string on success."""
        return self.errors[0] if self.errors else ""

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def add_error(self, message: str, kind: ErrorKind = ErrorKind.OPERATION) -> None:
        """Add an error message and mark result as failed."""
        self.errors.append(message)
        self.ok = False
        if self.kind is None:
            self.kind = kind

    def add_log(self, message: str) -> None:
        """Add a log line to the result."""
        self.logs.append(message)

    def to_summary(self) -> str:
        """
        Generate a human-readable summary string.

        Suitable for CLI output or simple logging.
        """
        status = "SUCCESS" if self.ok else "FAILED"
        lines = [f"[{status}] {self.operation}"]

        if self.chip:
            lines.append(f"  Chip: {self.chip}")
        if self.bytes_len:
            lines.append(f"  Bytes: {self.bytes_len:,}")

        if self.hashes:
            for name, value in self.hashes.items():
                lines.append(f"  {name}: {value}")

        if self.warnings:
            lines.append("  Warnings:")
            for warn in self.warnings:
                lines.append(f"    - {warn}")

        if self.errors:
            lines.append(f"  Errors ({self.kind.value if self.kind else 'unknown'}):")
            for err in self.errors:
                lines.append(f"    - {err}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "operation": self.operation,
            "kind": self.kind.value if self.kind else None,
            "chip": self.chip,
            "bytes_len": self.bytes_len,
            "hashes": self.hashes,
            "warnings": self.warnings,
            "errors": self.errors,
            "metadata": self.metadata,
            "logs": self.logs,
        }

    @classmethod
    def success(
        cls,
        operation: str,
        chip: str = "",
        bytes_len: int = 0,
        **kwargs,
    ) -> "OperationResult":
        """Create a successful result."""
        return cls(
            ok=True,
            operation=operation,
            chip=chip,
            bytes_len=bytes_len,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        operation: str,
        error: str,
        kind: ErrorKind,
        chip: str = "",
        **kwargs,
    ) -> "OperationResult":
        """Create a failed result."""
        result = cls(
            ok=False,
            operation=operation,
            kind=kind,
            chip=chip,
            **kwargs,
        )
        result.errors.append(error)
        return result
