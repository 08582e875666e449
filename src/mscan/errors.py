"""Error taxonomy for mscan.

Every error raised here is fatal for a scan: the engine never skips or
repairs a record, it stops and reports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class MscanError(Exception):
    """Base class for all mscan errors."""


class TraceOpenError(MscanError):
    """Raised when a required input file cannot be opened."""

    def __init__(self, path: Union[str, Path], reason: str = ""):
        self.path = Path(path)
        self.reason = reason
        message = f"cannot open {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DecodeError(MscanError):
    """Raised when the record stream is truncated or malformed."""

    def __init__(
        self,
        message: str,
        offset: Optional[int] = None,
        kind: Optional[int] = None,
    ):
        self.offset = offset
        self.kind = kind
        if offset is not None:
            message = f"{message} (record at offset {offset})"
        super().__init__(message)


class ContractViolation(MscanError):
    """Raised when a decoded field holds a value outside its domain."""

    def __init__(self, message: str, kind: Optional[int] = None):
        self.kind = kind
        super().__init__(message)
