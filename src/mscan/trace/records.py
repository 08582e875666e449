"""Record model for mtrace logs.

A trace is a sequence of packed records. Each record starts with a common
header naming its kind and originating CPU; the kind selects which payload
follows. Records here are the tagged union over those payloads: the kind
lives in the header, and only the codec builds records, so the arm always
matches the tag.

Enum-typed payload fields are kept as raw integers. Validating them is the
job of the handlers that give them meaning.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, Union


class RecordKind(IntEnum):
    """Record kind tags as they appear on the wire."""

    LABEL = 1
    ACCESS = 2
    HOST = 3
    FCALL = 4
    SEGMENT = 5
    CALL = 6
    LOCK = 7
    TASK = 8
    SCHED = 9
    MACHINE = 10
    APPDATA = 11
    ASCOPE = 12
    AVAR = 13


class HostType(IntEnum):
    """Sub-types of host records."""

    ACCESS_ALL_CPU = 1
    CALL_CLEAR_CPU = 2
    CALL_SET_CPU = 3


class CallState(IntEnum):
    """Function-call state transitions carried by fcall records."""

    RESUME = 1
    PAUSE = 2
    START = 3
    DONE = 4


class LabelType(IntEnum):
    """Label categories. END is the exclusive upper bound, not a real type."""

    HEAP = 1
    BLOCK = 2
    STATIC = 3
    PERCPU = 4
    END = 5


class AccessType(IntEnum):
    """Memory access types."""

    CLEAR = 1
    LD = 2  # Load
    ST = 3  # Store
    IW = 4  # Instruction write


class LockOp(IntEnum):
    """Lock operations."""

    ACQUIRE = 1  # Attempt started
    ACQUIRED = 2  # Lock held
    RELEASE = 3


# Width of every fixed-size name field, NUL terminator included
NAME_WIDTH = 32


@dataclass(frozen=True)
class RecordHeader:
    """Common header shared by every record."""

    kind: int
    size: int  # Total record size in bytes, header included
    cpu: int
    access_count: int = 0
    ts: int = 0


@dataclass(frozen=True)
class TraceRecord:
    """Base of the record union."""

    header: RecordHeader

    @property
    def kind(self) -> RecordKind:
        return RecordKind(self.header.kind)

    @property
    def cpu(self) -> int:
        return self.header.cpu

    @property
    def ts(self) -> int:
        return self.header.ts

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a JSON-friendly dictionary."""
        out: dict[str, Any] = {
            "kind": self.kind.name.lower(),
            "cpu": self.header.cpu,
            "access_count": self.header.access_count,
            "ts": self.header.ts,
        }
        for name, value in self.__dict__.items():
            if name == "header":
                continue
            out[name] = value.hex() if isinstance(value, bytes) else value
        return out


@dataclass(frozen=True)
class HostRecord(TraceRecord):
    """Host-scope record.

    The payload is a union: ``access_all_cpu`` records carry ``value`` and
    ``name``; the call sub-types carry ``call_cpu``, ``call_pc`` and
    ``call_tag`` in the same bytes.
    """

    host_type: int
    value: int = 0
    name: str = ""
    call_cpu: int = 0
    call_pc: int = 0
    call_tag: int = 0


@dataclass(frozen=True)
class AppDataRecord(TraceRecord):
    """Application-reported cumulative operation count."""

    u64: int


@dataclass(frozen=True)
class FcallRecord(TraceRecord):
    """Function-call state change."""

    tid: int
    pc: int
    tag: int
    depth: int
    state: int


@dataclass(frozen=True)
class LabelRecord(TraceRecord):
    """Add (bytes != 0) or remove (bytes == 0) a named address range."""

    label_type: int
    name: str
    pc: int
    host_addr: int
    guest_addr: int
    bytes: int


@dataclass(frozen=True)
class AccessRecord(TraceRecord):
    """A single memory access."""

    access_type: int
    traffic: bool
    lock: bool
    pc: int
    host_addr: int
    guest_addr: int
    bytes: int


@dataclass(frozen=True)
class LockRecord(TraceRecord):
    """A lock operation."""

    pc: int
    lock: int
    name: str
    op: int
    read: bool


@dataclass(frozen=True)
class OpaqueRecord(TraceRecord):
    """A record of a kind whose payload the engine does not interpret."""

    payload: bytes


Record = Union[
    HostRecord,
    AppDataRecord,
    FcallRecord,
    LabelRecord,
    AccessRecord,
    LockRecord,
    OpaqueRecord,
]


def decode_name(raw: bytes) -> str:
    """Decode a NUL-padded fixed-width name field."""
    end = raw.find(b"\x00")
    if end >= 0:
        raw = raw[:end]
    return raw.decode("utf-8", errors="replace")


def encode_name(name: Optional[str]) -> bytes:
    """Encode a name into a fixed-width field, truncating to leave room for NUL."""
    raw = (name or "").encode("utf-8")[: NAME_WIDTH - 1]
    return raw.ljust(NAME_WIDTH, b"\x00")
