"""Binary codec for mtrace record streams.

Record layout (packed, little-endian):

    header   <IHHQQ   kind, size, cpu, access_count, ts        24 bytes
    label    <I32sQQQQ label_type, name, pc, host_addr,
                       guest_addr, bytes                        +68
    access   <IHQQQB  access_type, flags, pc, host_addr,
                      guest_addr, bytes                         +31
    host     <I40s    host_type, union{value+name | cpu,pc,tag} +44
    fcall    <QQQHI   tid, pc, tag, depth, state                +30
    lock     <QQ32sIB pc, lock, name, op, read                  +53
    appdata  <Q       u64                                       +8

``size`` in the header is the total record size. Kinds without a layout
above are carried as opaque payloads of ``size - 24`` bytes.

Logs are gzip streams. Decoding reads one header, then exactly one payload,
and never tries to resynchronize after a bad record.
"""

from __future__ import annotations

import gzip
import struct
import zlib
from pathlib import Path
from typing import Any, BinaryIO, Iterator, Optional, Union

from mscan.errors import DecodeError, TraceOpenError
from mscan.trace.records import (
    AccessRecord,
    AccessType,
    AppDataRecord,
    CallState,
    FcallRecord,
    HostRecord,
    HostType,
    LabelRecord,
    LabelType,
    LockOp,
    LockRecord,
    OpaqueRecord,
    Record,
    RecordHeader,
    RecordKind,
    decode_name,
    encode_name,
)


HEADER = struct.Struct("<IHHQQ")

LABEL = struct.Struct("<I32sQQQQ")
ACCESS = struct.Struct("<IHQQQB")
HOST = struct.Struct("<I40s")
FCALL = struct.Struct("<QQQHI")
LOCK = struct.Struct("<QQ32sIB")
APPDATA = struct.Struct("<Q")

# Arms of the host payload union
HOST_ACCESS_ARM = struct.Struct("<Q32s")
HOST_CALL_ARM = struct.Struct("<QQQ16x")

PAYLOADS: dict[RecordKind, struct.Struct] = {
    RecordKind.LABEL: LABEL,
    RecordKind.ACCESS: ACCESS,
    RecordKind.HOST: HOST,
    RecordKind.FCALL: FCALL,
    RecordKind.LOCK: LOCK,
    RecordKind.APPDATA: APPDATA,
}

# Access flag bits
FLAG_TRAFFIC = 0x1
FLAG_LOCK = 0x2

_KINDS = {int(k) for k in RecordKind}


def record_size(kind: RecordKind) -> Optional[int]:
    """Total on-wire size of a record kind, or None for opaque kinds."""
    payload = PAYLOADS.get(kind)
    if payload is None:
        return None
    return HEADER.size + payload.size


def _read_exact(stream: BinaryIO, n: int) -> bytes:
    """Read up to n bytes, looping over short reads.

    Returns fewer than n bytes only at end of stream.
    """
    chunks = []
    remaining = n
    try:
        while remaining > 0:
            chunk = stream.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
    except (OSError, EOFError, zlib.error) as e:
        raise DecodeError(f"corrupt compressed stream: {e}") from e
    return b"".join(chunks)


def _decode_payload(header: RecordHeader, kind: RecordKind, payload: bytes) -> Record:
    if kind == RecordKind.LABEL:
        label_type, name, pc, host_addr, guest_addr, nbytes = LABEL.unpack(payload)
        return LabelRecord(
            header=header,
            label_type=label_type,
            name=decode_name(name),
            pc=pc,
            host_addr=host_addr,
            guest_addr=guest_addr,
            bytes=nbytes,
        )

    if kind == RecordKind.ACCESS:
        access_type, flags, pc, host_addr, guest_addr, nbytes = ACCESS.unpack(payload)
        return AccessRecord(
            header=header,
            access_type=access_type,
            traffic=bool(flags & FLAG_TRAFFIC),
            lock=bool(flags & FLAG_LOCK),
            pc=pc,
            host_addr=host_addr,
            guest_addr=guest_addr,
            bytes=nbytes,
        )

    if kind == RecordKind.HOST:
        host_type, body = HOST.unpack(payload)
        if host_type == HostType.ACCESS_ALL_CPU:
            value, name = HOST_ACCESS_ARM.unpack(body)
            return HostRecord(header=header, host_type=host_type, value=value, name=decode_name(name))
        call_cpu, call_pc, call_tag = HOST_CALL_ARM.unpack(body)
        return HostRecord(
            header=header,
            host_type=host_type,
            call_cpu=call_cpu,
            call_pc=call_pc,
            call_tag=call_tag,
        )

    if kind == RecordKind.FCALL:
        tid, pc, tag, depth, state = FCALL.unpack(payload)
        return FcallRecord(header=header, tid=tid, pc=pc, tag=tag, depth=depth, state=state)

    if kind == RecordKind.LOCK:
        pc, lock, name, op, read = LOCK.unpack(payload)
        return LockRecord(header=header, pc=pc, lock=lock, name=decode_name(name), op=op, read=bool(read))

    if kind == RecordKind.APPDATA:
        (u64,) = APPDATA.unpack(payload)
        return AppDataRecord(header=header, u64=u64)

    return OpaqueRecord(header=header, payload=payload)


def decode(stream: BinaryIO, offset: Optional[int] = None) -> Optional[Record]:
    """Decode the next record from a stream.

    Args:
        stream: Binary stream positioned at a record boundary
        offset: Byte offset of the record, used only in error messages

    Returns:
        The decoded record, or None at a clean end of stream

    Raises:
        DecodeError: On a short read, unknown kind or size mismatch
    """
    raw = _read_exact(stream, HEADER.size)
    if not raw:
        return None
    if len(raw) < HEADER.size:
        raise DecodeError(f"truncated header: {len(raw)} of {HEADER.size} bytes", offset=offset)

    kind_tag, size, cpu, access_count, ts = HEADER.unpack(raw)
    if kind_tag not in _KINDS:
        raise DecodeError(f"unknown record kind {kind_tag}", offset=offset, kind=kind_tag)
    kind = RecordKind(kind_tag)

    expected = record_size(kind)
    if expected is not None and size != expected:
        raise DecodeError(
            f"bad size {size} for {kind.name.lower()} record, expected {expected}",
            offset=offset,
            kind=kind_tag,
        )
    if size < HEADER.size:
        raise DecodeError(f"bad size {size} for {kind.name.lower()} record", offset=offset, kind=kind_tag)

    want = size - HEADER.size
    payload = _read_exact(stream, want)
    if len(payload) < want:
        raise DecodeError(
            f"truncated {kind.name.lower()} record: {len(payload)} of {want} payload bytes",
            offset=offset,
            kind=kind_tag,
        )

    header = RecordHeader(kind=kind_tag, size=size, cpu=cpu, access_count=access_count, ts=ts)
    return _decode_payload(header, kind, payload)


class TraceReader:
    """Iterates over the records of a stream, tracking byte offsets."""

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.offset = 0
        self.count = 0

    def read(self) -> Optional[Record]:
        """Decode the next record, or return None at end of stream."""
        record = decode(self.stream, offset=self.offset)
        if record is not None:
            self.offset += record.header.size
            self.count += 1
        return record

    def __iter__(self) -> Iterator[Record]:
        while True:
            record = self.read()
            if record is None:
                return
            yield record


def iter_records(stream: BinaryIO) -> Iterator[Record]:
    """Yield every record of a stream until end of stream."""
    return iter(TraceReader(stream))


def open_trace(path: Union[str, Path]) -> BinaryIO:
    """Open a gzip-compressed trace log for reading.

    Raises:
        TraceOpenError: If the file cannot be opened
    """
    path = Path(path)
    try:
        return gzip.open(path, "rb")  # type: ignore[return-value]
    except OSError as e:
        raise TraceOpenError(path, e.strerror or str(e)) from e


RECORD_TYPES: dict[RecordKind, type] = {
    RecordKind.LABEL: LabelRecord,
    RecordKind.ACCESS: AccessRecord,
    RecordKind.HOST: HostRecord,
    RecordKind.FCALL: FcallRecord,
    RecordKind.LOCK: LockRecord,
    RecordKind.APPDATA: AppDataRecord,
}

# Payload fields filled in by make_record when not given
FIELD_DEFAULTS: dict[RecordKind, dict[str, Any]] = {
    RecordKind.LABEL: {
        "label_type": LabelType.HEAP,
        "name": "",
        "pc": 0,
        "host_addr": 0,
        "guest_addr": 0,
        "bytes": 0,
    },
    RecordKind.ACCESS: {
        "access_type": AccessType.LD,
        "traffic": False,
        "lock": False,
        "pc": 0,
        "host_addr": 0,
        "guest_addr": 0,
        "bytes": 8,
    },
    RecordKind.HOST: {"host_type": HostType.ACCESS_ALL_CPU},
    RecordKind.FCALL: {"tid": 0, "pc": 0, "tag": 0, "depth": 0, "state": CallState.START},
    RecordKind.LOCK: {"pc": 0, "lock": 0, "name": "", "op": LockOp.ACQUIRE, "read": False},
    RecordKind.APPDATA: {"u64": 0},
}


def make_record(
    kind: RecordKind,
    cpu: int = 0,
    ts: int = 0,
    access_count: int = 0,
    **fields,
) -> Record:
    """Build a record with a header sized for its kind.

    Payload fields that are not given take neutral defaults.

    Example:
        >>> rec = make_record(RecordKind.APPDATA, u64=42)
        >>> rec.header.size
        32
    """
    kind = RecordKind(kind)
    fields = {**FIELD_DEFAULTS.get(kind, {"payload": b""}), **fields}

    size = record_size(kind)
    if size is None:
        size = HEADER.size + len(fields["payload"])
    header = RecordHeader(kind=int(kind), size=size, cpu=cpu, access_count=access_count, ts=ts)

    record_type = RECORD_TYPES.get(kind, OpaqueRecord)
    return record_type(header=header, **fields)


def encode(record: Record) -> bytes:
    """Encode a record to its wire representation."""
    h = record.header
    head = HEADER.pack(h.kind, h.size, h.cpu, h.access_count, h.ts)

    if isinstance(record, LabelRecord):
        body = LABEL.pack(
            record.label_type,
            encode_name(record.name),
            record.pc,
            record.host_addr,
            record.guest_addr,
            record.bytes,
        )
    elif isinstance(record, AccessRecord):
        flags = (FLAG_TRAFFIC if record.traffic else 0) | (FLAG_LOCK if record.lock else 0)
        body = ACCESS.pack(
            record.access_type,
            flags,
            record.pc,
            record.host_addr,
            record.guest_addr,
            record.bytes,
        )
    elif isinstance(record, HostRecord):
        if record.host_type == HostType.ACCESS_ALL_CPU:
            arm = HOST_ACCESS_ARM.pack(record.value, encode_name(record.name))
        else:
            arm = HOST_CALL_ARM.pack(record.call_cpu, record.call_pc, record.call_tag)
        body = HOST.pack(record.host_type, arm)
    elif isinstance(record, FcallRecord):
        body = FCALL.pack(record.tid, record.pc, record.tag, record.depth, record.state)
    elif isinstance(record, LockRecord):
        body = LOCK.pack(record.pc, record.lock, encode_name(record.name), record.op, int(record.read))
    elif isinstance(record, AppDataRecord):
        body = APPDATA.pack(record.u64)
    else:
        body = record.payload

    return head + body


class TraceWriter:
    """Writes records to a binary stream.

    Example:
        >>> with gzip.open("trace.gz", "wb") as f:
        ...     writer = TraceWriter(f)
        ...     writer.write(make_record(RecordKind.APPDATA, u64=1))
    """

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.count = 0

    def write(self, record: Record) -> None:
        self.stream.write(encode(record))
        self.count += 1

    def write_all(self, records) -> None:
        for record in records:
            self.write(record)
