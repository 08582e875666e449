"""Trace record model and binary codec.

Example:
    >>> from mscan.trace import open_trace, iter_records
    >>> with open_trace("mtrace.out") as f:
    ...     for record in iter_records(f):
    ...         print(record.kind, record.cpu)
"""

from mscan.trace.records import (
    RecordKind,
    HostType,
    CallState,
    LabelType,
    AccessType,
    LockOp,
    RecordHeader,
    TraceRecord,
    HostRecord,
    AppDataRecord,
    FcallRecord,
    LabelRecord,
    AccessRecord,
    LockRecord,
    OpaqueRecord,
    Record,
)
from mscan.trace.codec import (
    TraceReader,
    TraceWriter,
    decode,
    encode,
    iter_records,
    make_record,
    open_trace,
    record_size,
)

__all__ = [
    # Records
    "RecordKind",
    "HostType",
    "CallState",
    "LabelType",
    "AccessType",
    "LockOp",
    "RecordHeader",
    "TraceRecord",
    "HostRecord",
    "AppDataRecord",
    "FcallRecord",
    "LabelRecord",
    "AccessRecord",
    "LockRecord",
    "OpaqueRecord",
    "Record",
    # Codec
    "TraceReader",
    "TraceWriter",
    "decode",
    "encode",
    "iter_records",
    "make_record",
    "open_trace",
    "record_size",
]
