"""Handler capability and the default bookkeeping handlers.

A handler sees every record of the kinds it is registered for, in stream
order, and optionally a single ``finalize`` call once the whole log has been
scanned. The four default handlers keep ``ProcessState`` and ``LabelTable``
current; they are registered ahead of every analysis so that an analysis
handling a record already sees the state that record produced.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from mscan.engine.state import ScanContext
from mscan.errors import ContractViolation
from mscan.trace.records import (
    AppDataRecord,
    CallState,
    FcallRecord,
    HostRecord,
    HostType,
    LabelRecord,
    LabelType,
    Record,
    RecordKind,
)


class EntryHandler(ABC):
    """Capability implemented by everything placed in a handler chain."""

    @abstractmethod
    def handle(self, record: Record, ctx: ScanContext) -> None:
        """Process one record of a subscribed kind."""
        pass

    def finalize(self, ctx: ScanContext) -> None:
        """Called once after the last record, if registered for finalize."""
        pass


def _check_cpu(record: Record, ctx: ScanContext) -> int:
    cpu = record.cpu
    if cpu >= ctx.config.max_cpus:
        raise ContractViolation(
            f"{record.kind.name.lower()} record for cpu {cpu} exceeds max_cpus={ctx.config.max_cpus}",
            kind=int(record.kind),
        )
    return cpu


class DefaultHostHandler(EntryHandler):
    """Tracks the enabled scope and the application name."""

    def handle(self, record: HostRecord, ctx: ScanContext) -> None:
        if record.host_type in (HostType.CALL_CLEAR_CPU, HostType.CALL_SET_CPU):
            return
        if record.host_type != HostType.ACCESS_ALL_CPU:
            raise ContractViolation(f"unhandled host type {record.host_type}", kind=int(RecordKind.HOST))

        state = ctx.state
        if not state.app_name and record.name:
            state.app_name = record.name
        state.enable = record


class DefaultAppDataHandler(EntryHandler):
    """Keeps the latest application operation count."""

    def handle(self, record: AppDataRecord, ctx: ScanContext) -> None:
        # Cumulative upstream; last value wins
        ctx.state.summary.app_ops = record.u64


class DefaultFcallHandler(EntryHandler):
    """Per-CPU call state machine: idle (pc 0) or active at a pc."""

    def handle(self, record: FcallRecord, ctx: ScanContext) -> None:
        cpu = _check_cpu(record, ctx)

        if record.state in (CallState.START, CallState.RESUME):
            ctx.state.call_pc[cpu] = record.pc
        elif record.state in (CallState.PAUSE, CallState.DONE):
            ctx.state.call_pc[cpu] = 0
        else:
            raise ContractViolation(f"unknown fcall state {record.state}", kind=int(RecordKind.FCALL))


class DefaultLabelHandler(EntryHandler):
    """Adds and removes labels in the live label table."""

    def handle(self, record: LabelRecord, ctx: ScanContext) -> None:
        if record.label_type == 0 or record.label_type >= LabelType.END:
            raise ContractViolation(f"bad label type: {record.label_type}", kind=int(RecordKind.LABEL))

        if record.bytes:
            ctx.labels.add_record(record)
        else:
            ctx.labels.remove_record(record)


def default_handlers() -> list[tuple[RecordKind, EntryHandler]]:
    """The default handlers with the kind each one maintains."""
    return [
        (RecordKind.HOST, DefaultHostHandler()),
        (RecordKind.APPDATA, DefaultAppDataHandler()),
        (RecordKind.FCALL, DefaultFcallHandler()),
        (RecordKind.LABEL, DefaultLabelHandler()),
    ]
