"""Distinct cache lines touched per system call.

A call is identified by its fcall ``tag``. While a call is current on a CPU,
every memory access from that CPU adds the cache lines it covers to the
call's set. When the call is done, its set size is folded into the
statistics of the call's entry PC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from mscan.engine.handlers import EntryHandler
from mscan.engine.state import ScanContext
from mscan.trace.records import (
    AccessRecord,
    AccessType,
    CallState,
    FcallRecord,
    Record,
    RecordKind,
)


@dataclass
class LiveCall:
    """A call that has started and not finished yet."""

    pc: int
    lines: set[int] = field(default_factory=set)


@dataclass
class SyscallStats:
    """Aggregate over every finished call entered at ``pc``."""

    pc: int
    calls: int = 0
    distinct_lines: int = 0  # Sum over calls of lines distinct within the call
    max_lines: int = 0
    function: Optional[str] = None

    @property
    def mean_lines(self) -> float:
        return self.distinct_lines / self.calls if self.calls else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "pc": self.pc,
            "function": self.function,
            "calls": self.calls,
            "distinct_lines": self.distinct_lines,
            "max_lines": self.max_lines,
            "mean_lines": self.mean_lines,
        }


class DistinctSyscalls(EntryHandler):
    """Counts distinct cache lines each system call touches."""

    kinds = (RecordKind.ACCESS, RecordKind.FCALL)

    def __init__(self):
        self._live: dict[int, LiveCall] = {}  # tag -> call
        self._current: dict[int, int] = {}  # cpu -> tag
        self._stats: dict[int, SyscallStats] = {}  # pc -> stats
        self.results: Optional[list[SyscallStats]] = None
        self.unfinished = 0
        self.untracked_accesses = 0

    def handle(self, record: Record, ctx: ScanContext) -> None:
        if isinstance(record, FcallRecord):
            self._on_fcall(record)
        elif isinstance(record, AccessRecord):
            self._on_access(record, ctx.config.cache_line_bits)

    def _attach(self, cpu: int, tag: int) -> None:
        # A call runs on at most one CPU at a time
        self._detach(tag)
        self._current[cpu] = tag

    def _detach(self, tag: int) -> None:
        for cpu in [c for c, t in self._current.items() if t == tag]:
            del self._current[cpu]

    def _on_fcall(self, record: FcallRecord) -> None:
        cpu = record.cpu
        if record.state == CallState.START:
            self._live[record.tag] = LiveCall(pc=record.pc)
            self._attach(cpu, record.tag)
        elif record.state == CallState.RESUME:
            if record.tag not in self._live:
                self._live[record.tag] = LiveCall(pc=record.pc)
            self._attach(cpu, record.tag)
        elif record.state == CallState.PAUSE:
            self._detach(record.tag)
        elif record.state == CallState.DONE:
            self._detach(record.tag)
            call = self._live.pop(record.tag, None)
            if call is not None:
                self._fold(call)

    def _on_access(self, record: AccessRecord, line_bits: int) -> None:
        if record.access_type == AccessType.CLEAR:
            return
        call = self._live.get(self._current.get(record.cpu, -1))
        if call is None:
            self.untracked_accesses += 1
            return

        first = record.guest_addr >> line_bits
        last = (record.guest_addr + max(record.bytes, 1) - 1) >> line_bits
        call.lines.update(range(first, last + 1))

    def _fold(self, call: LiveCall) -> None:
        stats = self._stats.get(call.pc)
        if stats is None:
            stats = self._stats[call.pc] = SyscallStats(pc=call.pc)
        n = len(call.lines)
        stats.calls += 1
        stats.distinct_lines += n
        stats.max_lines = max(stats.max_lines, n)

    def finalize(self, ctx: ScanContext) -> None:
        self.unfinished = len(self._live)
        results = sorted(self._stats.values(), key=lambda s: (-s.distinct_lines, s.pc))
        if ctx.symbols is not None:
            for stats in results:
                stats.function = ctx.symbols.function_name(stats.pc)
        self.results = results

    @property
    def total_calls(self) -> int:
        return sum(s.calls for s in self._stats.values())

    @property
    def total_distinct_lines(self) -> int:
        return sum(s.distinct_lines for s in self._stats.values())

    def report(self) -> dict[str, Any]:
        return {
            "total_calls": self.total_calls,
            "total_distinct_lines": self.total_distinct_lines,
            "unfinished": self.unfinished,
            "untracked_accesses": self.untracked_accesses,
            "syscalls": [s.to_dict() for s in self.results or []],
        }
