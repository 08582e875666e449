"""Serial sections: time spent waiting for and holding each lock.

Lock operations on one CPU pair up as ``acquire -> acquired`` (the wait)
and ``acquired -> release`` (the critical section). Times come from the
record header timestamps.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from mscan.engine.handlers import EntryHandler
from mscan.engine.state import ScanContext
from mscan.errors import ContractViolation
from mscan.trace.records import LockOp, LockRecord, Record, RecordKind


@dataclass
class LockStats:
    """Per-lock aggregate."""

    lock: int
    name: str = ""
    acquisitions: int = 0
    reads: int = 0
    contended: int = 0  # Acquisitions that had to wait
    total_hold: int = 0
    max_hold: int = 0
    total_wait: int = 0
    serial_fraction: float = 0.0
    pcs: Counter = field(default_factory=Counter)  # acquiring pc -> count

    @property
    def mean_hold(self) -> float:
        return self.total_hold / self.acquisitions if self.acquisitions else 0.0

    def top_pc(self) -> Optional[int]:
        if not self.pcs:
            return None
        return self.pcs.most_common(1)[0][0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "lock": self.lock,
            "name": self.name,
            "acquisitions": self.acquisitions,
            "reads": self.reads,
            "contended": self.contended,
            "total_hold": self.total_hold,
            "max_hold": self.max_hold,
            "mean_hold": self.mean_hold,
            "total_wait": self.total_wait,
            "serial_fraction": self.serial_fraction,
            "top_pc": self.top_pc(),
        }


class SerialSections(EntryHandler):
    """Measures lock hold and wait intervals."""

    kinds = (RecordKind.LOCK,)

    def __init__(self):
        self._waiting: dict[tuple[int, int], int] = {}  # (cpu, lock) -> acquire ts
        self._held: dict[tuple[int, int], int] = {}  # (cpu, lock) -> acquired ts
        self._stats: dict[int, LockStats] = {}
        self.first_ts: Optional[int] = None
        self.last_ts: Optional[int] = None
        self.unmatched = 0
        self.abandoned_waits = 0  # acquire never followed by acquired
        self.results: Optional[list[LockStats]] = None

    def _lock_stats(self, record: LockRecord) -> LockStats:
        stats = self._stats.get(record.lock)
        if stats is None:
            stats = self._stats[record.lock] = LockStats(lock=record.lock)
        if not stats.name and record.name:
            stats.name = record.name
        return stats

    def handle(self, record: Record, ctx: ScanContext) -> None:
        if not isinstance(record, LockRecord):
            return

        ts = record.ts
        if self.first_ts is None:
            self.first_ts = ts
        self.last_ts = ts

        key = (record.cpu, record.lock)
        if record.op == LockOp.ACQUIRE:
            if key in self._waiting:
                self.abandoned_waits += 1
            self._waiting[key] = ts
        elif record.op == LockOp.ACQUIRED:
            stats = self._lock_stats(record)
            wait = ts - self._waiting.pop(key, ts)
            self._held[key] = ts
            stats.acquisitions += 1
            stats.total_wait += wait
            if wait > 0:
                stats.contended += 1
            if record.read:
                stats.reads += 1
            stats.pcs[record.pc] += 1
        elif record.op == LockOp.RELEASE:
            if self._waiting.pop(key, None) is not None:
                self.abandoned_waits += 1
            start = self._held.pop(key, None)
            if start is None:
                self.unmatched += 1
                return
            stats = self._lock_stats(record)
            hold = ts - start
            stats.total_hold += hold
            stats.max_hold = max(stats.max_hold, hold)
        else:
            raise ContractViolation(f"unknown lock op {record.op}", kind=int(RecordKind.LOCK))

    @property
    def span(self) -> int:
        if self.first_ts is None or self.last_ts is None:
            return 0
        return self.last_ts - self.first_ts

    def finalize(self, ctx: ScanContext) -> None:
        self.abandoned_waits += len(self._waiting)
        self._waiting.clear()
        span = self.span
        for stats in self._stats.values():
            stats.serial_fraction = stats.total_hold / span if span else 0.0
        self.results = sorted(self._stats.values(), key=lambda s: (-s.total_hold, s.lock))

    def report(self) -> dict[str, Any]:
        return {
            "span": self.span,
            "unmatched": self.unmatched,
            "abandoned_waits": self.abandoned_waits,
            "locks": [s.to_dict() for s in self.results or []],
        }
