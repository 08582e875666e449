"""Shared state for a scan.

The default handlers are the only writers of ``ProcessState`` and
``LabelTable``; analyses read them while the same record is being
dispatched.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, Optional

import numpy as np

from mscan.config import ScanConfig
from mscan.trace.records import HostRecord, LabelRecord

if TYPE_CHECKING:
    from mscan.symbols import SymbolResolver


@dataclass
class Summary:
    """Summary counters reported by the traced application."""

    app_ops: int = 0


@dataclass
class ProcessState:
    """Process-wide state maintained by the default handlers.

    Attributes:
        enable: Last ``access_all_cpu`` host record (the scope descriptor)
        app_name: Name from the first ``access_all_cpu`` record that had one
        summary: Application summary counters
        call_pc: Current call PC per CPU, 0 when the CPU is idle
    """

    max_cpus: int = 256
    enable: Optional[HostRecord] = None
    app_name: str = ""
    summary: Summary = field(default_factory=Summary)
    call_pc: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        self.call_pc = np.zeros(self.max_cpus, dtype=np.uint64)

    def current_pc(self, cpu: int) -> int:
        """PC of the call running on ``cpu``, or 0."""
        return int(self.call_pc[cpu])

    def active_cpus(self) -> list[int]:
        """CPUs that currently have a call in progress."""
        return [int(c) for c in np.flatnonzero(self.call_pc)]


@dataclass(frozen=True)
class Label:
    """A live, named address range."""

    label_type: int
    name: str
    guest_addr: int
    bytes: int
    pc: int = 0
    host_addr: int = 0

    @property
    def end(self) -> int:
        return self.guest_addr + self.bytes

    def contains(self, addr: int) -> bool:
        return self.guest_addr <= addr < self.end

    @classmethod
    def from_record(cls, record: LabelRecord) -> "Label":
        return cls(
            label_type=record.label_type,
            name=record.name,
            guest_addr=record.guest_addr,
            bytes=record.bytes,
            pc=record.pc,
            host_addr=record.host_addr,
        )


class LabelTable:
    """Live labels keyed by guest address.

    Adding at an address overwrites whatever was there; overlapping ranges
    at different addresses coexist.
    """

    def __init__(self):
        self._labels: dict[int, Label] = {}
        self._addrs: list[int] = []  # Sorted keys of _labels

    def add(self, label: Label) -> None:
        if label.guest_addr not in self._labels:
            bisect.insort(self._addrs, label.guest_addr)
        self._labels[label.guest_addr] = label

    def remove(self, addr: int) -> Optional[Label]:
        """Remove the label at ``addr``; absent addresses are ignored."""
        label = self._labels.pop(addr, None)
        if label is not None:
            del self._addrs[bisect.bisect_left(self._addrs, addr)]
        return label

    def add_record(self, record: LabelRecord) -> None:
        self.add(Label.from_record(record))

    def remove_record(self, record: LabelRecord) -> None:
        self.remove(record.guest_addr)

    def get(self, addr: int) -> Optional[Label]:
        """Label starting exactly at ``addr``."""
        return self._labels.get(addr)

    def find(self, addr: int) -> Optional[Label]:
        """Label covering ``addr``, searching from the nearest start below it."""
        idx = bisect.bisect_right(self._addrs, addr)
        if idx == 0:
            return None
        label = self._labels[self._addrs[idx - 1]]
        return label if label.contains(addr) else None

    def __contains__(self, addr: int) -> bool:
        return addr in self._labels

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[Label]:
        for addr in self._addrs:
            yield self._labels[addr]


@dataclass
class ScanContext:
    """Everything a handler can see during a scan.

    Built once per run and passed to every ``handle`` and ``finalize``.
    """

    config: ScanConfig = field(default_factory=ScanConfig)
    state: ProcessState = field(init=False)
    labels: LabelTable = field(default_factory=LabelTable)
    symbols: Optional["SymbolResolver"] = None

    def __post_init__(self):
        self.state = ProcessState(max_cpus=self.config.max_cpus)
