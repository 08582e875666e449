"""Analyses run over a scan.

Each analysis is an ``EntryHandler`` that subscribes to the record kinds in
its ``kinds`` attribute and to the finalize pass.
"""

from __future__ import annotations

from mscan.analysis.dissys import DistinctSyscalls, SyscallStats
from mscan.analysis.disops import DistinctOps
from mscan.analysis.sersec import LockStats, SerialSections
from mscan.engine.registry import HandlerRegistry


def register_analyses(registry: HandlerRegistry) -> dict[str, object]:
    """Register the standard analyses after the default handlers.

    Returns:
        Mapping of report name to analysis, in finalize order
    """
    dissys = DistinctSyscalls()
    registry.subscribe(dissys, *dissys.kinds, finalize=True)

    disops = DistinctOps(dissys)
    registry.register_finalize(disops)

    sersecs = SerialSections()
    registry.subscribe(sersecs, *sersecs.kinds, finalize=True)

    return {
        "distinct_syscalls": dissys,
        "distinct_ops": disops,
        "serial_sections": sersecs,
    }


__all__ = [
    "DistinctSyscalls",
    "SyscallStats",
    "DistinctOps",
    "SerialSections",
    "LockStats",
    "register_analyses",
]
