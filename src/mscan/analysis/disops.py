"""Distinct cache lines per application operation."""

from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from mscan.analysis.dissys import DistinctSyscalls
from mscan.engine.handlers import EntryHandler
from mscan.engine.state import ScanContext
from mscan.trace.records import Record


class DistinctOps(EntryHandler):
    """Normalizes the distinct-line total by the application's op count.

    Finalize-only; must be registered after the ``DistinctSyscalls`` it reads.
    """

    kinds = ()

    def __init__(self, dissys: DistinctSyscalls):
        self.dissys = dissys
        self.app_name = ""
        self.app_ops = 0
        self.total_distinct_lines = 0
        self.lines_per_op: Optional[float] = None

    def handle(self, record: Record, ctx: ScanContext) -> None:
        pass

    def finalize(self, ctx: ScanContext) -> None:
        if self.dissys.results is None:
            raise RuntimeError("DistinctOps must finalize after DistinctSyscalls")

        self.app_name = ctx.state.app_name
        self.app_ops = ctx.state.summary.app_ops
        self.total_distinct_lines = self.dissys.total_distinct_lines

        if self.app_ops:
            self.lines_per_op = self.total_distinct_lines / self.app_ops
        else:
            logger.warning("No application ops reported; lines per op is undefined")
            self.lines_per_op = None

    def report(self) -> dict[str, Any]:
        return {
            "app_name": self.app_name,
            "app_ops": self.app_ops,
            "total_distinct_lines": self.total_distinct_lines,
            "lines_per_op": self.lines_per_op,
        }
