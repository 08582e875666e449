"""The dispatch loop.

One forward pass over the log: decode a record, hand it to every handler in
its kind's chain, repeat. Only a clean end of stream runs the finalize pass;
a decode error or a failing handler ends the run with no finalize at all,
since finalize assumes every record was seen.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import BinaryIO

from loguru import logger

from mscan.engine.registry import HandlerRegistry
from mscan.engine.state import ScanContext
from mscan.trace.codec import TraceReader
from mscan.trace.records import RecordKind
from mscan.utils.logging import log_progress


@dataclass
class ScanStats:
    """Counts gathered while dispatching."""

    records: int = 0
    bytes: int = 0
    per_kind: Counter = field(default_factory=Counter)
    elapsed_s: float = 0.0

    def to_dict(self) -> dict:
        return {
            "records": self.records,
            "bytes": self.bytes,
            "per_kind": {RecordKind(k).name.lower(): v for k, v in sorted(self.per_kind.items())},
            "elapsed_s": self.elapsed_s,
        }


class Dispatcher:
    """Runs one scan of one stream through a registry.

    Args:
        registry: Handler chains; frozen when the run starts
        context: Shared state handed to every handler
    """

    def __init__(self, registry: HandlerRegistry, context: ScanContext):
        self.registry = registry
        self.context = context
        self._ran = False

    def run(self, stream: BinaryIO) -> ScanStats:
        """Scan ``stream`` to its end, then run the finalize pass.

        Raises:
            DecodeError: If the stream is truncated or malformed
            ContractViolation: If a record holds an out-of-domain value
        """
        if self._ran:
            raise RuntimeError("A dispatcher can only run once")
        self._ran = True

        self.registry.freeze()
        chains = self.registry.snapshot()
        ctx = self.context
        interval = ctx.config.progress_interval

        stats = ScanStats()
        reader = TraceReader(stream)
        start = time.perf_counter()

        logger.info("Scanning log file ...")
        for record in reader:
            kind = record.header.kind
            for handler in chains.get(kind, ()):
                handler.handle(record, ctx)

            stats.per_kind[kind] += 1
            log_progress(reader.count, interval, "Records scanned")

        stats.records = reader.count
        stats.bytes = reader.offset
        logger.info(f"Scanned {stats.records} records ({stats.bytes} bytes)")

        for handler in self.registry.finalizers:
            logger.debug(f"Finalizing {type(handler).__name__}")
            handler.finalize(ctx)

        stats.elapsed_s = time.perf_counter() - start
        return stats
