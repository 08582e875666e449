"""
mscan: single-pass analysis of mtrace execution-trace logs

Replays a gzip-compressed binary trace captured from an instrumented
simulator and routes every record through ordered chains of handlers.
Default handlers keep shared process state current (enabled scope,
application name and op count, per-CPU call PC, live memory labels);
analyses subscribe to record kinds and report once the log is fully read.

Key Components:
    - trace: record model and binary codec
    - engine: scan context, handler registry and dispatch loop
    - analysis: distinct-syscall, distinct-op and serial-section analyses
    - symbols: nm symbol table and addr2line resolution
    - cli: ``mscan TRACE_DIR TRACE_FILE``

Example:
    >>> from mscan import Dispatcher, HandlerRegistry, ScanContext, open_trace, register_analyses
    >>> registry = HandlerRegistry()
    >>> analyses = register_analyses(registry)
    >>> ctx = ScanContext()
    >>> with open_trace("trace/mtrace.out") as log:
    ...     Dispatcher(registry, ctx).run(log)
    >>> ctx.state.app_name
"""

__version__ = "0.1.0"

from mscan.config import ScanConfig
from mscan.errors import MscanError, TraceOpenError, DecodeError, ContractViolation
from mscan.trace import RecordKind, open_trace, iter_records
from mscan.engine import (
    Dispatcher,
    EntryHandler,
    HandlerRegistry,
    ScanContext,
)
from mscan.analysis import register_analyses

__all__ = [
    "ScanConfig",
    # Errors
    "MscanError",
    "TraceOpenError",
    "DecodeError",
    "ContractViolation",
    # Trace
    "RecordKind",
    "open_trace",
    "iter_records",
    # Engine
    "Dispatcher",
    "EntryHandler",
    "HandlerRegistry",
    "ScanContext",
    # Analyses
    "register_analyses",
]
