"""Event-dispatch engine.

Key Components:
    - ScanContext: process state, label table and symbols shared by handlers
    - EntryHandler: handle/finalize capability of every chain member
    - HandlerRegistry: per-kind handler chains and the finalize chain
    - Dispatcher: single forward pass over a record stream

Example:
    >>> registry = HandlerRegistry()
    >>> registry.subscribe(my_analysis, RecordKind.ACCESS, finalize=True)
    >>> ctx = ScanContext()
    >>> with open_trace(path) as f:
    ...     stats = Dispatcher(registry, ctx).run(f)
"""

from mscan.engine.state import (
    ProcessState,
    Summary,
    Label,
    LabelTable,
    ScanContext,
)
from mscan.engine.handlers import (
    EntryHandler,
    DefaultHostHandler,
    DefaultAppDataHandler,
    DefaultFcallHandler,
    DefaultLabelHandler,
    default_handlers,
)
from mscan.engine.registry import HandlerRegistry
from mscan.engine.dispatch import Dispatcher, ScanStats

__all__ = [
    # State
    "ProcessState",
    "Summary",
    "Label",
    "LabelTable",
    "ScanContext",
    # Handlers
    "EntryHandler",
    "DefaultHostHandler",
    "DefaultAppDataHandler",
    "DefaultFcallHandler",
    "DefaultLabelHandler",
    "default_handlers",
    # Dispatch
    "HandlerRegistry",
    "Dispatcher",
    "ScanStats",
]
