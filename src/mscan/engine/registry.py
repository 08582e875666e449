"""Handler chain registry.

Each record kind owns an ordered chain of handlers; a separate chain holds
the handlers that take part in the finalize pass. Handlers run in
registration order, and the default handlers are registered before anything
else so state-producing handlers always run first for their kind.
"""

from __future__ import annotations

from collections import defaultdict

from loguru import logger

from mscan.engine.handlers import EntryHandler, default_handlers
from mscan.trace.records import RecordKind


class HandlerRegistry:
    """Ordered handler chains per record kind, plus the finalize chain.

    Args:
        defaults: Install the default bookkeeping handlers first
    """

    def __init__(self, defaults: bool = True):
        self._chains: dict[RecordKind, list[EntryHandler]] = defaultdict(list)
        self._finalizers: list[EntryHandler] = []
        self._frozen = False

        if defaults:
            for kind, handler in default_handlers():
                self.register(kind, handler)

    def _check_open(self) -> None:
        if self._frozen:
            raise RuntimeError("Cannot register handlers after a scan has started")

    def register(self, kind: RecordKind, handler: EntryHandler) -> None:
        """Append ``handler`` to the chain for ``kind``."""
        self._check_open()
        kind = RecordKind(kind)
        self._chains[kind].append(handler)
        logger.debug(f"Registered {type(handler).__name__} for {kind.name.lower()} records")

    def register_finalize(self, handler: EntryHandler) -> None:
        """Append ``handler`` to the finalize chain."""
        self._check_open()
        self._finalizers.append(handler)

    def subscribe(self, handler: EntryHandler, *kinds: RecordKind, finalize: bool = False) -> EntryHandler:
        """Register ``handler`` for each of ``kinds`` and optionally for finalize."""
        for kind in kinds:
            self.register(kind, handler)
        if finalize:
            self.register_finalize(handler)
        return handler

    def chain(self, kind: RecordKind) -> tuple[EntryHandler, ...]:
        return tuple(self._chains.get(RecordKind(kind), ()))

    @property
    def finalizers(self) -> tuple[EntryHandler, ...]:
        return tuple(self._finalizers)

    def freeze(self) -> None:
        """Refuse further registration."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def snapshot(self) -> dict[RecordKind, tuple[EntryHandler, ...]]:
        """Immutable copy of every non-empty chain, used by the dispatch loop."""
        return {kind: tuple(chain) for kind, chain in self._chains.items() if chain}
