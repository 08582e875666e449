"""Kernel symbol table loaded from ``nm`` output (``vmlinux.syms``).

Accepts both ``addr type name`` (System.map style) and
``addr size type name`` (``nm -S``) lines.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from loguru import logger

from mscan.errors import TraceOpenError


# nm type letters for code symbols
TEXT_TYPES = frozenset("tTwW")


@dataclass(frozen=True)
class Symbol:
    """A code symbol."""

    address: int
    name: str
    size: int = 0  # 0 when nm gave no size

    def contains(self, pc: int) -> bool:
        if self.size:
            return self.address <= pc < self.address + self.size
        return pc >= self.address


class SymbolTable:
    """Address-ordered code symbols answering nearest-preceding lookups."""

    def __init__(self, symbols: Iterable[Symbol] = ()):
        self._symbols = sorted(symbols, key=lambda s: s.address)
        self._addrs = [s.address for s in self._symbols]

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "SymbolTable":
        symbols = []
        skipped = 0
        for line in lines:
            parts = line.split()
            if len(parts) == 3:
                addr, sym_type, name = parts
                size = "0"
            elif len(parts) == 4:
                addr, size, sym_type, name = parts
            else:
                if parts:
                    skipped += 1
                continue

            if sym_type not in TEXT_TYPES:
                continue
            try:
                symbols.append(Symbol(address=int(addr, 16), name=name, size=int(size, 16)))
            except ValueError:
                skipped += 1

        if skipped:
            logger.debug(f"Skipped {skipped} unparseable symbol lines")
        return cls(symbols)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SymbolTable":
        """Load a symbol table file.

        Raises:
            TraceOpenError: If the file cannot be read
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                table = cls.from_lines(f)
        except OSError as e:
            raise TraceOpenError(path, e.strerror or str(e)) from e
        logger.debug(f"Loaded {len(table)} symbols from {path}")
        return table

    def lookup(self, pc: int) -> Optional[tuple[str, int]]:
        """Return ``(name, offset)`` of the symbol containing ``pc``."""
        idx = bisect.bisect_right(self._addrs, pc)
        if idx == 0:
            return None
        sym = self._symbols[idx - 1]
        if not sym.contains(pc):
            return None
        return sym.name, pc - sym.address

    def __len__(self) -> int:
        return len(self._symbols)
