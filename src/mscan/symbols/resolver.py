"""Program-counter resolution for reports.

Combines addr2line (file and line) with the ``nm`` symbol table (function
name only). Consulted from ``finalize``, never from the dispatch loop.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from mscan.symbols.addr2line import Addr2line, SourceLocation
from mscan.symbols.symtab import SymbolTable


class SymbolResolver:
    """Resolves PCs, preferring addr2line and falling back to the symbol table.

    Args:
        symtab: Symbol table from ``vmlinux.syms``
        addr2line: addr2line runner for the debug binary
    """

    def __init__(
        self,
        symtab: Optional[SymbolTable] = None,
        addr2line: Optional[Addr2line] = None,
    ):
        self.symtab = symtab
        self.addr2line = addr2line

    def _from_addr2line(self, pc: int) -> Optional[SourceLocation]:
        if self.addr2line is None:
            return None
        try:
            return self.addr2line.resolve(pc)
        except (FileNotFoundError, RuntimeError) as e:
            logger.warning(f"addr2line unavailable, using symbol table only: {e}")
            self.addr2line.close()
            self.addr2line = None
            return None

    def resolve(self, pc: int) -> Optional[SourceLocation]:
        """Resolve ``pc`` to a source location, or None if nothing knows it."""
        location = self._from_addr2line(pc)
        if location is not None and location.function != "??":
            return location

        if self.symtab is not None:
            found = self.symtab.lookup(pc)
            if found is not None:
                name, _ = found
                if location is not None:
                    return SourceLocation(function=name, file=location.file, line=location.line)
                return SourceLocation(function=name)

        return location

    def function_name(self, pc: int) -> str:
        """Function name for ``pc``, or its hex value when unknown."""
        location = self.resolve(pc)
        if location is None or location.function == "??":
            return f"{pc:#x}"
        return location.function

    def close(self) -> None:
        if self.addr2line is not None:
            self.addr2line.close()

    def __enter__(self) -> "SymbolResolver":
        return self

    def __exit__(self, *args) -> None:
        self.close()
