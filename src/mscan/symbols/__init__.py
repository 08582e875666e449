"""Symbol resolution for program counters found in traces."""

from mscan.symbols.symtab import Symbol, SymbolTable
from mscan.symbols.addr2line import Addr2line, SourceLocation, parse_location
from mscan.symbols.resolver import SymbolResolver

__all__ = [
    "Symbol",
    "SymbolTable",
    "Addr2line",
    "SourceLocation",
    "parse_location",
    "SymbolResolver",
]
