"""Unit tests for symbol resolution."""

import pytest

from mscan.errors import TraceOpenError
from mscan.symbols import Addr2line, SourceLocation, SymbolResolver, SymbolTable, parse_location

NM_LINES = [
    "ffffffff81000000 T _text",
    "ffffffff81001000 0000000000000080 T sys_read",
    "ffffffff81001080 0000000000000040 t do_sync_read",
    "ffffffff81200000 D some_data",
    "ffffffff81300000 W weak_fn",
    "not a symbol line at all here",
    "",
]


class TestSymbolTable:
    """Test nm output parsing and lookup."""

    @pytest.fixture
    def symtab(self):
        return SymbolTable.from_lines(NM_LINES)

    def test_only_code_symbols_kept(self, symtab):
        assert len(symtab) == 4

    def test_lookup_with_size(self, symtab):
        assert symtab.lookup(0xFFFFFFFF81001000) == ("sys_read", 0)
        assert symtab.lookup(0xFFFFFFFF81001010) == ("sys_read", 0x10)
        assert symtab.lookup(0xFFFFFFFF810010A0) == ("do_sync_read", 0x20)

    def test_lookup_past_sized_symbol(self, symtab):
        """A sized symbol does not cover addresses beyond its end."""
        assert symtab.lookup(0xFFFFFFFF810010C0) is None

    def test_lookup_unsized_symbol(self, symtab):
        """Symbols without a size extend to the next one."""
        assert symtab.lookup(0xFFFFFFFF81000500) == ("_text", 0x500)
        assert symtab.lookup(0xFFFFFFFF81300004) == ("weak_fn", 4)

    def test_lookup_below_first_symbol(self, symtab):
        assert symtab.lookup(0x1000) is None

    def test_missing_file(self, tmp_path):
        missing = tmp_path / "vmlinux.syms"

        with pytest.raises(TraceOpenError) as excinfo:
            SymbolTable.from_file(missing)
        assert "vmlinux.syms" in str(excinfo.value)

    def test_from_file(self, tmp_path):
        path = tmp_path / "vmlinux.syms"
        path.write_text("\n".join(NM_LINES) + "\n")

        assert len(SymbolTable.from_file(path)) == 4


class TestParseLocation:
    """Test parsing of addr2line answers."""

    def test_full_answer(self):
        loc = parse_location("sys_read\n", "/src/fs/read_write.c:401\n")

        assert loc == SourceLocation("sys_read", "/src/fs/read_write.c", 401)
        assert str(loc) == "sys_read (/src/fs/read_write.c:401)"

    def test_discriminator_dropped(self):
        loc = parse_location("vfs_read", "/src/fs/read_write.c:380 (discriminator 2)")

        assert loc.line == 380

    def test_unknown_address(self):
        assert parse_location("??", "??:0") is None

    def test_function_without_line(self):
        loc = parse_location("memcpy", "??:?")

        assert loc.function == "memcpy"
        assert loc.file is None
        assert loc.line is None
        assert str(loc) == "memcpy"


class TestSymbolResolver:
    """Test resolution fallbacks."""

    @pytest.fixture
    def symtab(self):
        return SymbolTable.from_lines(NM_LINES)

    def test_symbol_table_only(self, symtab):
        resolver = SymbolResolver(symtab=symtab)

        assert resolver.function_name(0xFFFFFFFF81001004) == "sys_read"

    def test_unknown_pc_is_hex(self, symtab):
        resolver = SymbolResolver(symtab=symtab)

        assert resolver.function_name(0x10) == "0x10"
        assert resolver.resolve(0x10) is None

    def test_missing_addr2line_falls_back(self, symtab, tmp_path):
        """A missing addr2line binary degrades to the symbol table."""
        addr2line = Addr2line(tmp_path / "vmlinux", binary=str(tmp_path / "no-such-addr2line"))
        resolver = SymbolResolver(symtab=symtab, addr2line=addr2line)

        assert resolver.function_name(0xFFFFFFFF81001004) == "sys_read"
        assert resolver.addr2line is None
        resolver.close()

    def test_nothing_configured(self):
        assert SymbolResolver().function_name(0xABC) == "0xabc"

    def test_context_manager_closes_addr2line(self, symtab):
        """Leaving the resolver closes the addr2line process it owns."""
        closed = []

        class StubAddr2line:
            def resolve(self, pc):
                return SourceLocation("sys_read", "/src/fs/read_write.c", 401)

            def close(self):
                closed.append(True)

        with SymbolResolver(symtab=symtab, addr2line=StubAddr2line()) as resolver:
            assert str(resolver.resolve(0xFFFFFFFF81001004)) == "sys_read (/src/fs/read_write.c:401)"

        assert closed == [True]


class TestAddr2line:
    """Test the addr2line process wrapper without running binutils."""

    def test_lazy_start(self, tmp_path):
        """Constructing and closing never starts a process."""
        with Addr2line(tmp_path / "vmlinux", binary=str(tmp_path / "missing")) as a2l:
            assert a2l._proc is None

    def test_missing_binary_raises(self, tmp_path):
        a2l = Addr2line(tmp_path / "vmlinux", binary=str(tmp_path / "missing"))

        with pytest.raises(FileNotFoundError):
            a2l.resolve(0x1000)
        a2l.close()
