"""Unit tests for process state and the label table."""

import pytest

from mscan.config import ScanConfig
from mscan.engine import Label, LabelTable, ProcessState, ScanContext
from mscan.trace import LabelType, RecordKind, make_record


def _label(addr, nbytes, name="obj", label_type=LabelType.HEAP):
    return Label(label_type=label_type, name=name, guest_addr=addr, bytes=nbytes)


class TestProcessState:
    """Test ProcessState defaults."""

    def test_initial_state(self):
        """A fresh state has no scope, no name and idle CPUs."""
        state = ProcessState(max_cpus=8)

        assert state.enable is None
        assert state.app_name == ""
        assert state.summary.app_ops == 0
        assert state.call_pc.shape == (8,)
        assert state.active_cpus() == []

    def test_current_pc(self):
        """Slots read back as Python ints."""
        state = ProcessState(max_cpus=4)
        state.call_pc[2] = 0xFFFFFFFF81000000

        assert state.current_pc(2) == 0xFFFFFFFF81000000
        assert isinstance(state.current_pc(2), int)
        assert state.active_cpus() == [2]


class TestLabelTable:
    """Test LabelTable add/remove/lookup."""

    def test_add_and_remove(self):
        """Removing at an address drops the entry."""
        table = LabelTable()
        table.add(_label(0x2000, 16))

        assert 0x2000 in table
        assert len(table) == 1

        removed = table.remove(0x2000)

        assert removed.guest_addr == 0x2000
        assert 0x2000 not in table
        assert len(table) == 0

    def test_overwrite_same_address(self):
        """The second label at an address replaces the first."""
        table = LabelTable()
        table.add(_label(0x2000, 16, name="first"))
        table.add(_label(0x2000, 32, name="second"))

        assert len(table) == 1
        assert table.get(0x2000).name == "second"
        assert table.get(0x2000).bytes == 32

    def test_remove_absent_is_noop(self):
        """Removing an unknown address leaves the table unchanged."""
        table = LabelTable()
        table.add(_label(0x1000, 8))

        assert table.remove(0x5000) is None
        assert len(table) == 1

    def test_find_covering_label(self):
        """find() resolves interior addresses to their label."""
        table = LabelTable()
        table.add(_label(0x1000, 0x100, name="a"))
        table.add(_label(0x3000, 0x10, name="b"))

        assert table.find(0x1080).name == "a"
        assert table.find(0x300F).name == "b"
        assert table.find(0x3010) is None
        assert table.find(0x0FFF) is None
        assert table.find(0x2000) is None

    def test_iteration_in_address_order(self):
        """Iteration is ordered by start address."""
        table = LabelTable()
        for addr in (0x3000, 0x1000, 0x2000):
            table.add(_label(addr, 8))

        assert [label.guest_addr for label in table] == [0x1000, 0x2000, 0x3000]

    def test_record_helpers(self):
        """Label records add and remove by guest address."""
        table = LabelTable()
        rec = make_record(RecordKind.LABEL, label_type=LabelType.STATIC, name="inode", guest_addr=0x40, bytes=64)
        table.add_record(rec)

        assert table.get(0x40).name == "inode"
        assert table.get(0x40).label_type == LabelType.STATIC

        table.remove_record(make_record(RecordKind.LABEL, guest_addr=0x40, bytes=0))

        assert 0x40 not in table


class TestScanContext:
    """Test ScanContext construction."""

    def test_state_sized_from_config(self):
        """The per-CPU array follows max_cpus."""
        ctx = ScanContext(config=ScanConfig(max_cpus=16))

        assert ctx.state.call_pc.shape == (16,)
        assert len(ctx.labels) == 0
        assert ctx.symbols is None

    def test_contexts_are_independent(self):
        """Each context owns fresh state."""
        a = ScanContext()
        b = ScanContext()
        a.state.app_name = "x"
        a.labels.add(_label(0x10, 1))

        assert b.state.app_name == ""
        assert len(b.labels) == 0


class TestScanConfig:
    """Test configuration validation and loading."""

    def test_defaults(self):
        config = ScanConfig()

        assert config.max_cpus == 256
        assert config.cache_line_bits == 6
        assert config.symbols_name == "vmlinux.syms"

    def test_validation(self):
        with pytest.raises(ValueError):
            ScanConfig(max_cpus=0)
        with pytest.raises(ValueError):
            ScanConfig(log_level="chatty")

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "mscan.yaml"
        path.write_text("max_cpus: 4\nlog_level: debug\n")

        config = ScanConfig.from_yaml(path)

        assert config.max_cpus == 4
        assert config.log_level == "DEBUG"

    def test_unknown_keys_rejected(self, tmp_path):
        path = tmp_path / "mscan.yaml"
        path.write_text("max_cpu: 4\n")

        with pytest.raises(ValueError, match="max_cpu"):
            ScanConfig.from_yaml(path)
