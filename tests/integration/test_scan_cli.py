"""Integration tests for the mscan command line."""

import json

import pytest
from loguru import logger
from typer.testing import CliRunner

from mscan.cli import app, run_scan
from mscan.config import ScanConfig
from mscan.errors import DecodeError, TraceOpenError
from mscan.trace import CallState, LockOp, RecordKind, make_record

runner = CliRunner()

SYMBOLS = """\
ffffffff81001000 0000000000000100 T sys_read
ffffffff81002000 0000000000000100 T sys_write
"""


def sample_records():
    return [
        make_record(RecordKind.HOST, name="memcached"),
        make_record(RecordKind.FCALL, cpu=0, state=CallState.START, tag=1, pc=0xFFFFFFFF81001000),
        make_record(RecordKind.ACCESS, cpu=0, guest_addr=0x1000, bytes=8),
        make_record(RecordKind.ACCESS, cpu=0, guest_addr=0x1040, bytes=8),
        make_record(RecordKind.FCALL, cpu=0, state=CallState.DONE, tag=1),
        make_record(RecordKind.LABEL, label_type=1, name="buf", guest_addr=0x1000, bytes=64),
        make_record(RecordKind.LOCK, cpu=0, ts=10, op=LockOp.ACQUIRED, lock=0xA, name="dcache_lock"),
        make_record(RecordKind.LOCK, cpu=0, ts=30, op=LockOp.RELEASE, lock=0xA),
        make_record(RecordKind.SCHED, cpu=0, payload=b"\x00" * 8),
        make_record(RecordKind.APPDATA, u64=1),
    ]


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop loguru sinks bound to the runner's captured streams."""
    yield
    logger.remove()


@pytest.fixture
def trace_dir(tmp_path, write_trace):
    """A trace directory with a log, symbols, a stand-in ELF and a config."""
    write_trace(sample_records(), directory=tmp_path)
    (tmp_path / "vmlinux.syms").write_text(SYMBOLS)
    (tmp_path / "vmlinux").write_bytes(b"\x7fELF")
    (tmp_path / "mscan.yaml").write_text(f"addr2line: {tmp_path / 'no-addr2line'}\ntop: 5\n")
    return tmp_path


class TestRunScan:
    """Test the scan pipeline without the CLI layer."""

    def test_reports(self, trace_dir):
        config = ScanConfig.from_yaml(trace_dir / "mscan.yaml")

        result = run_scan(trace_dir, "mtrace.out", config)

        assert result["app_name"] == "memcached"
        assert result["app_ops"] == 1
        assert result["live_labels"] == 1
        assert result["stats"]["records"] == 10
        assert result["stats"]["per_kind"]["sched"] == 1

        syscalls = result["reports"]["distinct_syscalls"]["syscalls"]
        assert syscalls[0]["function"] == "sys_read"
        assert syscalls[0]["distinct_lines"] == 2
        assert result["reports"]["distinct_ops"]["lines_per_op"] == 2.0
        assert result["reports"]["serial_sections"]["locks"][0]["total_hold"] == 20

    def test_missing_symbols(self, trace_dir):
        (trace_dir / "vmlinux.syms").unlink()

        with pytest.raises(TraceOpenError) as excinfo:
            run_scan(trace_dir, "mtrace.out", ScanConfig())
        assert excinfo.value.path == trace_dir / "vmlinux.syms"

    def test_missing_elf(self, trace_dir):
        (trace_dir / "vmlinux").unlink()

        with pytest.raises(TraceOpenError):
            run_scan(trace_dir, "mtrace.out", ScanConfig())

    def test_truncated_log(self, trace_dir, write_trace):
        write_trace(sample_records(), directory=trace_dir, tail=b"\x0b\x00\x00")

        with pytest.raises(DecodeError):
            run_scan(trace_dir, "mtrace.out", ScanConfig.from_yaml(trace_dir / "mscan.yaml"))


class TestScanCommand:
    """Test the mscan command."""

    def test_scan_prints_reports(self, trace_dir):
        result = runner.invoke(app, [str(trace_dir), "mtrace.out", "-c", str(trace_dir / "mscan.yaml")])

        assert result.exit_code == 0, result.output
        assert "Scan Summary" in result.output
        assert "sys_read" in result.output
        assert "Serial Sections" in result.output

    def test_json_output(self, trace_dir, tmp_path):
        out = tmp_path / "out" / "result.json"

        result = runner.invoke(
            app,
            [str(trace_dir), "mtrace.out", "-c", str(trace_dir / "mscan.yaml"), "-o", str(out)],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text())
        assert data["app_name"] == "memcached"
        assert data["config"]["top"] == 5
        assert "_stats" not in data

    def test_missing_trace_file(self, trace_dir):
        result = runner.invoke(app, [str(trace_dir), "nope.out", "-c", str(trace_dir / "mscan.yaml")])

        assert result.exit_code == 1
        assert "nope.out" in result.output

    def test_missing_symbols_names_path(self, trace_dir):
        (trace_dir / "vmlinux.syms").unlink()

        result = runner.invoke(app, [str(trace_dir), "mtrace.out", "-c", str(trace_dir / "mscan.yaml")])

        assert result.exit_code == 1
        assert "vmlinux.syms" in result.output

    def test_bad_label_type_exits(self, trace_dir, write_trace):
        write_trace([make_record(RecordKind.LABEL, label_type=0, guest_addr=0x10, bytes=4)], directory=trace_dir)

        result = runner.invoke(app, [str(trace_dir), "mtrace.out", "-c", str(trace_dir / "mscan.yaml")])

        assert result.exit_code == 1
        assert "bad label type" in result.output

    def test_bad_config(self, trace_dir):
        (trace_dir / "bad.yaml").write_text("max_cpus: -1\n")

        result = runner.invoke(app, [str(trace_dir), "mtrace.out", "-c", str(trace_dir / "bad.yaml")])

        assert result.exit_code == 1
        assert "bad configuration" in result.output
