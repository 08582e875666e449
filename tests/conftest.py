"""Shared fixtures for mscan tests."""

import gzip

import pytest

from mscan.trace import TraceWriter


@pytest.fixture
def write_trace(tmp_path):
    """Write records (and optional raw trailing bytes) to a gzip trace file."""

    def _write(records, name="mtrace.out", tail=b"", directory=None):
        path = (directory or tmp_path) / name
        with gzip.open(path, "wb") as f:
            TraceWriter(f).write_all(records)
            if tail:
                f.write(tail)
        return path

    return _write
