#!/usr/bin/env python3
"""Developer tool for mtrace logs.

Usage:
    # Print every record of a log as JSON lines
    python scripts/trace_tool.py dump traces/mtrace.out

    # Build a log from a YAML list of records
    python scripts/trace_tool.py build records.yaml traces/mtrace.out

Record YAML example:
    - {kind: host, host_type: access_all_cpu, name: memcached}
    - {kind: fcall, cpu: 0, state: start, pc: 0xffffffff81001000, tag: 1}
    - {kind: access, cpu: 0, access_type: ld, guest_addr: 0x1000, bytes: 8}
    - {kind: fcall, cpu: 0, state: done, tag: 1}
    - {kind: appdata, u64: 1}
"""

import gzip
import json
import sys
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from rich.console import Console

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mscan.errors import MscanError
from mscan.trace import (
    AccessType,
    CallState,
    HostType,
    LabelType,
    LockOp,
    RecordKind,
    TraceWriter,
    iter_records,
    make_record,
    open_trace,
)

app = typer.Typer(help="mtrace log tools")
console = Console(stderr=True)


# Fields that may be given by enum member name
ENUM_FIELDS = {
    "host_type": HostType,
    "state": CallState,
    "label_type": LabelType,
    "access_type": AccessType,
    "op": LockOp,
}


def _parse_entry(entry: dict[str, Any]):
    entry = dict(entry)
    kind = RecordKind[str(entry.pop("kind")).upper()]
    header = {k: entry.pop(k) for k in ("cpu", "ts", "access_count") if k in entry}

    fields = {}
    for name, value in entry.items():
        if name in ENUM_FIELDS and isinstance(value, str):
            value = ENUM_FIELDS[name][value.upper()]
        if name == "payload" and isinstance(value, str):
            value = bytes.fromhex(value)
        fields[name] = value

    return make_record(kind, **header, **fields)


@app.command()
def dump(
    trace: Path = typer.Argument(..., help="Trace log (gzip)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSONL here instead of stdout"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Stop after N records"),
):
    """Decode a trace log to JSON lines."""
    out = open(output, "w") if output else sys.stdout
    count = 0
    try:
        with open_trace(trace) as f:
            for record in iter_records(f):
                out.write(json.dumps(record.to_dict(), separators=(",", ":")) + "\n")
                count += 1
                if limit is not None and count >= limit:
                    break
    except MscanError as e:
        console.print(f"[red]error:[/red] {e}")
        raise typer.Exit(code=1)
    finally:
        if output:
            out.close()

    console.print(f"Decoded {count} records")


@app.command()
def build(
    records: Path = typer.Argument(..., help="YAML list of records"),
    output: Path = typer.Argument(..., help="Output trace log (gzip)"),
):
    """Build a gzip trace log from a YAML description."""
    with open(records) as f:
        entries = yaml.safe_load(f) or []

    output.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(output, "wb") as f:
        writer = TraceWriter(f)
        writer.write_all(_parse_entry(entry) for entry in entries)

    console.print(f"Wrote {writer.count} records to {output}")


if __name__ == "__main__":
    app()
