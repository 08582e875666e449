"""Command-line interface for mscan.

Usage:
    mscan TRACE_DIR TRACE_FILE

Reads ``TRACE_DIR/TRACE_FILE`` (the gzip trace log) together with
``TRACE_DIR/vmlinux.syms`` and ``TRACE_DIR/vmlinux``, runs every analysis in
one pass and prints the reports.
"""

from __future__ import annotations

import json
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from mscan.analysis import register_analyses
from mscan.config import ScanConfig
from mscan.engine import Dispatcher, HandlerRegistry, ScanContext, ScanStats
from mscan.errors import MscanError, TraceOpenError
from mscan.symbols import Addr2line, SymbolResolver, SymbolTable
from mscan.trace import open_trace
from mscan.utils.logging import setup_logging

app = typer.Typer(
    name="mscan",
    help="Replay an mtrace log through the standard analyses",
    add_completion=False,
)

console = Console()


def _check_readable(path: Path) -> None:
    try:
        with open(path, "rb"):
            pass
    except OSError as e:
        raise TraceOpenError(path, e.strerror or str(e)) from e


def run_scan(
    trace_dir: Path,
    trace_file: str,
    config: ScanConfig,
) -> dict[str, Any]:
    """Open the inputs, scan the log and collect every report.

    Raises:
        TraceOpenError: If a required file cannot be opened
        DecodeError: If the log is malformed
        ContractViolation: If a record holds an out-of-domain value
    """
    log_path = trace_dir / trace_file
    sym_path = trace_dir / config.symbols_name
    elf_path = trace_dir / config.elf_name

    with ExitStack() as stack:
        log = stack.enter_context(open_trace(log_path))
        symtab = SymbolTable.from_file(sym_path)
        _check_readable(elf_path)
        symbols = stack.enter_context(SymbolResolver(symtab, Addr2line(elf_path, config.addr2line)))

        ctx = ScanContext(config=config, symbols=symbols)
        registry = HandlerRegistry()
        analyses = register_analyses(registry)

        logger.info(f"Scanning {log_path}")
        stats = Dispatcher(registry, ctx).run(log)

    return {
        "trace": str(log_path),
        "app_name": ctx.state.app_name,
        "app_ops": ctx.state.summary.app_ops,
        "live_labels": len(ctx.labels),
        "stats": stats.to_dict(),
        "reports": {name: analysis.report() for name, analysis in analyses.items()},
        "_stats": stats,
    }


def _render_summary(result: dict[str, Any]) -> None:
    stats: ScanStats = result["_stats"]
    table = Table(title="Scan Summary")
    table.add_column("Field")
    table.add_column("Value", justify="right")

    table.add_row("Application", result["app_name"] or "-")
    table.add_row("App ops", str(result["app_ops"]))
    table.add_row("Records", str(stats.records))
    table.add_row("Bytes", str(stats.bytes))
    table.add_row("Live labels", str(result["live_labels"]))
    table.add_row("Elapsed (s)", f"{stats.elapsed_s:.2f}")
    for kind, count in stats.to_dict()["per_kind"].items():
        table.add_row(f"  {kind}", str(count))

    console.print(table)


def _render_syscalls(report: dict[str, Any], ops: dict[str, Any], top: int) -> None:
    table = Table(title="Distinct Cache Lines per Syscall")
    table.add_column("Rank", justify="right")
    table.add_column("Function")
    table.add_column("Calls", justify="right")
    table.add_column("Lines", justify="right")
    table.add_column("Mean", justify="right")
    table.add_column("Max", justify="right")

    for i, row in enumerate(report["syscalls"][:top], 1):
        table.add_row(
            str(i),
            row["function"] or f"{row['pc']:#x}",
            str(row["calls"]),
            str(row["distinct_lines"]),
            f"{row['mean_lines']:.1f}",
            str(row["max_lines"]),
        )

    console.print(table)
    per_op = ops["lines_per_op"]
    console.print(
        f"Total distinct lines: {ops['total_distinct_lines']} | "
        f"ops: {ops['app_ops']} | "
        f"lines/op: {'n/a' if per_op is None else f'{per_op:.2f}'} | "
        f"unfinished calls: {report['unfinished']}"
    )


def _render_locks(report: dict[str, Any], top: int) -> None:
    table = Table(title="Serial Sections")
    table.add_column("Rank", justify="right")
    table.add_column("Lock")
    table.add_column("Name")
    table.add_column("Acquired", justify="right")
    table.add_column("Contended", justify="right")
    table.add_column("Hold", justify="right")
    table.add_column("Max hold", justify="right")
    table.add_column("Wait", justify="right")
    table.add_column("Serial %", justify="right")

    for i, row in enumerate(report["locks"][:top], 1):
        table.add_row(
            str(i),
            f"{row['lock']:#x}",
            row["name"] or "-",
            str(row["acquisitions"]),
            str(row["contended"]),
            str(row["total_hold"]),
            str(row["max_hold"]),
            str(row["total_wait"]),
            f"{row['serial_fraction'] * 100:.1f}",
        )

    console.print(table)
    if report["unmatched"]:
        console.print(f"Unmatched releases: {report['unmatched']}")
    if report["abandoned_waits"]:
        console.print(f"Abandoned lock waits: {report['abandoned_waits']}")


@app.command()
def scan(
    trace_dir: Path = typer.Argument(..., help="Directory holding the trace and vmlinux files"),
    trace_file: str = typer.Argument(..., help="Trace log file name inside TRACE_DIR"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write results as JSON"),
    top: Optional[int] = typer.Option(None, "--top", help="Rows per report table"),
):
    """Scan an mtrace log and report per-syscall and per-lock statistics."""
    overrides: dict[str, Any] = {}
    if log_level is not None:
        overrides["log_level"] = log_level
    if top is not None:
        overrides["top"] = top

    try:
        config = ScanConfig.from_yaml(config_path) if config_path else ScanConfig()
        if overrides:
            config = ScanConfig.from_dict({**config.to_dict(), **overrides})
    except (OSError, ValueError) as e:
        setup_logging("ERROR")
        logger.error(f"bad configuration: {e}")
        raise typer.Exit(code=1)

    setup_logging(config.log_level)

    try:
        result = run_scan(trace_dir, trace_file, config)
    except MscanError as e:
        logger.error(str(e))
        raise typer.Exit(code=1)

    reports = result["reports"]
    _render_summary(result)
    _render_syscalls(reports["distinct_syscalls"], reports["distinct_ops"], config.top)
    _render_locks(reports["serial_sections"], config.top)

    if output:
        payload = {k: v for k, v in result.items() if not k.startswith("_")}
        payload["config"] = config.to_dict()
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            json.dump(payload, f, indent=2)
        console.print(f"Results saved to {output}")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
