"""Source-line resolution through a persistent ``addr2line`` process."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from loguru import logger


@dataclass(frozen=True)
class SourceLocation:
    """Where a program counter lives in the source."""

    function: str
    file: Optional[str] = None
    line: Optional[int] = None

    def __str__(self) -> str:
        if self.file is None:
            return self.function
        if self.line is None:
            return f"{self.function} ({self.file})"
        return f"{self.function} ({self.file}:{self.line})"


def parse_location(function: str, location: str) -> Optional[SourceLocation]:
    """Parse the two lines ``addr2line -f`` prints per address.

    Returns None when addr2line knows nothing about the address.
    """
    function = function.strip()
    location = location.strip()
    # "file:line (discriminator N)"
    location = location.split(" (discriminator", 1)[0]

    file, _, line_str = location.rpartition(":")
    if not file:
        file, line_str = location, ""

    has_function = function not in ("", "??")
    has_file = file not in ("", "??")
    if not has_function and not has_file:
        return None

    line: Optional[int] = None
    if line_str.isdigit() and int(line_str) > 0:
        line = int(line_str)

    return SourceLocation(
        function=function if has_function else "??",
        file=file if has_file else None,
        line=line,
    )


class Addr2line:
    """One long-lived ``addr2line -f -e <elf>`` process.

    The process starts on the first query, so constructing an instance is
    cheap and needs no binutils. Answers are cached per address.

    Args:
        elf_path: Debug binary (usually ``vmlinux``)
        binary: addr2line executable
    """

    def __init__(self, elf_path: Union[str, Path], binary: str = "addr2line"):
        self.elf_path = Path(elf_path)
        self.binary = binary
        self._proc: Optional[subprocess.Popen] = None
        self._cache: dict[int, Optional[SourceLocation]] = {}

    def _start(self) -> subprocess.Popen:
        if self._proc is None:
            cmd = [self.binary, "-f", "-e", str(self.elf_path)]
            logger.debug(f"Starting {' '.join(cmd)}")
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        return self._proc

    def resolve(self, pc: int) -> Optional[SourceLocation]:
        """Resolve ``pc`` to a source location.

        Raises:
            FileNotFoundError: If the addr2line executable does not exist
            RuntimeError: If addr2line exits while answering
        """
        if pc in self._cache:
            return self._cache[pc]

        proc = self._start()
        assert proc.stdin is not None and proc.stdout is not None
        try:
            proc.stdin.write(f"{pc:#x}\n")
            proc.stdin.flush()
        except BrokenPipeError as e:
            raise RuntimeError(f"{self.binary} exited while resolving {pc:#x}") from e

        function = proc.stdout.readline()
        location = proc.stdout.readline()
        if not function or not location:
            raise RuntimeError(f"{self.binary} exited while resolving {pc:#x}")

        result = parse_location(function, location)
        self._cache[pc] = result
        return result

    def close(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        if proc.stdin:
            try:
                proc.stdin.close()
            except BrokenPipeError:
                # Already exited; its status is collected below
                pass
        try:
            proc.wait(timeout=1)
        except subprocess.TimeoutExpired:
            proc.terminate()
            proc.wait()
        if proc.stdout:
            proc.stdout.close()

    def __enter__(self) -> "Addr2line":
        return self

    def __exit__(self, *args) -> None:
        self.close()
