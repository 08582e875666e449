"""Configuration for mscan runs."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Union

import yaml


_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class ScanConfig:
    """Settings for a single scan.

    Attributes:
        max_cpus: Number of per-CPU slots in the process state
        cache_line_bits: log2 of the cache line size used by the analyses
        addr2line: addr2line executable used for source resolution
        symbols_name: Symbol table file name inside the trace directory
        elf_name: Debug binary file name inside the trace directory
        progress_interval: Log progress every N records
        top: Rows shown per report table
        log_level: loguru level name
    """

    max_cpus: int = 256
    cache_line_bits: int = 6  # 64-byte lines
    addr2line: str = "addr2line"
    symbols_name: str = "vmlinux.syms"
    elf_name: str = "vmlinux"
    progress_interval: int = 1_000_000
    top: int = 20
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration."""
        if self.max_cpus <= 0:
            raise ValueError(f"max_cpus must be positive, got {self.max_cpus}")
        if not 0 <= self.cache_line_bits < 64:
            raise ValueError(f"cache_line_bits must be in [0, 64), got {self.cache_line_bits}")
        if self.progress_interval <= 0:
            raise ValueError(f"progress_interval must be positive, got {self.progress_interval}")
        if self.top <= 0:
            raise ValueError(f"top must be positive, got {self.top}")
        self.log_level = self.log_level.upper()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanConfig":
        """Build a configuration, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ScanConfig":
        """Load configuration from a YAML file.

        Args:
            path: Path to a YAML mapping of config keys

        Returns:
            ScanConfig instance
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}
