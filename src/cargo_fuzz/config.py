"""cargo-fuzz environment configuration.

Environment variables:
    CARGO_FUZZ_LOG_DEBUG: debug logging
        - true/1/yes/on = on (DEBUG logs written to a temp file)
        - false/0/no/off = off (default, WARNING logs to stderr)

    CARGO_FUZZ_NO_EXEC: disable process replacement for single-job runs
        - true = always spawn the fuzzer and wait for it
        - false = replace the cargo-fuzz process where supported (default)

    CARGO_FUZZ_MAX_JOBS: upper bound for --jobs on this host
        - 0/unset = 65535 (default), larger values are capped at 65535

    CARGO_FUZZ_TERM_TIMEOUT: seconds a stopped worker gets before it is killed
        - default 2.0, clamped to 0.1-60

    CARGO_FUZZ_COLOR: colored messages
        - auto = only when the stream is a terminal (default)
        - always / never
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["ColorMode", "Config", "get_config", "load_config", "reload_config"]

# Hard bound on --jobs, the range of an unsigned 16-bit count
MAX_JOBS = 65535


class ColorMode(Enum):
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"

    @classmethod
    def from_string(cls, value: str) -> "ColorMode":
        """Parse a mode; unknown values fall back to AUTO."""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.AUTO


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_max_jobs(value: str | None) -> int:
    if not value:
        return MAX_JOBS
    try:
        jobs = int(value)
    except ValueError:
        return MAX_JOBS
    if jobs <= 0:
        return MAX_JOBS
    return min(jobs, MAX_JOBS)


def _parse_term_timeout(value: str | None) -> float:
    if not value:
        return 2.0
    try:
        timeout = float(value)
        return max(0.1, min(timeout, 60.0))
    except ValueError:
        return 2.0


def _generate_log_file_path() -> str:
    log_dir = Path(tempfile.gettempdir()) / "cargo-fuzz"
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return str((log_dir / f"cargo_fuzz_debug_{timestamp}.log").resolve())


@dataclass
class Config:
    """cargo-fuzz configuration.

    Attributes:
        log_debug: Write DEBUG logs to log_file instead of warnings to stderr
        log_file: Debug log path (set automatically when log_debug is on)
        allow_exec: Replace the process for single-job runs
        max_jobs: Largest accepted --jobs value
        term_timeout: Grace period for stopped workers (seconds)
        color: Colored message mode
    """

    log_debug: bool = False
    log_file: str | None = None
    allow_exec: bool = True
    max_jobs: int = MAX_JOBS
    term_timeout: float = 2.0
    color: ColorMode = ColorMode.AUTO


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("CARGO_FUZZ_LOG_DEBUG"), default=False)

    return Config(
        log_debug=log_debug,
        log_file=_generate_log_file_path() if log_debug else None,
        allow_exec=not _parse_bool(os.environ.get("CARGO_FUZZ_NO_EXEC"), default=False),
        max_jobs=_parse_max_jobs(os.environ.get("CARGO_FUZZ_MAX_JOBS")),
        term_timeout=_parse_term_timeout(os.environ.get("CARGO_FUZZ_TERM_TIMEOUT")),
        color=ColorMode.from_string(os.environ.get("CARGO_FUZZ_COLOR", "auto")),
    )


# Global instance, loaded lazily
_config: Config | None = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
