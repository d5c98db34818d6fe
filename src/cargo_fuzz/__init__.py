"""cargo-fuzz - drive libFuzzer targets of a cargo project.

Environment variables:
    CARGO_FUZZ_LOG_DEBUG: debug logging to a temp file (default false)
    CARGO_FUZZ_NO_EXEC: never replace the process for single-job runs
    CARGO_FUZZ_MAX_JOBS: upper bound for --jobs
    CARGO_FUZZ_TERM_TIMEOUT: grace period for stopped workers (default 2.0s)
    CARGO_FUZZ_COLOR: auto/always/never

Usage:
    cargo fuzz run <target> -j 4 -- -max_len=128
"""

__version__ = "0.4.0"

from .app import main

__all__ = ["__version__", "main"]
