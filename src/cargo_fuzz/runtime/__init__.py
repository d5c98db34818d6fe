"""Runtime module: runs the fuzz target as one or many worker processes.

This module provides the worker pool (output multiplexing, exit race,
teardown) and the single-worker fast path.
"""

from __future__ import annotations

import sys
from typing import TextIO

import anyio

from .exit_race import ExitOutcome, ExitRaceResolver
from .fast_path import run_single, spawn_and_wait
from .pool import WorkerPool
from .process_runner import ProcessSpec, WorkerHandle, WorkerState

__all__ = [
    "ExitOutcome",
    "ExitRaceResolver",
    "ProcessSpec",
    "WorkerHandle",
    "WorkerPool",
    "WorkerState",
    "run_single",
    "run_workers",
    "spawn_and_wait",
]


def run_workers(
    spec: ProcessSpec,
    jobs: int,
    *,
    allow_exec: bool = True,
    term_timeout: float | None = None,
    stdout: TextIO | None = None,
) -> int:
    """Run ``jobs`` workers of ``spec`` and return the process exit code.

    For one job this is the worker's own exit status (when process
    replacement is used it does not return at all). For several jobs it is 0
    once the first worker has finished; the fuzzer reports its own findings.

    Raises:
        ValueError: If jobs < 1
        SpawnError, WaitError, PoolInterrupted: Orchestration failures
    """
    if jobs < 1:
        raise ValueError(f"0 jobs? (got {jobs})")
    if jobs == 1:
        return run_single(spec, allow_exec=allow_exec)

    pool = WorkerPool(spec, jobs, stdout=stdout)
    if term_timeout is not None:
        pool.term_timeout = term_timeout
    outcome = anyio.run(pool.run)
    out = stdout if stdout is not None else sys.stdout
    out.write(f"Worker {outcome.job_id} finished fuzzing\n")
    out.flush()
    return 0
