"""Single-worker fast path.

With one job there is nothing to multiplex: on POSIX the current process is
replaced by the worker so signals, standard streams and the exit status reach
the user untouched. Elsewhere (or when replacement is disabled) the worker is
spawned in the foreground and its exit status passed straight through.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from typing import NoReturn

from ..errors import SpawnError
from .process_runner import IS_WINDOWS, ProcessSpec

__all__ = [
    "CAN_EXEC",
    "exec_worker",
    "exit_code_of",
    "run_single",
    "spawn_and_wait",
]

logger = logging.getLogger(__name__)

# Process replacement that keeps the pid, streams and signal disposition
CAN_EXEC = not IS_WINDOWS and hasattr(os, "execvpe")


def exit_code_of(returncode: int) -> int:
    """Map a returncode to a shell exit status (signal deaths become 128+N)."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def exec_worker(spec: ProcessSpec) -> NoReturn:
    """Replace the current process with the worker.

    Raises:
        OSError: If the program cannot be executed (the process is unchanged)
    """
    logger.debug(f"Replacing process with worker: {spec.display()}")
    for stream in (sys.stdout, sys.stderr):
        stream.flush()
    previous_cwd = os.getcwd()
    if spec.cwd is not None:
        os.chdir(spec.cwd)
    try:
        os.execvpe(spec.program, list(spec.argv), spec.merged_env())
    except OSError:
        os.chdir(previous_cwd)
        raise
    raise AssertionError("execvpe returned")  # pragma: no cover


def spawn_and_wait(spec: ProcessSpec) -> int:
    """Run the worker in the foreground with inherited streams.

    Returns:
        The worker's exit status

    Raises:
        OSError: If the program cannot be started
    """
    logger.debug(f"Running in foreground: {spec.display()}")
    for stream in (sys.stdout, sys.stderr):
        stream.flush()
    completed = subprocess.run(list(spec.argv), cwd=spec.cwd, env=spec.merged_env())
    logger.debug(f"Foreground process exited returncode={completed.returncode}")
    return exit_code_of(completed.returncode)


def run_single(spec: ProcessSpec, *, allow_exec: bool = True) -> int:
    """Run exactly one worker without any tagging.

    Only returns when process replacement is unavailable or disabled.

    Raises:
        SpawnError: If the worker cannot be started
    """
    try:
        if allow_exec and CAN_EXEC:
            exec_worker(spec)
        return spawn_and_wait(spec)
    except OSError as e:
        raise SpawnError(0, spec.argv) from e
