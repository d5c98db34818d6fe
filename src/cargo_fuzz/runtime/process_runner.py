"""Worker process primitives: spawn specification, handles and termination.

This module provides:
- ProcessSpec: the immutable command/args/env template shared by every worker
- WorkerHandle: one spawned worker process and its lifecycle state
- Cross-platform process group isolation and best-effort termination

Key design points:
- POSIX: start_new_session=True so a worker and its children share a group
- Windows: CREATE_NEW_PROCESS_GROUP for signal isolation
- Termination targets the process group, not just the main process
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

__all__ = [
    "IS_WINDOWS",
    "ProcessSpec",
    "WorkerHandle",
    "WorkerState",
    "spawn_worker",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Upper bound for a single output line kept in a worker's stream buffer
STREAM_LINE_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for one worker invocation.

    Attributes:
        argv: Command line arguments (first element is the executable)
        env: Environment overrides merged on top of the inherited environment
        cwd: Working directory for the process (None = inherit)
    """

    argv: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    cwd: Path | None = None

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("ProcessSpec.argv must not be empty")
        # Freeze caller-owned containers so every worker sees the same template
        object.__setattr__(self, "argv", tuple(os.fspath(a) for a in self.argv))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def program(self) -> str:
        return self.argv[0]

    def merged_env(self) -> dict[str, str]:
        """Inherited environment with this spec's overrides applied."""
        env = dict(os.environ)
        env.update(self.env)
        return env

    def display(self) -> str:
        """Render the command the way a user would type it."""
        prefix = " ".join(f"{k}={v}" for k, v in sorted(self.env.items()))
        command = subprocess.list2cmdline(self.argv) if IS_WINDOWS else " ".join(
            _shell_quote(a) for a in self.argv
        )
        return f"{prefix} {command}" if prefix else command


def _shell_quote(arg: str) -> str:
    if arg and all(c.isalnum() or c in "-_./=:,+@%" for c in arg):
        return arg
    return "'" + arg.replace("'", "'\"'\"'") + "'"


class WorkerState(Enum):
    RUNNING = "running"
    EXITED = "exited"


class WorkerHandle:
    """One spawned worker process.

    The handle starts RUNNING and becomes EXITED once the process has been
    reaped; it never returns to RUNNING. While running, the stdout/stderr
    streams are read by the output multiplexer.
    """

    def __init__(self, job_id: int, process: asyncio.subprocess.Process) -> None:
        self.job_id = job_id
        self.process = process

    def __repr__(self) -> str:
        return (
            f"WorkerHandle(job_id={self.job_id}, pid={self.pid}, "
            f"state={self.state.value}, returncode={self.returncode})"
        )

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def state(self) -> WorkerState:
        if self.process.returncode is None:
            return WorkerState.RUNNING
        return WorkerState.EXITED

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self.process.stderr

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit status."""
        returncode = await self.process.wait()
        logger.debug(f"Worker {self.job_id} exited pid={self.pid} returncode={returncode}")
        return returncode

    def terminate(self) -> None:
        """Ask the worker's process group to stop.

        Best effort and idempotent: a worker that has already exited, or a
        signal that cannot be delivered, is not an error.
        """
        self._signal(graceful=True)

    def kill(self) -> None:
        """Force-kill the worker's process group. Best effort and idempotent."""
        self._signal(graceful=False)

    def _signal(self, graceful: bool) -> None:
        if self.process.returncode is not None:
            return
        try:
            if IS_WINDOWS:
                _windows_signal(self.process, graceful)
            else:
                _posix_signal(self.process, graceful)
        except ProcessLookupError:
            logger.debug(f"Worker {self.job_id} already gone pid={self.pid}")
        except OSError as e:
            logger.debug(f"Could not signal worker {self.job_id} pid={self.pid}: {e}")


def _posix_signal(process: asyncio.subprocess.Process, graceful: bool) -> None:
    """Signal the process group on POSIX systems, falling back to the process."""
    signum = signal.SIGTERM if graceful else signal.SIGKILL
    try:
        # Group id equals the pid because of start_new_session
        pgid = os.getpgid(process.pid)
        os.killpg(pgid, signum)
        logger.debug(f"Sent {signal.Signals(signum).name} to process group pgid={pgid}")
    except ProcessLookupError:
        raise
    except OSError as e:
        logger.debug(f"killpg failed, falling back to the process itself: {e}")
        process.send_signal(signum)


def _windows_signal(process: asyncio.subprocess.Process, graceful: bool) -> None:
    if graceful:
        try:
            # Works because of CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
            return
        except OSError as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
    process.kill()


def build_subprocess_kwargs(spec: ProcessSpec, *, isolate: bool = True) -> dict[str, Any]:
    """Build platform-specific subprocess kwargs.

    Args:
        spec: Process specification
        isolate: Start the process in its own session/process group

    Returns:
        Dict of kwargs for subprocess / asyncio.create_subprocess_exec
    """
    kwargs: dict[str, Any] = {"env": spec.merged_env()}

    if spec.cwd is not None:
        kwargs["cwd"] = spec.cwd

    if isolate:
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # POSIX: equivalent to setsid
            kwargs["start_new_session"] = True

    return kwargs


async def spawn_worker(job_id: int, spec: ProcessSpec) -> WorkerHandle:
    """Start one worker with stdin inherited and stdout/stderr piped.

    Raises:
        OSError: If the process cannot be started
    """
    process = await asyncio.create_subprocess_exec(
        *spec.argv,
        stdin=None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        limit=STREAM_LINE_LIMIT,
        **build_subprocess_kwargs(spec),
    )
    logger.debug(f"Started worker {job_id} pid={process.pid} argv={spec.program}")
    return WorkerHandle(job_id, process)
