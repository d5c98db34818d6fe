"""cargo-fuzz exception classes."""

from __future__ import annotations

from collections.abc import Sequence

__all__ = [
    "FuzzError",
    "ProjectError",
    "BuildError",
    "PoolError",
    "SpawnError",
    "WaitError",
    "PoolInterrupted",
]


class FuzzError(Exception):
    """Base class for every error reported to the user."""
    pass


class ProjectError(FuzzError):
    """Project discovery, manifest or template errors."""
    pass


class BuildError(FuzzError):
    """The fuzz target could not be built."""
    pass


class PoolError(FuzzError):
    """Worker pool failure.

    Attributes:
        job_id: Worker the failure is attributed to (None for the whole pool)
    """

    def __init__(self, message: str, job_id: int | None = None) -> None:
        self.job_id = job_id
        super().__init__(message)


class SpawnError(PoolError):
    """A worker could not be started; no worker of the pool is left running.

    Attributes:
        job_id: Index of the worker that failed to start
        argv: Command that was being started
    """

    def __init__(self, job_id: int, argv: Sequence[str]) -> None:
        self.argv = tuple(argv)
        super().__init__(f"could not spawn worker {job_id}: {self.argv[0]}", job_id)


class WaitError(PoolError):
    """Waiting on a worker failed; it was treated as the first to finish."""

    def __init__(self, job_id: int) -> None:
        super().__init__(f"could not wait for worker {job_id}", job_id)


class PoolInterrupted(PoolError):
    """The pool was stopped by a signal before any worker finished.

    Attributes:
        signum: Signal that stopped the pool
    """

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"interrupted by signal {signum}")

    @property
    def exit_code(self) -> int:
        return 128 + self.signum
