"""Worker pool orchestrator.

Runs N copies of the same ProcessSpec concurrently:
- every worker's stdout/stderr is multiplexed into the console, tagged with
  its job id
- the first worker to terminate decides the outcome; the others are stopped
- no worker process is left running when ``run`` returns or raises

All coordination happens on one event loop: spawning and exit waits use
asyncio subprocesses, the line pumps run in an anyio task group.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TextIO

import anyio

from ..errors import PoolError, PoolInterrupted, SpawnError, WaitError
from .exit_race import ExitOutcome, ExitRaceResolver
from .multiplexer import pump_lines
from .process_runner import ProcessSpec, WorkerHandle, WorkerState, spawn_worker
from .signals import StopSignalForwarder

__all__ = ["WorkerPool"]

logger = logging.getLogger(__name__)

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after the termination request
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after a forced kill
DEFAULT_DRAIN_TIMEOUT = 1.0  # seconds to flush buffered output after teardown


@dataclass
class WorkerPool:
    """Fixed-size pool of workers sharing one ProcessSpec.

    Example:
        pool = WorkerPool(spec, jobs=4)
        outcome = await pool.run()
        print(f"Worker {outcome.job_id} finished fuzzing")

    Attributes:
        spec: Template every worker is started from
        jobs: Number of workers (>= 1), fixed for the pool's lifetime
        term_timeout: Grace period before a stopped worker is force-killed
        kill_timeout: Time to wait for a force-killed worker to be reaped
        drain_timeout: Time left to the output pumps once all workers are reaped
        stdout: Sink for tagged stdout lines (None = sys.stdout at run time)
        stderr: Sink for tagged stderr lines (None = sys.stderr at run time)
        handle_signals: Turn SIGINT/SIGTERM into a forced stop of the pool
    """

    spec: ProcessSpec
    jobs: int
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    stdout: TextIO | None = None
    stderr: TextIO | None = None
    handle_signals: bool = True
    resolver: ExitRaceResolver = field(default_factory=ExitRaceResolver)

    def __post_init__(self) -> None:
        if self.jobs < 1:
            raise ValueError(f"a worker pool needs at least one job, got {self.jobs}")

    async def run(self) -> ExitOutcome:
        """Spawn all workers and resolve the first one to finish.

        Returns:
            Outcome of the worker that terminated first

        Raises:
            SpawnError: A worker could not be started
            WaitError: Waiting on the first finished worker failed
            PoolInterrupted: A stop signal arrived before any worker finished
        """
        workers = await self._spawn_all()
        stdout = self.stdout if self.stdout is not None else sys.stdout
        stderr = self.stderr if self.stderr is not None else sys.stderr
        outcome: ExitOutcome | None = None
        forwarder: StopSignalForwarder | None = None

        try:
            async with anyio.create_task_group() as tg:
                if self.handle_signals:
                    forwarder = self._install_signal_forwarder(tg.cancel_scope)

                for worker in workers:
                    if worker.stdout is not None:
                        tg.start_soon(
                            functools.partial(pump_lines, worker.job_id, worker.stdout, stdout, name="stdout")
                        )
                    if worker.stderr is not None:
                        tg.start_soon(
                            functools.partial(pump_lines, worker.job_id, worker.stderr, stderr, name="stderr")
                        )

                try:
                    outcome = await self.resolver.resolve(workers)
                finally:
                    with anyio.CancelScope(shield=True):
                        await self._teardown(workers)

                # Streams hit EOF once every worker is reaped; bound the flush
                # in case an escaped grandchild still holds a pipe open.
                tg.cancel_scope.deadline = anyio.current_time() + self.drain_timeout
        finally:
            if forwarder is not None:
                forwarder.stop()

        if outcome is None:
            signum = forwarder.received if forwarder is not None else None
            if signum is not None:
                raise PoolInterrupted(signum)
            raise PoolError("worker pool stopped before any worker finished")

        if outcome.failed:
            raise WaitError(outcome.job_id) from outcome.error
        return outcome

    async def _spawn_worker(self, job_id: int) -> WorkerHandle:
        return await spawn_worker(job_id, self.spec)

    async def _spawn_all(self) -> list[WorkerHandle]:
        """Spawn every worker, or none: a failure kills the ones already started."""
        workers: list[WorkerHandle] = []
        for job_id in range(self.jobs):
            try:
                workers.append(await self._spawn_worker(job_id))
            except BaseException as e:
                logger.debug(f"Spawning worker {job_id} failed, killing {len(workers)} started: {e!r}")
                with anyio.CancelScope(shield=True):
                    await asyncio.gather(*(self._kill(w) for w in workers))
                if isinstance(e, Exception):
                    raise SpawnError(job_id, self.spec.argv) from e
                raise
        logger.debug(f"Spawned {len(workers)} workers: {self.spec.display()}")
        return workers

    def _install_signal_forwarder(self, scope: anyio.CancelScope) -> StopSignalForwarder | None:
        forwarder = StopSignalForwarder(on_stop=lambda signum: scope.cancel())
        try:
            forwarder.start()
        except (RuntimeError, ValueError, NotImplementedError) as e:
            # Not on the main thread, or the loop has no signal support
            logger.debug(f"Stop signals not forwarded: {e}")
            return None
        return forwarder

    async def _teardown(self, workers: Sequence[WorkerHandle]) -> None:
        await asyncio.gather(*(self._stop(w) for w in workers))

    async def _stop(self, worker: WorkerHandle) -> None:
        """Terminate gracefully, then forcefully if needed, and reap."""
        if worker.state is WorkerState.RUNNING:
            worker.terminate()
            try:
                await asyncio.wait_for(worker.wait(), timeout=self.term_timeout)
                return
            except asyncio.TimeoutError:
                logger.debug(f"Worker {worker.job_id} ignored termination, force killing")
            except OSError as e:
                logger.debug(f"Waiting for worker {worker.job_id} failed: {e}")
        await self._kill(worker)

    async def _kill(self, worker: WorkerHandle) -> None:
        worker.kill()
        try:
            await asyncio.wait_for(worker.wait(), timeout=self.kill_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Worker {worker.job_id} did not exit after kill pid={worker.pid}")
        except OSError as e:
            logger.debug(f"Waiting for killed worker {worker.job_id} failed: {e}")
