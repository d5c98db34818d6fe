"""Exit race resolver: first worker to terminate wins, the rest are stopped.

Every worker exit is awaited as its own task and the first task to finish
decides the pool's outcome. A failed wait counts as that worker winning.
Termination of the losers is requested but not awaited here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

__all__ = ["ExitOutcome", "ExitRaceResolver", "RaceWorker"]

logger = logging.getLogger(__name__)


class RaceWorker(Protocol):
    """What the resolver needs from a worker handle."""

    job_id: int

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...


@dataclass(frozen=True)
class ExitOutcome:
    """Terminal result of a pool.

    Attributes:
        job_id: Worker that finished first
        returncode: The worker's own exit status (None when the wait failed)
        error: Orchestration-level failure while waiting on the worker
    """

    job_id: int
    returncode: int | None = None
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class ExitRaceResolver:
    """Resolve the first worker exit and request termination of the others.

    Example:
        resolver = ExitRaceResolver()
        outcome = await resolver.resolve(workers)
        print(f"Worker {outcome.job_id} finished fuzzing")
    """

    async def resolve(self, workers: Sequence[RaceWorker]) -> ExitOutcome:
        if not workers:
            raise ValueError("cannot race an empty worker set")

        waits: dict[asyncio.Task[int], RaceWorker] = {
            asyncio.create_task(w.wait(), name=f"wait-worker-{w.job_id}"): w
            for w in workers
        }
        try:
            done, _ = await asyncio.wait(waits, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            for task in waits:
                task.cancel()
            raise

        # Ties resolve to whichever exit the wait reported first; among tasks
        # completed in the same iteration the lowest job id is taken.
        winner_task = min(done, key=lambda t: waits[t].job_id)
        winner = waits[winner_task]
        outcome = _outcome_of(winner, winner_task)

        for task, worker in waits.items():
            if worker is winner:
                continue
            if not task.done():
                task.cancel()
            elif not task.cancelled():
                # Near-simultaneous exit; retrieved so it is not reported as lost
                task.exception()
            _request_stop(worker)

        if outcome.failed:
            logger.debug(f"Worker {winner.job_id} wait failed: {outcome.error!r}")
        else:
            logger.debug(f"Worker {winner.job_id} won the exit race returncode={outcome.returncode}")
        return outcome


def _outcome_of(worker: RaceWorker, task: asyncio.Task[int]) -> ExitOutcome:
    error = task.exception()
    if error is not None:
        return ExitOutcome(job_id=worker.job_id, error=error)
    return ExitOutcome(job_id=worker.job_id, returncode=task.result())


def _request_stop(worker: RaceWorker) -> None:
    # Cleanup after the pool already has a winner; never escalated.
    try:
        worker.terminate()
    except Exception as e:
        logger.debug(f"Ignoring failure to stop worker {worker.job_id}: {e}")
