"""Output multiplexer: merges the line streams of many workers into the console.

Each worker stream is pumped by its own task. A line is written to the sink
as ``[<job id>] <line>`` in a single write, so lines from different workers
never interleave mid-line. Order is preserved per worker and per stream only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TextIO

__all__ = ["format_line", "pump_lines"]

logger = logging.getLogger(__name__)

# Chunk size used to discard the remainder of a stream after a read failure
_DISCARD_CHUNK = 64 * 1024


def format_line(job_id: int, raw: bytes) -> str:
    """Tag one raw line with its worker id.

    The line terminator (``\\n`` or ``\\r\\n``) is stripped; a trailing
    fragment without terminator is tagged the same way.
    """
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return f"[{job_id}] {raw.decode('utf-8', errors='replace')}\n"


async def pump_lines(
    job_id: int,
    stream: asyncio.StreamReader,
    sink: TextIO,
    *,
    name: str = "stdout",
) -> int:
    """Forward every line of ``stream`` to ``sink`` until the stream closes.

    A read failure is logged and stops forwarding for this stream; the rest
    of the stream is then discarded so the worker never blocks on a full pipe.

    Returns:
        Number of lines forwarded
    """
    forwarded = 0
    while True:
        try:
            raw = await stream.readline()
        except (OSError, ValueError) as e:
            logger.warning(f"Worker {job_id}: failed to read {name}, output dropped: {e}")
            await _discard(stream)
            break
        if not raw:
            break
        try:
            sink.write(format_line(job_id, raw))
            sink.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"Worker {job_id}: failed to forward {name}: {e}")
            await _discard(stream)
            break
        forwarded += 1

    logger.debug(f"Worker {job_id}: {name} closed after {forwarded} lines")
    return forwarded


async def _discard(stream: asyncio.StreamReader) -> None:
    while True:
        try:
            chunk = await stream.read(_DISCARD_CHUNK)
        except OSError:
            return
        if not chunk:
            return
