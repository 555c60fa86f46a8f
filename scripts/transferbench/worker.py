"""Worker process side of the benchmark message protocol.

Each worker process answers exactly one request received over a
``multiprocessing`` connection and then exits. Failures are reported as an
``ERROR`` message instead of propagating across the process boundary.
"""

from __future__ import annotations

import sys
import time
from multiprocessing import shared_memory
from typing import TYPE_CHECKING, Any

import numpy as np

from .models import (
    MSG_ERROR,
    MSG_PROCESS_AUDIO,
    MSG_PROCESS_SHARED_AUDIO,
    MSG_PROCESSING_COMPLETE,
    SENTINEL_VALUE,
)

if TYPE_CHECKING:
    from multiprocessing.connection import Connection


def attach_region(name: str) -> shared_memory.SharedMemory:
    """Attach to an existing shared memory region without taking ownership.

    Returns:
        The attached region; the coordinator stays responsible for unlinking it.
    """
    if sys.version_info >= (3, 13):
        return shared_memory.SharedMemory(name=name, track=False)
    return shared_memory.SharedMemory(name=name)


def process_audio(payload: np.ndarray) -> dict[str, Any]:
    """Build a result buffer of the payload's length filled with the sentinel.

    Returns:
        PROCESSING_COMPLETE message carrying the result buffer.
    """
    start = time.perf_counter()
    result = np.empty(len(payload), dtype=np.float32)
    result.fill(SENTINEL_VALUE)
    processing_time_ms = (time.perf_counter() - start) * 1000
    return {
        "type": MSG_PROCESSING_COMPLETE,
        "processing_time_ms": processing_time_ms,
        "result": result,
    }


def process_shared_audio(input_region: str, output_region: str, length: int) -> dict[str, Any]:
    """Write the sentinel into every element of the shared output region.

    The input region is attached so a missing region fails the request, but its
    contents are not read.

    Returns:
        PROCESSING_COMPLETE message without any buffer.
    """
    start = time.perf_counter()
    input_shm = attach_region(input_region)
    output_shm = attach_region(output_region)
    try:
        output = np.ndarray((length,), dtype=np.float32, buffer=output_shm.buf)
        output.fill(SENTINEL_VALUE)
        del output
    finally:
        output_shm.close()
        input_shm.close()
    processing_time_ms = (time.perf_counter() - start) * 1000
    return {"type": MSG_PROCESSING_COMPLETE, "processing_time_ms": processing_time_ms}


def handle_message(message: dict[str, Any]) -> dict[str, Any]:
    """Dispatch one request and build the reply.

    Returns:
        A PROCESSING_COMPLETE or ERROR message.
    """
    msg_type = message.get("type")
    try:
        if msg_type == MSG_PROCESS_AUDIO:
            return process_audio(message["payload"])
        if msg_type == MSG_PROCESS_SHARED_AUDIO:
            return process_shared_audio(
                message["input_region"], message["output_region"], int(message["length"])
            )
    except Exception as e:  # reported to the coordinator as a message
        return {"type": MSG_ERROR, "message": str(e) or type(e).__name__}
    return {"type": MSG_ERROR, "message": f"Unknown message type: {msg_type!r}"}


def run_worker(conn: Connection) -> None:
    """Process entry point: answer a single request, then close the connection."""
    try:
        message = conn.recv()
        conn.send(handle_message(message))
    finally:
        conn.close()
