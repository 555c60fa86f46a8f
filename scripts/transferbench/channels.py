"""Worker channels for the two buffer hand-over strategies.

A channel owns one worker process for exactly one request/response exchange.
TransferChannel sends the sample buffer itself; SharedChannel places it in
shared memory and sends only region names. Channels must be closed on every
exit path, which terminates the worker and releases any shared regions.
"""

from __future__ import annotations

import asyncio
import multiprocessing as mp
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from multiprocessing import shared_memory
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np

from .errors import CapabilityUnavailable, UnitReportedError, WorkerTimeout
from .logger import logger
from .models import (
    MSG_ERROR,
    MSG_PROCESS_AUDIO,
    MSG_PROCESS_SHARED_AUDIO,
    MSG_PROCESSING_COMPLETE,
    SHARED_TIMEOUT_SECONDS,
    TRANSFER_TIMEOUT_SECONDS,
    Strategy,
)
from .worker import run_worker

if TYPE_CHECKING:
    from collections.abc import Callable
    from multiprocessing.connection import Connection
    from multiprocessing.process import BaseProcess

    from .sample_generator import SamplePayload

POLL_INTERVAL_SECONDS = 0.05
JOIN_TIMEOUT_SECONDS = 2.0


def shared_memory_supported() -> bool:
    """Check whether shared memory regions can be created on this host.

    Returns:
        True if a 1-byte region could be created and unlinked.
    """
    try:
        probe = shared_memory.SharedMemory(create=True, size=1)
    except OSError as e:
        logger.warning("⚠️ Shared memory is not available: %s", e)
        return False
    probe.close()
    probe.unlink()
    return True


@dataclass
class ChannelReply:
    """Outcome of one exchange.

    For SharedChannel ``result`` is a view of the output region and is only
    valid until the channel is closed.
    """

    total_time_ms: float
    processing_time_ms: float
    result: np.ndarray


class WorkerChannel(ABC):
    """Base class handling the worker process lifecycle and message exchange."""

    strategy: ClassVar[Strategy]

    def __init__(
        self,
        timeout: float | None,
        start_method: str = "spawn",
        target: Callable[[Connection], None] = run_worker,
    ) -> None:
        """Initialise the channel without starting a worker.

        Args:
            timeout: Seconds to wait for the reply; None waits indefinitely.
            start_method: multiprocessing start method for the worker.
            target: Worker entry point receiving the child end of the pipe.
        """
        self.timeout = timeout
        self.start_method = start_method
        self.target = target
        self._process: BaseProcess | None = None
        self._conn: Connection | None = None
        self._closing = threading.Event()
        self._used = False

    @property
    def worker_process(self) -> BaseProcess | None:
        """Worker process, once started."""
        return self._process

    def open(self) -> None:
        """Start the worker process.

        Raises:
            RuntimeError: If the channel was already opened.
        """
        if self._process is not None:
            msg = "Channel already has a worker process"
            raise RuntimeError(msg)
        ctx = mp.get_context(self.start_method)
        parent_conn, child_conn = ctx.Pipe()
        process = ctx.Process(target=self.target, args=(child_conn,), daemon=True)
        process.start()
        # Only the worker holds the child end, so its exit shows up as EOF
        child_conn.close()
        self._process = process
        self._conn = parent_conn
        logger.debug("🧵 Started %s worker (pid %s)", self.strategy.value, process.pid)

    def _round_trip(self, message: dict[str, Any]) -> tuple[dict[str, Any], float]:
        """Send ``message`` and block until the reply, the worker's exit or close().

        Runs in a helper thread.

        Returns:
            The reply message and the elapsed time in milliseconds.

        Raises:
            UnitReportedError: If the worker exits or the channel closes first.
        """
        conn = self._conn
        process = self._process
        if conn is None or process is None:
            msg = "Channel is not open"
            raise RuntimeError(msg)

        start = time.perf_counter()
        try:
            conn.send(message)
            while not conn.poll(POLL_INTERVAL_SECONDS):
                if self._closing.is_set():
                    msg = "Channel closed before the worker replied"
                    raise UnitReportedError(msg, self.strategy)
                if not process.is_alive() and not conn.poll(0):
                    msg = f"Worker process exited with code {process.exitcode} before replying"
                    raise UnitReportedError(msg, self.strategy)
            reply = conn.recv()
        except (EOFError, OSError) as e:
            msg = f"Lost connection to worker process: {e or type(e).__name__}"
            raise UnitReportedError(msg, self.strategy) from e
        elapsed_ms = (time.perf_counter() - start) * 1000
        return reply, elapsed_ms

    async def _exchange(self, message: dict[str, Any]) -> tuple[dict[str, Any], float]:
        """Run the round trip off the event loop, bounded by the timeout.

        Returns:
            The PROCESSING_COMPLETE reply and the round trip time in milliseconds.

        Raises:
            WorkerTimeout: If no reply arrived in time; the worker is terminated.
            UnitReportedError: If the worker answered with an ERROR message.
        """
        if self._used:
            msg = "A channel serves a single exchange"
            raise RuntimeError(msg)
        self._used = True
        if self._process is None:
            self.open()

        try:
            reply, elapsed_ms = await asyncio.wait_for(
                asyncio.to_thread(self._round_trip, message), timeout=self.timeout
            )
        except TimeoutError as e:
            logger.error(
                "⏱️ %s worker timed out after %.1f seconds", self.strategy.value, self.timeout
            )
            self.terminate_worker()
            msg = f"{self.strategy.value} worker timed out after {self.timeout} seconds"
            raise WorkerTimeout(msg, self.strategy) from e

        reply_type = reply.get("type")
        if reply_type == MSG_ERROR:
            raise UnitReportedError(str(reply.get("message", "")), self.strategy)
        if reply_type != MSG_PROCESSING_COMPLETE:
            msg = f"Unexpected reply type from worker: {reply_type!r}"
            raise UnitReportedError(msg, self.strategy)
        return reply, elapsed_ms

    @abstractmethod
    async def process(self, payload: SamplePayload) -> ChannelReply:
        """Hand ``payload`` to the worker and wait for the processed buffer."""

    def terminate_worker(self) -> None:
        """Stop the worker process if it is still running. Safe to call repeatedly."""
        self._closing.set()
        process = self._process
        if process is not None:
            if process.is_alive():
                process.terminate()
                process.join(JOIN_TIMEOUT_SECONDS)
                if process.is_alive():
                    logger.warning("⚠️ Worker %s ignored terminate, killing it", process.pid)
                    process.kill()
            process.join()
            process.close()
            self._process = None

    def close(self) -> None:
        """Terminate the worker and release the pipe. Safe to call repeatedly."""
        self.terminate_worker()
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> WorkerChannel:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class TransferChannel(WorkerChannel):
    """Sends the payload buffer with the request and receives a new buffer back."""

    strategy = Strategy.TRANSFER

    def __init__(
        self,
        timeout: float | None = TRANSFER_TIMEOUT_SECONDS,
        start_method: str = "spawn",
        target: Callable[[Connection], None] = run_worker,
    ) -> None:
        """Initialise a transfer channel; the default timeout is TRANSFER_TIMEOUT_SECONDS."""
        super().__init__(timeout, start_method, target)

    async def process(self, payload: SamplePayload) -> ChannelReply:
        """Release ``payload`` to the worker and wait for the result buffer.

        Returns:
            ChannelReply owning the worker's result buffer.

        Raises:
            UnitReportedError: If the reply carries no result buffer.
        """
        samples = payload.release()
        message = {"type": MSG_PROCESS_AUDIO, "payload": samples}
        del samples
        reply, total_time_ms = await self._exchange(message)

        result = reply.get("result")
        if result is None:
            msg = "Worker reply is missing the result buffer"
            raise UnitReportedError(msg, self.strategy)
        return ChannelReply(
            total_time_ms=total_time_ms,
            processing_time_ms=float(reply["processing_time_ms"]),
            result=np.asarray(result, dtype=np.float32),
        )


class SharedChannel(WorkerChannel):
    """Shares input and output regions with the worker and sends only their names."""

    strategy = Strategy.SHARED

    def __init__(
        self,
        timeout: float | None = SHARED_TIMEOUT_SECONDS,
        start_method: str = "spawn",
        target: Callable[[Connection], None] = run_worker,
    ) -> None:
        """Initialise a shared channel; the default timeout is SHARED_TIMEOUT_SECONDS."""
        super().__init__(timeout, start_method, target)
        self._regions: list[shared_memory.SharedMemory] = []

    def _allocate(self, nbytes: int) -> shared_memory.SharedMemory:
        try:
            region = shared_memory.SharedMemory(create=True, size=max(nbytes, 1))
        except OSError as e:
            msg = f"Could not allocate a shared region of {nbytes} bytes: {e}"
            raise CapabilityUnavailable(msg) from e
        self._regions.append(region)
        return region

    async def process(self, payload: SamplePayload) -> ChannelReply:
        """Copy ``payload`` into the input region and wait for the worker to fill the output.

        Returns:
            ChannelReply whose result views the output region.

        Raises:
            CapabilityUnavailable: If the regions cannot be allocated.
        """
        length = len(payload)
        input_region = self._allocate(payload.nbytes)
        output_region = self._allocate(payload.nbytes)

        input_view = np.ndarray((length,), dtype=np.float32, buffer=input_region.buf)
        input_view[:] = payload.samples
        del input_view
        output_view = np.ndarray((length,), dtype=np.float32, buffer=output_region.buf)
        output_view.fill(0.0)

        try:
            reply, total_time_ms = await self._exchange({
                "type": MSG_PROCESS_SHARED_AUDIO,
                "input_region": input_region.name,
                "output_region": output_region.name,
                "length": length,
            })
        except BaseException:
            # Drop the view so close() can release the region
            del output_view
            raise
        return ChannelReply(
            total_time_ms=total_time_ms,
            processing_time_ms=float(reply["processing_time_ms"]),
            result=output_view,
        )

    def close(self) -> None:
        """Terminate the worker, then unlink and close both shared regions."""
        super().close()
        regions, self._regions = self._regions, []
        for region in regions:
            try:
                region.unlink()
            except FileNotFoundError:
                logger.debug("Shared region %s was already unlinked", region.name)
            try:
                region.close()
            except BufferError:
                # A result view is still alive; the mapping goes away with it
                logger.debug("Shared region %s still has live views", region.name)


def make_channel(
    strategy: Strategy,
    shared_timeout: float | None = SHARED_TIMEOUT_SECONDS,
    transfer_timeout: float | None = TRANSFER_TIMEOUT_SECONDS,
    start_method: str = "spawn",
) -> WorkerChannel:
    """Create an unopened channel for ``strategy``.

    Returns:
        TransferChannel or SharedChannel.
    """
    if strategy is Strategy.SHARED:
        return SharedChannel(timeout=shared_timeout, start_method=start_method)
    return TransferChannel(timeout=transfer_timeout, start_method=start_method)
