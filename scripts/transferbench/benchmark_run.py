"""Single measured worker invocation.

This module provides the BenchmarkRun class, which generates a payload, pushes
it through one channel, verifies the returned buffer and turns the timings into
a RunResult.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .channels import make_channel, shared_memory_supported
from .errors import BenchmarkRunError, CapabilityUnavailable
from .logger import logger
from .models import DEFAULT_SAMPLE_RATE, RunResult, Strategy
from .sample_generator import SampleGenerator
from .verification import verify_buffer

if TYPE_CHECKING:
    from collections.abc import Callable

    from .channels import WorkerChannel

    ChannelFactory = Callable[[Strategy], WorkerChannel]
    StatusCallback = Callable[[str], None]


class BenchmarkRun:
    """Executes measured round trips for a fixed payload configuration.

    One channel, and therefore one worker process, is opened per call and is
    always closed before the call returns or raises.
    """

    def __init__(
        self,
        payload_duration_seconds: float,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channel_factory: ChannelFactory | None = None,
        shared_supported: bool | None = None,
        verification_seed: int | None = None,
        total_runs: int | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        """Initialise the runner.

        Args:
            payload_duration_seconds: Duration of the generated payload
            sample_rate: Samples per second of the payload
            channel_factory: Builds an unopened channel for a strategy
            shared_supported: Shared memory capability; None probes the host lazily
            verification_seed: Seed for verification sampling; None is non-deterministic
            total_runs: Iterations per strategy, only used in status messages
            on_status: Receives a status line at each phase of a run
        """
        self.payload_duration_seconds = payload_duration_seconds
        self.sample_rate = sample_rate
        self.channel_factory = channel_factory or make_channel
        self._shared_supported = shared_supported
        self.verification_seed = verification_seed
        self.total_runs = total_runs
        self.on_status = on_status

    @property
    def shared_supported(self) -> bool:
        """Whether shared memory regions work on this host, probed once."""
        if self._shared_supported is None:
            self._shared_supported = shared_memory_supported()
        return self._shared_supported

    def _status(self, strategy: Strategy, run_index: int, text: str) -> None:
        total = f"/{self.total_runs}" if self.total_runs else ""
        line = f"{strategy.value.capitalize()} worker - Run {run_index + 1}{total}: {text}"
        logger.debug("%s", line)
        if self.on_status is not None:
            self.on_status(line)

    async def run(self, strategy: Strategy, run_index: int) -> RunResult | None:
        """Perform one measured round trip.

        Args:
            strategy: Which channel variant to use
            run_index: Zero-based index of this run within its strategy

        Returns:
            RunResult on success, or None when the shared strategy is skipped
            because shared memory is unavailable.

        Raises:
            UnitReportedError: If the worker reported an error or died.
            WorkerTimeout: If the worker did not answer in time.
        """
        if strategy is Strategy.SHARED and not self.shared_supported:
            logger.info("⏭️ Skipping shared run %d: shared memory unavailable", run_index + 1)
            return None

        self._status(
            strategy,
            run_index,
            f"Generating sample data ({self.payload_duration_seconds / 60:g} minutes)...",
        )
        payload = SampleGenerator.generate(self.payload_duration_seconds, self.sample_rate)

        channel = self.channel_factory(strategy)
        try:
            self._status(strategy, run_index, "Processing...")
            reply = await channel.process(payload)
            total_time_ms = reply.total_time_ms
            processing_time_ms = reply.processing_time_ms
            verification = verify_buffer(reply.result, seed=self.verification_seed)
            # The shared result views a region that close() releases
            del reply
        except CapabilityUnavailable as e:
            logger.warning("⚠️ Skipping %s run %d: %s", strategy.value, run_index + 1, e)
            return None
        except BenchmarkRunError as e:
            if e.run_index is None:
                e.run_index = run_index
            self._status(strategy, run_index, f"Error: {e.message}")
            raise
        finally:
            channel.close()

        result = RunResult(
            run_index=run_index,
            strategy=strategy,
            total_time_ms=total_time_ms,
            processing_time_ms=processing_time_ms,
            verification=verification,
        )
        self._status(strategy, run_index, "Processing complete")
        logger.info(
            "  ✅ %s run %d: total %.2fms | processing %.2fms | transfer %.2fms | %s",
            strategy.value,
            run_index + 1,
            result.total_time_ms,
            result.processing_time_ms,
            result.transfer_time_ms,
            verification.message,
        )
        return result
