"""Benchmark orchestration across both strategies.

This module provides the BenchmarkOrchestrator, which queues alternating
transfer and shared runs, drains them one at a time, averages the results and
records the outcome in the HistoryStore it was given.
"""

from __future__ import annotations

import asyncio
import numbers
from contextlib import aclosing
from functools import partial
from typing import TYPE_CHECKING

from .benchmark_run import BenchmarkRun
from .channels import make_channel, shared_memory_supported
from .errors import BenchmarkRunError, SetupError
from .logger import logger
from .models import (
    DEFAULT_SAMPLE_RATE,
    MAX_ITERATIONS,
    MAX_PAYLOAD_SECONDS,
    MIN_ITERATIONS,
    AggregateResult,
    BenchmarkConfig,
    HistoryEntry,
    RunFailure,
    RunResult,
    Strategy,
)
from .task_queue import TaskQueue

if TYPE_CHECKING:
    from collections.abc import Callable

    from .benchmark_run import ChannelFactory, StatusCallback
    from .history import HistoryStore


class BenchmarkOrchestrator:
    """Main benchmark coordinator.

    Owns the current session's run lists and its task queue. Results are
    exposed as attributes for the presentation layer to read between runs.
    """

    def __init__(
        self,
        history: HistoryStore,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channel_factory: ChannelFactory | None = None,
        shared_supported: Callable[[], bool] = shared_memory_supported,
        verification_seed: int | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            history: Store receiving one entry per completed benchmark
            sample_rate: Samples per second of generated payloads
            channel_factory: Builds an unopened channel for a strategy
            shared_supported: Probe for the shared memory capability, run per benchmark
            verification_seed: Seed for verification sampling
            on_status: Receives every status update
        """
        self.history = history
        self.sample_rate = sample_rate
        self.channel_factory = channel_factory or make_channel
        self.shared_supported_probe = shared_supported
        self.verification_seed = verification_seed
        self.on_status = on_status

        self.queue: TaskQueue[RunResult | None] = TaskQueue()
        self.transfer_results: list[RunResult] = []
        self.shared_results: list[RunResult] = []
        self.failures: list[RunFailure] = []
        self.aggregate_transfer: AggregateResult | None = None
        self.aggregate_shared: AggregateResult | None = None
        self.shared_supported: bool | None = None
        self.status = "Ready"
        self._running = False

    @classmethod
    def from_config(
        cls,
        config: BenchmarkConfig,
        history: HistoryStore,
        on_status: StatusCallback | None = None,
    ) -> BenchmarkOrchestrator:
        """Create an orchestrator whose channels follow ``config``.

        Returns:
            Configured BenchmarkOrchestrator.
        """
        factory = partial(
            make_channel,
            shared_timeout=config.shared_timeout_seconds,
            transfer_timeout=config.transfer_timeout_seconds,
            start_method=config.start_method,
        )
        return cls(
            history,
            sample_rate=config.sample_rate,
            channel_factory=factory,
            verification_seed=config.verification_seed,
            on_status=on_status,
        )

    @property
    def is_running(self) -> bool:
        """Whether a benchmark is in progress."""
        return self._running

    def _set_status(self, status: str) -> None:
        self.status = status
        if self.on_status is not None:
            self.on_status(status)

    def _validate(self, payload_duration_seconds: float, iteration_count: int) -> None:
        """Reject configurations before anything is enqueued.

        Raises:
            SetupError: If either value is out of range or a benchmark is running.
        """
        if self._running:
            msg = "A benchmark is already in progress"
            raise SetupError(msg)
        if isinstance(iteration_count, bool) or not isinstance(iteration_count, int):
            msg = f"Iteration count must be an integer, got {iteration_count!r}"
            raise SetupError(msg)
        if not MIN_ITERATIONS <= iteration_count <= MAX_ITERATIONS:
            msg = (
                f"Iteration count must be between {MIN_ITERATIONS} and {MAX_ITERATIONS}, "
                f"got {iteration_count}"
            )
            raise SetupError(msg)
        if isinstance(payload_duration_seconds, bool) or not isinstance(
            payload_duration_seconds, numbers.Real
        ):
            msg = f"Payload duration must be a number, got {payload_duration_seconds!r}"
            raise SetupError(msg)
        if not 0 < payload_duration_seconds <= MAX_PAYLOAD_SECONDS:
            msg = (
                f"Payload duration must be in (0, {MAX_PAYLOAD_SECONDS}] seconds, "
                f"got {payload_duration_seconds}"
            )
            raise SetupError(msg)

    def _reset_session(self) -> None:
        self.queue = TaskQueue()
        self.transfer_results = []
        self.shared_results = []
        self.failures = []
        self.aggregate_transfer = None
        self.aggregate_shared = None

    def _record_failure(self, error: Exception) -> None:
        """Keep a RunFailure for a task the queue could not complete."""
        if isinstance(error, BenchmarkRunError):
            failure = RunFailure(error.run_index, error.strategy, error.kind, error.message)
            run_number = "?" if error.run_index is None else error.run_index + 1
            self._set_status(
                f"Error: {error.strategy.value} run {run_number} failed: {error.message}"
            )
        else:
            failure = RunFailure(None, None, "error", str(error))
            self._set_status(f"Error: {error}")
        self.failures.append(failure)

    def _collect(self, result: RunResult | None) -> None:
        if result is None:
            return
        if result.strategy is Strategy.TRANSFER:
            self.transfer_results.append(result)
        else:
            self.shared_results.append(result)

    def compute_aggregates(self) -> tuple[AggregateResult, AggregateResult | None]:
        """Recompute both aggregates from the full session run lists.

        An empty shared list yields None (unavailable) rather than zeros.

        Returns:
            Transfer aggregate and shared aggregate.
        """
        self.aggregate_transfer = AggregateResult.from_results(
            Strategy.TRANSFER, self.transfer_results
        )
        self.aggregate_shared = (
            AggregateResult.from_results(Strategy.SHARED, self.shared_results)
            if self.shared_results
            else None
        )
        return self.aggregate_transfer, self.aggregate_shared

    async def start_benchmark(
        self, payload_duration_seconds: float, iteration_count: int
    ) -> HistoryEntry | None:
        """Run ``iteration_count`` transfer and shared runs and record the averages.

        Args:
            payload_duration_seconds: Duration of each generated payload
            iteration_count: Runs per strategy, 1 to 100

        Returns:
            The HistoryEntry added to the store, or None if no transfer run succeeded.

        Raises:
            SetupError: If the configuration is invalid; nothing is enqueued.
        """
        try:
            self._validate(payload_duration_seconds, iteration_count)
        except SetupError as e:
            self._set_status(f"Error during benchmark: {e}")
            raise

        self._running = True
        try:
            self._reset_session()
            self.shared_supported = self.shared_supported_probe()
            if not self.shared_supported:
                logger.warning("⚠️ Shared memory unavailable, shared runs will be skipped")

            runner = BenchmarkRun(
                payload_duration_seconds,
                sample_rate=self.sample_rate,
                channel_factory=self.channel_factory,
                shared_supported=self.shared_supported,
                verification_seed=self.verification_seed,
                total_runs=iteration_count,
                on_status=self._set_status,
            )
            for run_index in range(iteration_count):
                self.queue.enqueue(partial(runner.run, Strategy.TRANSFER, run_index))
                self.queue.enqueue(partial(runner.run, Strategy.SHARED, run_index))

            logger.info(
                "🎬 Starting benchmark: %g minutes of audio, %d iterations per strategy",
                payload_duration_seconds / 60,
                iteration_count,
            )
            self._set_status("Running benchmarks...")
            async with aclosing(self.queue.drain(on_error=self._record_failure)) as results:
                async for result in results:
                    self._collect(result)

            aggregate_transfer, aggregate_shared = self.compute_aggregates()

            entry = None
            if self.transfer_results:
                entry = HistoryEntry(
                    payload_duration_seconds=payload_duration_seconds,
                    iteration_count=iteration_count,
                    aggregate_transfer=aggregate_transfer,
                    aggregate_shared=aggregate_shared,
                )
                self.history.add(entry)
                logger.info("🗂️ Result added to history (%d entries)", len(self.history))
            else:
                logger.warning("⚠️ No transfer run succeeded, nothing added to history")

            if self.failures:
                self._set_status(
                    f"Benchmark complete with {len(self.failures)} failed run(s). "
                    "Averages calculated."
                )
            else:
                self._set_status("Benchmark complete. Averages calculated.")
            return entry
        except asyncio.CancelledError:
            logger.warning("🛑 Benchmark cancelled")
            self._set_status("Benchmark cancelled")
            raise
        except Exception as e:
            logger.exception("💥 Benchmark failed")
            self._set_status(f"Error during benchmark: {e}")
            raise
        finally:
            self._running = False
