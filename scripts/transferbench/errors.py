"""Exception types for the transfer benchmark.

Run-level errors (``BenchmarkRunError`` and its subclasses) are caught by the
task queue so a broken worker never aborts a benchmark. ``SetupError`` is the
only error that ends ``start_benchmark`` early.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Strategy


class TransferBenchError(Exception):
    """Base class for all benchmark errors."""


class CapabilityUnavailable(TransferBenchError):
    """Shared memory regions cannot be created on this host."""


class PayloadReleasedError(TransferBenchError):
    """A payload was read after its ownership was handed to a worker."""


class SetupError(TransferBenchError):
    """Invalid benchmark configuration, raised before any task is enqueued."""


class BenchmarkRunError(TransferBenchError):
    """A single measured run failed.

    Carries the strategy and run index so the orchestrator can record which
    run was lost.
    """

    kind = "error"

    def __init__(self, message: str, strategy: Strategy, run_index: int | None = None) -> None:
        """Initialise the error with its tags.

        Args:
            message: Human readable reason, usually the worker's own message.
            strategy: Strategy of the failed run.
            run_index: Zero-based index of the run, when known.
        """
        super().__init__(message)
        self.message = message
        self.strategy = strategy
        self.run_index = run_index


class UnitReportedError(BenchmarkRunError):
    """The worker process answered with an ERROR message or died without answering."""


class WorkerTimeout(BenchmarkRunError):
    """The worker did not answer in time and was terminated."""

    kind = "timeout"
