"""Data models and configuration classes for the transfer benchmark.

This module contains the dataclasses shared by the channels, the runner, the
orchestrator and the history store, together with the benchmark constants and
the environment-driven configuration.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from statistics import mean
from typing import TYPE_CHECKING

from dotenv import dotenv_values

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

# Benchmark constants
DEFAULT_SAMPLE_RATE = 44100
SENTINEL_VALUE = 1.0
SHARED_TIMEOUT_SECONDS = 10.0
TRANSFER_TIMEOUT_SECONDS = 60.0
MIN_PAYLOAD_MINUTES = 1
MAX_PAYLOAD_MINUTES = 120
MAX_PAYLOAD_SECONDS = MAX_PAYLOAD_MINUTES * 60
MIN_ITERATIONS = 1
MAX_ITERATIONS = 100
START_METHODS = ("spawn", "fork", "forkserver")

# Message types exchanged with worker processes
MSG_PROCESS_AUDIO = "PROCESS_AUDIO"
MSG_PROCESS_SHARED_AUDIO = "PROCESS_SHARED_AUDIO"
MSG_PROCESSING_COMPLETE = "PROCESSING_COMPLETE"
MSG_ERROR = "ERROR"

# Global configuration defaults from environment variables
PAYLOAD_MINUTES = float(os.getenv("PAYLOAD_MINUTES", "1"))
ITERATIONS = int(os.getenv("ITERATIONS", "5"))
SAMPLE_RATE = int(os.getenv("SAMPLE_RATE", str(DEFAULT_SAMPLE_RATE)))
START_METHOD = os.getenv("START_METHOD", "spawn")


class Strategy(str, Enum):
    """How the payload reaches the worker."""

    TRANSFER = "transfer"
    SHARED = "shared"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of the sampled sentinel check on a result buffer."""

    passed: bool
    sampled: int
    correct: int
    message: str

    @property
    def percentage(self) -> float:
        """Share of sampled values that held the sentinel, in percent."""
        if self.sampled == 0:
            return 0.0
        return self.correct / self.sampled * 100


@dataclass(frozen=True)
class RunResult:
    """One measured worker round trip.

    ``transfer_time_ms`` is always derived from the two measured values.
    """

    run_index: int
    strategy: Strategy
    total_time_ms: float
    processing_time_ms: float
    verification: VerificationResult

    @property
    def transfer_time_ms(self) -> float:
        """Round trip time not spent processing inside the worker."""
        return self.total_time_ms - self.processing_time_ms

    @property
    def run_number(self) -> int:
        """One-based run number for display."""
        return self.run_index + 1


@dataclass(frozen=True)
class RunFailure:
    """A run that produced no result, kept so the loss is visible."""

    run_index: int | None
    strategy: Strategy | None
    kind: str
    message: str


@dataclass(frozen=True)
class AggregateResult:
    """Arithmetic means over all results of one strategy in a session."""

    strategy: Strategy
    total_time_ms: float
    processing_time_ms: float
    transfer_time_ms: float
    run_count: int

    @classmethod
    def empty(cls, strategy: Strategy) -> AggregateResult:
        """Create the all-zero aggregate used when no run produced a result."""
        return cls(strategy, 0.0, 0.0, 0.0, 0)

    @classmethod
    def from_results(cls, strategy: Strategy, results: Sequence[RunResult]) -> AggregateResult:
        """Average the timings of ``results``.

        Returns:
            AggregateResult over the given results, all-zero when empty.

        Raises:
            ValueError: If a result belongs to a different strategy.
        """
        if any(r.strategy is not strategy for r in results):
            msg = f"Cannot aggregate results of mixed strategies into {strategy.value}"
            raise ValueError(msg)
        if not results:
            return cls.empty(strategy)
        return cls(
            strategy=strategy,
            total_time_ms=mean(r.total_time_ms for r in results),
            processing_time_ms=mean(r.processing_time_ms for r in results),
            transfer_time_ms=mean(r.transfer_time_ms for r in results),
            run_count=len(results),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """Configuration and averaged outcome of one completed benchmark."""

    payload_duration_seconds: float
    iteration_count: int
    aggregate_transfer: AggregateResult
    aggregate_shared: AggregateResult | None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def payload_minutes(self) -> float:
        """Payload duration in minutes."""
        return self.payload_duration_seconds / 60

    @property
    def speedup(self) -> float | None:
        """Transfer total time divided by shared total time, when both exist."""
        if self.aggregate_shared is None or self.aggregate_shared.total_time_ms == 0:
            return None
        return self.aggregate_transfer.total_time_ms / self.aggregate_shared.total_time_ms


@dataclass
class BenchmarkConfig:
    """Settings for one benchmark session.

    Defaults come from environment variables; ``from_dotenv`` overlays the
    values found in a ``.env`` file.
    """

    payload_minutes: float = PAYLOAD_MINUTES
    iterations: int = ITERATIONS
    sample_rate: int = SAMPLE_RATE
    shared_timeout_seconds: float = SHARED_TIMEOUT_SECONDS
    transfer_timeout_seconds: float | None = TRANSFER_TIMEOUT_SECONDS
    start_method: str = START_METHOD
    verification_seed: int | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate ranges after object creation.

        Raises:
            ValueError: If any setting is out of range.
        """
        if not MIN_PAYLOAD_MINUTES <= self.payload_minutes <= MAX_PAYLOAD_MINUTES:
            msg = (
                f"Payload duration must be between {MIN_PAYLOAD_MINUTES} and "
                f"{MAX_PAYLOAD_MINUTES} minutes, got {self.payload_minutes}"
            )
            raise ValueError(msg)
        if not MIN_ITERATIONS <= self.iterations <= MAX_ITERATIONS:
            msg = (
                f"Iterations must be between {MIN_ITERATIONS} and {MAX_ITERATIONS}, "
                f"got {self.iterations}"
            )
            raise ValueError(msg)
        if self.sample_rate <= 0:
            msg = f"Sample rate must be positive, got {self.sample_rate}"
            raise ValueError(msg)
        if self.shared_timeout_seconds <= 0:
            msg = f"Shared timeout must be positive, got {self.shared_timeout_seconds}"
            raise ValueError(msg)
        if self.transfer_timeout_seconds is not None and self.transfer_timeout_seconds <= 0:
            msg = f"Transfer timeout must be positive, got {self.transfer_timeout_seconds}"
            raise ValueError(msg)
        if self.start_method not in START_METHODS:
            msg = f"Unknown start method {self.start_method!r}, expected one of {START_METHODS}"
            raise ValueError(msg)

    @property
    def payload_duration_seconds(self) -> float:
        """Payload duration in seconds."""
        return self.payload_minutes * 60

    @classmethod
    def from_dotenv(cls, env_file: str = ".env") -> BenchmarkConfig:
        """Create configuration from a .env file, falling back to defaults.

        Returns:
            BenchmarkConfig populated from the file.
        """
        return cls.from_mapping(dotenv_values(env_file))

    @classmethod
    def from_mapping(cls, values: Mapping[str, str | None]) -> BenchmarkConfig:
        """Create configuration from string values keyed by environment name.

        Returns:
            BenchmarkConfig with every present key applied.

        Raises:
            ValueError: If a value cannot be converted.
        """

        def get_number(key: str, convert: type, default: float | None) -> float | None:
            value = values.get(key)
            if value is None or value == "":
                return default
            try:
                return convert(value)
            except ValueError as e:
                msg = f"Invalid {convert.__name__} value for {key}: {value}"
                raise ValueError(msg) from e

        transfer_timeout = values.get("TRANSFER_TIMEOUT_SECONDS")
        return cls(
            payload_minutes=get_number("PAYLOAD_MINUTES", float, PAYLOAD_MINUTES),
            iterations=get_number("ITERATIONS", int, ITERATIONS),
            sample_rate=get_number("SAMPLE_RATE", int, SAMPLE_RATE),
            shared_timeout_seconds=get_number(
                "SHARED_TIMEOUT_SECONDS", float, SHARED_TIMEOUT_SECONDS
            ),
            transfer_timeout_seconds=None
            if transfer_timeout is not None and transfer_timeout.lower() == "none"
            else get_number("TRANSFER_TIMEOUT_SECONDS", float, TRANSFER_TIMEOUT_SECONDS),
            start_method=values.get("START_METHOD") or START_METHOD,
            verification_seed=get_number("VERIFICATION_SEED", int, None),
            log_level=values.get("LOG_LEVEL") or "INFO",
        )
