"""Tests for benchmark orchestration using in-process fake channels."""

from __future__ import annotations

import asyncio

import pytest

from transferbench.errors import SetupError, UnitReportedError, WorkerTimeout
from transferbench.history import HistoryStore
from transferbench.models import BenchmarkConfig, Strategy
from transferbench.orchestrator import BenchmarkOrchestrator


def make_orchestrator(channel_factory, shared_supported=True, statuses=None):
    history = HistoryStore()
    orchestrator = BenchmarkOrchestrator(
        history,
        channel_factory=channel_factory,
        shared_supported=lambda: shared_supported,
        verification_seed=0,
        on_status=None if statuses is None else statuses.append,
    )
    return orchestrator, history


def test_three_iterations_with_shared_memory(channel_factory):
    orchestrator, history = make_orchestrator(channel_factory)

    entry = asyncio.run(orchestrator.start_benchmark(60, 3))

    assert len(orchestrator.transfer_results) == 3
    assert len(orchestrator.shared_results) == 3
    assert orchestrator.failures == []
    assert history.entries == (entry,)
    assert entry.iteration_count == 3
    assert entry.payload_duration_seconds == 60
    assert entry.aggregate_transfer.total_time_ms == 21.0
    assert entry.aggregate_transfer.processing_time_ms == 4.0
    assert entry.aggregate_transfer.transfer_time_ms == 17.0
    assert entry.aggregate_shared.total_time_ms == 9.0
    assert orchestrator.status == "Benchmark complete. Averages calculated."
    assert not orchestrator.is_running


def test_runs_alternate_between_strategies(channel_factory):
    orchestrator, _ = make_orchestrator(channel_factory)

    asyncio.run(orchestrator.start_benchmark(1, 3))

    assert [c.strategy for c in channel_factory.channels] == [
        Strategy.TRANSFER,
        Strategy.SHARED,
    ] * 3
    assert [r.run_index for r in orchestrator.transfer_results] == [0, 1, 2]
    assert [r.run_index for r in orchestrator.shared_results] == [0, 1, 2]
    assert all(c.closed for c in channel_factory.channels)


def test_shared_unavailable_reports_none_not_zero(channel_factory):
    orchestrator, history = make_orchestrator(channel_factory, shared_supported=False)

    entry = asyncio.run(orchestrator.start_benchmark(60, 3))

    assert len(orchestrator.transfer_results) == 3
    assert orchestrator.shared_results == []
    assert orchestrator.shared_supported is False
    assert orchestrator.aggregate_shared is None
    assert entry.aggregate_shared is None
    assert entry.speedup is None
    assert channel_factory.opened(Strategy.SHARED) == []
    assert len(history) == 1
    assert orchestrator.status == "Benchmark complete. Averages calculated."


def test_timed_out_run_is_recorded_and_queue_continues(channel_factory):
    channel_factory.errors[(Strategy.SHARED, 1)] = WorkerTimeout(
        "shared worker timed out after 10.0 seconds", Strategy.SHARED
    )
    orchestrator, history = make_orchestrator(channel_factory)

    asyncio.run(orchestrator.start_benchmark(1, 3))

    assert len(orchestrator.transfer_results) == 3
    assert [r.run_index for r in orchestrator.shared_results] == [0, 2]
    (failure,) = orchestrator.failures
    assert failure.kind == "timeout"
    assert failure.strategy is Strategy.SHARED
    assert failure.run_index == 1
    assert channel_factory.opened(Strategy.SHARED)[1].closed
    assert orchestrator.aggregate_shared.run_count == 2
    assert len(history) == 1
    assert "1 failed run" in orchestrator.status


def test_no_history_entry_without_transfer_results(channel_factory):
    for index in range(2):
        channel_factory.errors[(Strategy.TRANSFER, index)] = UnitReportedError(
            "out of memory", Strategy.TRANSFER
        )
    orchestrator, history = make_orchestrator(channel_factory)

    entry = asyncio.run(orchestrator.start_benchmark(1, 2))

    assert entry is None
    assert len(history) == 0
    assert len(orchestrator.shared_results) == 2
    assert orchestrator.aggregate_transfer.total_time_ms == 0.0
    assert [f.kind for f in orchestrator.failures] == ["error", "error"]


@pytest.mark.parametrize(
    ("duration", "iterations"),
    [
        (60, 0),
        (60, -1),
        (60, 101),
        (60, 2.5),
        (60, True),
        (0, 3),
        (-5, 3),
        (7201, 3),
        ("60", 3),
        (None, 3),
        (True, 3),
    ],
)
def test_invalid_configuration_aborts_before_enqueuing(channel_factory, duration, iterations):
    statuses: list[str] = []
    orchestrator, history = make_orchestrator(channel_factory, statuses=statuses)

    with pytest.raises(SetupError):
        asyncio.run(orchestrator.start_benchmark(duration, iterations))

    assert channel_factory.channels == []
    assert len(orchestrator.queue) == 0
    assert len(history) == 0
    assert statuses[-1].startswith("Error during benchmark")


def test_second_benchmark_clears_session_and_appends_history(channel_factory):
    orchestrator, history = make_orchestrator(channel_factory)

    first = asyncio.run(orchestrator.start_benchmark(1, 2))
    second = asyncio.run(orchestrator.start_benchmark(2, 1))

    assert len(orchestrator.transfer_results) == 1
    assert len(orchestrator.shared_results) == 1
    assert history.entries == (first, second)
    assert second.iteration_count == 1


def test_status_reports_each_phase(channel_factory):
    statuses: list[str] = []
    orchestrator, _ = make_orchestrator(channel_factory, statuses=statuses)

    asyncio.run(orchestrator.start_benchmark(60, 1))

    assert statuses[0] == "Running benchmarks..."
    assert "Transfer worker - Run 1/1: Generating sample data (1 minutes)..." in statuses
    assert "Shared worker - Run 1/1: Processing complete" in statuses
    assert statuses[-1] == "Benchmark complete. Averages calculated."


def test_from_config_builds_channels_with_configured_timeouts():
    config = BenchmarkConfig(
        payload_minutes=1,
        iterations=1,
        shared_timeout_seconds=4.0,
        transfer_timeout_seconds=None,
        start_method="spawn",
    )
    orchestrator = BenchmarkOrchestrator.from_config(config, HistoryStore())

    shared = orchestrator.channel_factory(Strategy.SHARED)
    transfer = orchestrator.channel_factory(Strategy.TRANSFER)

    assert shared.strategy is Strategy.SHARED
    assert shared.timeout == 4.0
    assert transfer.strategy is Strategy.TRANSFER
    assert transfer.timeout is None
    assert orchestrator.sample_rate == config.sample_rate


def test_cancelled_benchmark_leaves_nothing_for_the_next_one(channel_factory):
    channel_factory.delay = 0.05
    statuses: list[str] = []
    orchestrator, history = make_orchestrator(channel_factory, statuses=statuses)

    async def scenario():
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(orchestrator.start_benchmark(1, 5), timeout=0.12)
        assert statuses[-1] == "Benchmark cancelled"
        assert len(orchestrator.queue) == 0
        assert not orchestrator.is_running
        channel_factory.delay = 0.0
        return await orchestrator.start_benchmark(2, 1)

    entry = asyncio.run(scenario())

    assert len(orchestrator.transfer_results) == 1
    assert len(orchestrator.shared_results) == 1
    assert entry.iteration_count == 1
    assert entry.payload_duration_seconds == 2
    assert history.entries == (entry,)
    assert all(c.closed for c in channel_factory.channels)
