"""Result comparison and summary output for the transfer benchmark.

This module turns run results, aggregates and history entries into aligned
tables written through the package logger, and computes the speedup ratios
shown alongside them.
"""

from __future__ import annotations

from statistics import stdev
from typing import TYPE_CHECKING

from .logger import logger
from .models import Strategy

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .history import HistoryStore
    from .models import AggregateResult, RunFailure, RunResult

MIN_RUNS_FOR_STDEV = 2


def speedup_ratio(transfer: float | None, shared: float | None) -> float | None:
    """How many times faster the shared strategy was.

    Returns:
        ``transfer / shared``, or None when either value is missing or shared is 0.
    """
    if transfer is None or shared is None or shared == 0:
        return None
    return transfer / shared


def format_ratio(ratio: float | None) -> str:
    """Format a speedup ratio for display.

    Returns:
        The ratio as ``"2.35x"``, or ``"-"`` when unavailable.
    """
    return "-" if ratio is None else f"{ratio:.2f}x"


def _format_ms(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.2f}ms"


def log_run_table(results: Sequence[RunResult]) -> None:
    """Log one line per run, grouped by strategy, with the spread of total times."""
    if not results:
        logger.warning("No results to summarise")
        return

    for strategy in Strategy:
        runs = [r for r in results if r.strategy is strategy]
        if not runs:
            continue
        logger.info("=== %s RUNS ===", strategy.value.upper())
        logger.info("Run | Total | Processing | Transfer | Verification")
        for run in runs:
            logger.info(
                "%3d | %10s | %10s | %10s | %s",
                run.run_number,
                _format_ms(run.total_time_ms),
                _format_ms(run.processing_time_ms),
                _format_ms(run.transfer_time_ms),
                run.verification.message,
            )
        if len(runs) >= MIN_RUNS_FOR_STDEV:
            logger.info(
                "Total time standard deviation: %.2fms", stdev(r.total_time_ms for r in runs)
            )


def log_failures(failures: Sequence[RunFailure]) -> None:
    """Log every run that produced no result."""
    for failure in failures:
        strategy = failure.strategy.value if failure.strategy else "unknown"
        run_number = "?" if failure.run_index is None else failure.run_index + 1
        logger.warning(
            "❌ %s run %s failed (%s): %s", strategy, run_number, failure.kind, failure.message
        )


def log_comparison(transfer: AggregateResult | None, shared: AggregateResult | None) -> None:
    """Log the averaged metrics of both strategies side by side with ratios."""
    if transfer is None:
        logger.warning("No averages to compare")
        return

    logger.info("=== AVERAGES ===")
    logger.info("Metric          | Transfer     | Shared       | Speedup")
    for label, attr in (
        ("Total time", "total_time_ms"),
        ("Processing time", "processing_time_ms"),
        ("Transfer time", "transfer_time_ms"),
    ):
        transfer_value = getattr(transfer, attr)
        shared_value = None if shared is None else getattr(shared, attr)
        logger.info(
            "%-15s | %12s | %12s | %s",
            label,
            _format_ms(transfer_value),
            _format_ms(shared_value),
            format_ratio(speedup_ratio(transfer_value, shared_value)),
        )
    if shared is None:
        logger.info("Shared strategy unavailable on this host")


def log_history(history: HistoryStore) -> None:
    """Log all history entries in insertion order."""
    if not len(history):
        logger.info("History is empty")
        return

    logger.info("=== BENCHMARK HISTORY ===")
    logger.info("Created             | Minutes | Runs | Transfer     | Shared       | Speedup")
    for entry in history:
        shared = entry.aggregate_shared
        shared_total = None if shared is None else shared.total_time_ms
        logger.info(
            "%s | %7g | %4d | %12s | %12s | %s",
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            entry.payload_minutes,
            entry.iteration_count,
            _format_ms(entry.aggregate_transfer.total_time_ms),
            _format_ms(shared_total),
            format_ratio(entry.speedup),
        )
