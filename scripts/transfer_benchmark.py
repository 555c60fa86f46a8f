#!/usr/bin/env python3
"""Worker Buffer Transfer Benchmark.

Benchmarking tool comparing two ways of moving a large float32 sample buffer
between a coordinator and an isolated worker process and back:

1. Transfer: the buffer travels with every request and a new buffer comes back
2. Shared: the buffer is placed in shared memory and only region names travel

Each benchmark alternates the two strategies for the configured number of
iterations, reports total, processing and transfer time per run, averages them
and keeps a history of every benchmark in the session for comparison.
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace

from transferbench.history import HistoryStore
from transferbench.logger import logger, set_level
from transferbench.models import (
    ITERATIONS,
    MAX_ITERATIONS,
    MAX_PAYLOAD_MINUTES,
    MIN_ITERATIONS,
    MIN_PAYLOAD_MINUTES,
    PAYLOAD_MINUTES,
    SAMPLE_RATE,
    BenchmarkConfig,
)
from transferbench.orchestrator import BenchmarkOrchestrator
from transferbench.sample_generator import payload_size_mb
from transferbench.summary import log_comparison, log_failures, log_history, log_run_table


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments for benchmark configuration.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Worker buffer transfer vs shared memory benchmark",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Configuration (environment variables or --env-file):
  PAYLOAD_MINUTES: {PAYLOAD_MINUTES} ({MIN_PAYLOAD_MINUTES}-{MAX_PAYLOAD_MINUTES})
  ITERATIONS: {ITERATIONS} ({MIN_ITERATIONS}-{MAX_ITERATIONS})
  SAMPLE_RATE: {SAMPLE_RATE}
  SHARED_TIMEOUT_SECONDS, TRANSFER_TIMEOUT_SECONDS, START_METHOD,
  VERIFICATION_SEED, LOG_LEVEL
        """,
    )
    parser.add_argument("--env-file", default=".env", help="Path to a .env file")
    parser.add_argument("--minutes", type=float, help="Payload duration in minutes")
    parser.add_argument("--iterations", type=int, help="Runs per strategy")
    parser.add_argument("--seed", type=int, help="Seed for verification sampling")
    parser.add_argument(
        "--repeat", type=int, default=1, help="Number of benchmarks to run in this session"
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BenchmarkConfig:
    """Combine the .env file with command line overrides.

    Returns:
        Validated BenchmarkConfig.
    """
    config = BenchmarkConfig.from_dotenv(args.env_file)
    overrides = {
        "payload_minutes": args.minutes,
        "iterations": args.iterations,
        "verification_seed": args.seed,
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


async def run_session(config: BenchmarkConfig, repeat: int) -> HistoryStore:
    """Run ``repeat`` benchmarks sharing one history.

    Returns:
        The session history.
    """
    history = HistoryStore()
    orchestrator = BenchmarkOrchestrator.from_config(
        config, history, on_status=lambda status: logger.debug("📣 %s", status)
    )

    for benchmark_number in range(1, repeat + 1):
        logger.info("🎭 === BENCHMARK %d/%d ===", benchmark_number, repeat)
        await orchestrator.start_benchmark(config.payload_duration_seconds, config.iterations)

        log_run_table(orchestrator.transfer_results + orchestrator.shared_results)
        log_failures(orchestrator.failures)
        log_comparison(orchestrator.aggregate_transfer, orchestrator.aggregate_shared)
        logger.info("📣 %s", orchestrator.status)

    log_history(history)
    return history


def main(argv: list[str] | None = None) -> None:
    """Main entry point for benchmark execution.

    Loads configuration and runs the benchmark session with error handling and logging.
    """
    args = parse_arguments(argv)
    config = build_config(args)
    set_level(config.log_level)

    logger.info("🚀 Starting transfer benchmark")
    logger.info(
        "📏 Payload: %g minutes at %d Hz (%.1f MB)",
        config.payload_minutes,
        config.sample_rate,
        payload_size_mb(config.payload_duration_seconds, config.sample_rate),
    )
    logger.info("🔄 Iterations per strategy: %d", config.iterations)
    logger.info(
        "⏱️ Timeouts: shared %ss, transfer %ss",
        config.shared_timeout_seconds,
        config.transfer_timeout_seconds,
    )
    logger.info("⚙️ Worker start method: %s", config.start_method)

    try:
        asyncio.run(run_session(config, max(args.repeat, 1)))
    except KeyboardInterrupt:
        logger.info("⏹️ Benchmark interrupted by user")
    except Exception:
        logger.exception("💥 Benchmark failed")
        raise


if __name__ == "__main__":
    main()
