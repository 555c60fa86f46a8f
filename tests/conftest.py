"""Shared pytest fixtures.

Provides an in-process stand-in for worker channels so runner and
orchestrator behaviour can be tested without starting worker processes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import numpy as np
import pytest

from transferbench.channels import ChannelReply
from transferbench.logger import logger
from transferbench.models import Strategy


class FakeChannel:
    """Channel that answers immediately with a scripted outcome."""

    def __init__(
        self,
        strategy: Strategy,
        total_time_ms: float = 12.5,
        processing_time_ms: float = 2.25,
        error: Exception | None = None,
        fill: float = 1.0,
        delay: float = 0.0,
    ) -> None:
        self.strategy = strategy
        self.total_time_ms = total_time_ms
        self.processing_time_ms = processing_time_ms
        self.error = error
        self.fill = fill
        self.delay = delay
        self.payload_length: int | None = None
        self.closed = False

    async def process(self, payload):
        self.payload_length = len(payload)
        if self.strategy is Strategy.TRANSFER:
            payload.release()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ChannelReply(
            total_time_ms=self.total_time_ms,
            processing_time_ms=self.processing_time_ms,
            result=np.full(self.payload_length, self.fill, dtype=np.float32),
        )

    def close(self) -> None:
        self.closed = True


@dataclass
class FakeChannelFactory:
    """Builds FakeChannels, optionally failing chosen calls, and records them."""

    errors: dict[tuple[Strategy, int], Exception] = field(default_factory=dict)
    channels: list[FakeChannel] = field(default_factory=list)
    delay: float = 0.0

    def __call__(self, strategy: Strategy) -> FakeChannel:
        index = sum(1 for c in self.channels if c.strategy is strategy)
        timings = {Strategy.TRANSFER: (20.0 + index, 4.0), Strategy.SHARED: (8.0 + index, 3.0)}
        total, processing = timings[strategy]
        channel = FakeChannel(
            strategy,
            total_time_ms=total,
            processing_time_ms=processing,
            error=self.errors.get((strategy, index)),
            delay=self.delay,
        )
        self.channels.append(channel)
        return channel

    def opened(self, strategy: Strategy) -> list[FakeChannel]:
        return [c for c in self.channels if c.strategy is strategy]


@pytest.fixture
def channel_factory() -> FakeChannelFactory:
    return FakeChannelFactory()


class ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.lines: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(record.getMessage())


@pytest.fixture
def log_lines():
    """Messages logged by the package logger during the test."""
    handler = ListHandler()
    logger.addHandler(handler)
    try:
        yield handler.lines
    finally:
        logger.removeHandler(handler)
