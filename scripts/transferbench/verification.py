"""Sampled verification of worker result buffers.

Checking every element of a multi-gigabyte buffer would dominate the benchmark,
so only the head of the buffer and a random sample of indices are inspected.
"""

from __future__ import annotations

import numpy as np

from .logger import logger
from .models import SENTINEL_VALUE, VerificationResult

HEAD_SAMPLE_SIZE = 10
RANDOM_SAMPLE_SIZE = 1000
MAX_MISMATCHES = 5


def verify_buffer(
    data: np.ndarray,
    sample_size: int = RANDOM_SAMPLE_SIZE,
    seed: int | None = None,
) -> VerificationResult:
    """Check that sampled elements of ``data`` hold the sentinel value.

    Inspects the first 10 elements, then ``sample_size`` random indices.
    Stops once more than MAX_MISMATCHES wrong values have been seen.

    Args:
        data: Result buffer returned by a worker
        sample_size: Number of random indices to draw
        seed: Seed for reproducible index selection; None draws fresh entropy

    Returns:
        VerificationResult describing the sampled outcome.
    """
    length = len(data)
    if length == 0:
        return VerificationResult(
            passed=False, sampled=0, correct=0, message="Verification failed: buffer is empty"
        )

    logger.debug("🔍 Verifying %d values, head: %s", length, data[:HEAD_SAMPLE_SIZE].tolist())

    rng = np.random.default_rng(seed)
    head = np.arange(min(HEAD_SAMPLE_SIZE, length))
    indices = np.concatenate([head, rng.integers(0, length, size=sample_size)])

    correct = 0
    mismatches = 0
    sampled = 0
    for index in indices:
        sampled += 1
        value = data[index]
        if value == SENTINEL_VALUE:
            correct += 1
            continue
        mismatches += 1
        logger.debug("Found non-sentinel value at index %d: %s", index, value)
        if mismatches > MAX_MISMATCHES:
            break

    if mismatches == 0:
        message = f"Verification successful: all sampled values are {SENTINEL_VALUE}"
        return VerificationResult(passed=True, sampled=sampled, correct=correct, message=message)

    percentage = correct / sampled * 100
    message = f"Verification partial: {percentage:.2f}% of sampled values are {SENTINEL_VALUE}"
    return VerificationResult(passed=False, sampled=sampled, correct=correct, message=message)
