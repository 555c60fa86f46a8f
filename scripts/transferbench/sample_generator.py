"""Synthetic payload generation for the transfer benchmark.

This module provides the SampleGenerator class, which builds the float32 sample
buffer handed to workers, and the SamplePayload wrapper that tracks whether the
buffer has been given away.
"""

from __future__ import annotations

import numpy as np

from .errors import PayloadReleasedError
from .models import DEFAULT_SAMPLE_RATE

BASE_FREQUENCY_HZ = 440.0  # A4
# (amplitude, multiple of the base frequency); amplitudes sum to < 1
HARMONICS = ((0.5, 1), (0.25, 2), (0.125, 3))
BYTES_PER_SAMPLE = np.dtype(np.float32).itemsize


class SamplePayload:
    """Read-only float32 samples owned by a single worker invocation.

    Once ``release`` has been called the payload belongs to the worker and any
    further access raises PayloadReleasedError.
    """

    def __init__(self, samples: np.ndarray, sample_rate: int) -> None:
        """Wrap ``samples`` and freeze them against writes."""
        samples = np.ascontiguousarray(samples, dtype=np.float32)
        samples.flags.writeable = False
        self._samples: np.ndarray | None = samples
        self._length = len(samples)
        self.sample_rate = sample_rate

    def __len__(self) -> int:
        return self._length

    @property
    def released(self) -> bool:
        """Whether ownership has been handed to a worker."""
        return self._samples is None

    @property
    def samples(self) -> np.ndarray:
        """The underlying read-only array.

        Raises:
            PayloadReleasedError: If the payload was already released.
        """
        if self._samples is None:
            msg = "Payload was released to a worker and can no longer be read"
            raise PayloadReleasedError(msg)
        return self._samples

    @property
    def nbytes(self) -> int:
        """Size of the sample buffer in bytes."""
        return self._length * BYTES_PER_SAMPLE

    def release(self) -> np.ndarray:
        """Give up ownership and return the array for sending.

        Returns:
            The sample array; this wrapper no longer exposes it.
        """
        samples = self.samples
        self._samples = None
        return samples


class SampleGenerator:
    """Generates deterministic synthetic audio payloads.

    The waveform is a 440 Hz tone with its second and third harmonics, so every
    sample lies in [-1, 1] and identical inputs give bit-identical output.
    """

    @staticmethod
    def sample_count(duration_seconds: float, sample_rate: int = DEFAULT_SAMPLE_RATE) -> int:
        """Number of samples for the given duration.

        Returns:
            Sample count, rounded to the nearest whole sample.

        Raises:
            ValueError: If either argument is not positive.
        """
        if duration_seconds <= 0:
            msg = f"Duration must be positive, got {duration_seconds}"
            raise ValueError(msg)
        if sample_rate <= 0:
            msg = f"Sample rate must be positive, got {sample_rate}"
            raise ValueError(msg)
        return round(duration_seconds * sample_rate)

    @staticmethod
    def generate(
        duration_seconds: float, sample_rate: int = DEFAULT_SAMPLE_RATE
    ) -> SamplePayload:
        """Generate the payload for ``duration_seconds`` of audio.

        Args:
            duration_seconds: Length of the synthetic signal
            sample_rate: Samples per second

        Returns:
            A fresh SamplePayload; each call allocates a new buffer.
        """
        num_samples = SampleGenerator.sample_count(duration_seconds, sample_rate)
        t = np.arange(num_samples, dtype=np.float64) / sample_rate

        signal = np.zeros(num_samples, dtype=np.float64)
        for amplitude, multiple in HARMONICS:
            signal += amplitude * np.sin(2 * np.pi * BASE_FREQUENCY_HZ * multiple * t)

        return SamplePayload(signal.astype(np.float32), sample_rate)


def payload_size_mb(duration_seconds: float, sample_rate: int = DEFAULT_SAMPLE_RATE) -> float:
    """Size in MiB of the payload generated for ``duration_seconds``.

    Returns:
        Payload size in mebibytes.
    """
    num_samples = SampleGenerator.sample_count(duration_seconds, sample_rate)
    return num_samples * BYTES_PER_SAMPLE / 1024 / 1024
