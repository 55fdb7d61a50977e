# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""Recording session: the sample buffer of one dictation cycle."""

import threading
import time
from typing import List

import numpy as np


class RecordingSession:
    """
    Accumulates audio chunks for one cycle.

    The buffer is bounded by the maximum recording duration. Once sealed,
    chunks still arriving from the capture thread are dropped.
    """

    def __init__(self, cycle: int, sample_rate: int, max_duration: float = 0):
        self.cycle = cycle
        self.sample_rate = sample_rate
        self.started = time.monotonic()
        self._max_samples = int(max_duration * sample_rate) if max_duration > 0 else 0
        self._chunks: List[np.ndarray] = []
        self._count = 0
        self._sealed = False
        self._lock = threading.Lock()

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def sample_count(self) -> int:
        return self._count

    def append(self, chunk: np.ndarray) -> bool:
        """Add a chunk; returns False if it was dropped."""
        with self._lock:
            if self._sealed:
                return False
            samples = np.asarray(chunk, dtype=np.float32).reshape(-1)
            if self._max_samples:
                room = self._max_samples - self._count
                if room <= 0:
                    return False
                samples = samples[:room]
            self._chunks.append(samples.copy())
            self._count += len(samples)
            return True

    def seal(self) -> np.ndarray:
        """Stop accepting chunks and return the concatenated samples."""
        with self._lock:
            self._sealed = True
            if not self._chunks:
                return np.zeros(0, dtype=np.float32)
            return np.concatenate(self._chunks)

    def duration(self) -> float:
        return self._count / self.sample_rate if self.sample_rate else 0.0
