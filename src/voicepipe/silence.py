# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Silence detection for auto-stopping recordings.

Estimates voice activity from per-chunk RMS energy and decides when a
recording has been quiet long enough (or long, period) to stop on its own.
"""

import threading
import time
from typing import Callable, Optional

import numpy as np

from .config import AudioConfig

REASON_SILENCE = "silence"
REASON_MAX_DURATION = "max_duration"


def rms(chunk: np.ndarray) -> float:
    """Root-mean-square energy of a chunk of float samples."""
    if chunk is None or chunk.size == 0:
        return 0.0
    samples = chunk.astype(np.float32, copy=False).reshape(-1)
    return float(np.sqrt(np.mean(np.square(samples))))


class SilenceMonitor:
    """
    Tracks silence within one recording session.

    feed() is called from the capture thread for every chunk; poll() is called
    by a ticker so a device that stops delivering chunks still times out.
    Both return the stop reason the first time a stop condition holds, and
    None otherwise.
    """

    def __init__(self, audio: AudioConfig, clock: Callable[[], float] = time.monotonic):
        self._threshold = audio.silence_threshold
        self._silence_limit = audio.auto_stop_silence
        self._min_duration = audio.min_duration
        self._max_duration = audio.max_duration
        self._clock = clock
        self._lock = threading.Lock()
        self._started = clock()
        # A session starts silent until the first loud chunk
        self._silence_since: Optional[float] = self._started
        self._fired = False
        self.peak = 0.0

    @property
    def fired(self) -> bool:
        return self._fired

    def elapsed(self) -> float:
        return self._clock() - self._started

    def feed(self, chunk: np.ndarray) -> Optional[str]:
        level = rms(chunk)
        with self._lock:
            self.peak = max(self.peak, level)
            if level >= self._threshold:
                self._silence_since = None
            elif self._silence_since is None:
                self._silence_since = self._clock()
            return self._check()

    def poll(self) -> Optional[str]:
        with self._lock:
            return self._check()

    def _check(self) -> Optional[str]:
        if self._fired:
            return None

        now = self._clock()
        elapsed = now - self._started

        if self._max_duration > 0 and elapsed >= self._max_duration:
            self._fired = True
            return REASON_MAX_DURATION

        if self._silence_limit <= 0 or self._silence_since is None:
            return None
        if elapsed < self._min_duration:
            return None
        if now - self._silence_since >= self._silence_limit:
            self._fired = True
            return REASON_SILENCE
        return None
