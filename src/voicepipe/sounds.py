# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Audio cues for voicepipe.

Four cues (start, processing, complete, fail), either short synthesized
tones or user-supplied sound files, played in order on one background thread.
"""

import queue
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np
import sounddevice as sd
import soundfile as sf

from .config import SoundsConfig
from .state import CUE_COMPLETE, CUE_FAIL, CUE_PROCESSING, CUE_START, CUES
from .utils import log

TONE_SAMPLE_RATE = 44100

# cue -> sequence of (frequency Hz, seconds)
TONES: Dict[str, Tuple[Tuple[float, float], ...]] = {
    CUE_START: ((660.0, 0.07), (880.0, 0.09)),
    CUE_PROCESSING: ((520.0, 0.08),),
    CUE_COMPLETE: ((880.0, 0.07), (1320.0, 0.11)),
    CUE_FAIL: ((330.0, 0.12), (220.0, 0.18)),
}


def synthesize(name: str, sample_rate: int = TONE_SAMPLE_RATE) -> np.ndarray:
    """Render a cue's tone sequence as float32 samples with short fades."""
    parts = []
    fade = int(sample_rate * 0.005)
    for freq, seconds in TONES[name]:
        t = np.arange(int(sample_rate * seconds)) / sample_rate
        tone = np.sin(2 * np.pi * freq * t).astype(np.float32)
        if fade and len(tone) > 2 * fade:
            ramp = np.linspace(0.0, 1.0, fade, dtype=np.float32)
            tone[:fade] *= ramp
            tone[-fade:] *= ramp[::-1]
        parts.append(tone)
    return np.concatenate(parts)


class CuePlayer:
    """Plays cues sequentially without blocking the caller."""

    def __init__(self, config: SoundsConfig):
        self._config = config
        self._cache: Dict[str, Tuple[np.ndarray, int]] = {}
        self._queue: "queue.Queue[Optional[str]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def configure(self, config: SoundsConfig):
        """Apply new sound settings (custom files are reloaded lazily)."""
        with self._lock:
            self._config = config
            self._cache.clear()

    def play(self, name: str):
        if name not in CUES:
            log(f"Unknown cue: {name}", "WARN")
            return
        if not self._config.enabled or self._config.volume <= 0:
            return
        self._ensure_thread()
        self._queue.put(name)

    def close(self):
        if self._thread and self._thread.is_alive():
            self._queue.put(None)
            self._thread.join(timeout=2)
        self._thread = None

    # ─────────────────────────────────────────────────────────────────
    # Private methods
    # ─────────────────────────────────────────────────────────────────

    def _ensure_thread(self):
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name="cues", daemon=True)
                self._thread.start()

    def _run(self):
        while True:
            name = self._queue.get()
            if name is None:
                break
            try:
                samples, rate = self._load(name)
                sd.play(samples * self._config.volume, samplerate=rate)
                sd.wait()
            except Exception as e:
                log(f"Cue '{name}' failed: {e}", "WARN")

    def _load(self, name: str) -> Tuple[np.ndarray, int]:
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                return cached
            custom = getattr(self._config, name, "")

        audio = None
        if custom:
            path = Path(custom).expanduser()
            try:
                data, rate = sf.read(str(path), dtype="float32", always_2d=False)
                audio = (np.asarray(data, dtype=np.float32), int(rate))
            except Exception as e:
                log(f"Cue file {path} unreadable, using built-in tone: {e}", "WARN")
        if audio is None:
            audio = (synthesize(name), TONE_SAMPLE_RATE)

        with self._lock:
            self._cache[name] = audio
        return audio
